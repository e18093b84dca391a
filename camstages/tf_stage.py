"""Base class for stages that run a neural network on the low resolution stream.

The network is driven through an interpreter object supplied by a factory.
The factory is called with the model file name and returns an object with:

* ``inputs`` and ``outputs``: sequences of :class:`Tensor`
* ``set_num_threads(n)``
* ``invoke()``, which raises (or returns ``False``) on failure

If no factory is given, the application's ``make_interpreter`` method is used.
"""

from __future__ import annotations

import logging
import math
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Protocol, Sequence

from .stage import (
    CompletedRequest,
    PostProcessingStage,
    StreamInfo,
    execution_time,
    yuv420_to_rgb,
)

logger = logging.getLogger(__name__)

_ITEM_SIZES = {"uint8": 1, "float32": 4}


@dataclass
class TfConfig:
    """Settings shared by all network stages."""

    number_of_threads: int = 3
    refresh_rate: int = 5
    model_file: str = ""
    verbose: bool = False
    normalisation_offset: float = 127.5
    normalisation_scale: float = 127.5


@dataclass
class Tensor:
    """A flat tensor: its dimensions, element type and values."""

    dims: tuple
    dtype: str = "float32"
    data: Optional[list] = None

    def __post_init__(self) -> None:
        self.dims = tuple(int(d) for d in self.dims)
        if self.data is None:
            self.data = [0] * math.prod(self.dims)

    @property
    def nbytes(self) -> int:
        try:
            itemsize = _ITEM_SIZES[self.dtype]
        except KeyError:
            raise ValueError(f"unsupported tensor type: {self.dtype}") from None
        return math.prod(self.dims) * itemsize


class _Interpreter(Protocol):
    inputs: Sequence[Tensor]
    outputs: Sequence[Tensor]

    def set_num_threads(self, n: int) -> None: ...

    def invoke(self) -> Any: ...


InterpreterFactory = Callable[[str], Optional[_Interpreter]]


def _log_failure(future: Future) -> None:
    error = future.exception()
    if error is not None:
        logger.error("TfStage: inference failed: %s", error)


class TfStage(PostProcessingStage):
    """Runs a network asynchronously on every ``refresh_rate``-th low res frame.

    Derived stages provide ``name`` and override ``read_extras``,
    ``check_configuration``, ``interpret_outputs`` and ``apply_results``.
    """

    config_class: type = TfConfig

    def __init__(
        self,
        app: Any,
        tf_w: int,
        tf_h: int,
        interpreter_factory: Optional[InterpreterFactory] = None,
    ):
        super().__init__(app)
        if tf_w <= 0 or tf_h <= 0:
            raise ValueError("TfStage: Bad TFLite input dimensions")
        self.tf_w = tf_w
        self.tf_h = tf_h
        self.config = self.config_class()
        self.interpreter_factory = interpreter_factory
        self.interpreter: Optional[_Interpreter] = None
        self.lores_stream: Any = None
        self.lores_info = StreamInfo()
        self.main_stream: Any = None
        self.main_stream_info = StreamInfo()
        self._future_lock = threading.Lock()
        self._output_lock = threading.Lock()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._future: Optional[Future] = None

    def read(self, params: Mapping[str, Any]) -> None:
        config = self.config
        config.number_of_threads = int(params.get("number_of_threads", 2))
        config.refresh_rate = int(params.get("refresh_rate", 5))
        config.model_file = str(params.get("model_file", ""))
        config.verbose = bool(int(params.get("verbose", 0)))
        config.normalisation_offset = float(params.get("normalisation_offset", 127.5))
        config.normalisation_scale = float(params.get("normalisation_scale", 127.5))

        self._initialise()
        self.read_extras(params)

    def _initialise(self) -> None:
        factory = self.interpreter_factory or getattr(self.app, "make_interpreter", None)
        interpreter = factory(self.config.model_file) if factory is not None else None
        if interpreter is None:
            raise RuntimeError("TfStage: Failed to load model")
        logger.info("TfStage: Loaded model %s", self.config.model_file)

        if self.config.number_of_threads != -1:
            interpreter.set_num_threads(self.config.number_of_threads)

        # Make an attempt to verify that the model expects this size of input.
        tensor = interpreter.inputs[0]
        if tensor.dtype not in _ITEM_SIZES:
            raise RuntimeError("TfStage: Input tensor data type not supported")
        expected = self.tf_w * self.tf_h * 3 * _ITEM_SIZES[tensor.dtype]  # assume RGB
        if tensor.nbytes != expected:
            raise RuntimeError("TfStage: Input tensor size mismatch")
        self.interpreter = interpreter

    def configure(self) -> None:
        verbose = self.config.verbose
        self.lores_stream = self.app.lores_stream()
        if self.lores_stream is not None:
            self.lores_info = self.app.get_stream_info(self.lores_stream)
            if verbose:
                logger.info(
                    "TfStage: Low resolution stream is %dx%d",
                    self.lores_info.width,
                    self.lores_info.height,
                )
            if self.tf_w > self.lores_info.width or self.tf_h > self.lores_info.height:
                logger.error("TfStage: WARNING: Low resolution image too small")
                self.lores_stream = None
        elif verbose:
            logger.info("TfStage: no low resolution stream")

        self.main_stream = self.app.get_main_stream()
        if self.main_stream is not None:
            self.main_stream_info = self.app.get_stream_info(self.main_stream)
            if verbose:
                logger.info(
                    "TfStage: Main stream is %dx%d",
                    self.main_stream_info.width,
                    self.main_stream_info.height,
                )
        elif verbose:
            logger.info("TfStage: No main stream")

        self.check_configuration()

    def process(self, request: CompletedRequest) -> bool:
        if self.lores_stream is None:
            return False

        with self._future_lock:
            refresh_rate = self.config.refresh_rate
            if (
                refresh_rate
                and request.sequence % refresh_rate == 0
                and (self._future is None or self._future.done())
            ):
                buffer = self.app.mmap(request.buffers[self.lores_stream])[0]
                # Copy the frame; the worker converts it to RGB.
                lores_copy = bytes(buffer)
                if self._executor is None:
                    self._executor = ThreadPoolExecutor(max_workers=1)
                self._future = self._executor.submit(self._timed_inference, lores_copy)
                self._future.add_done_callback(_log_failure)

        with self._output_lock:
            self.apply_results(request)
        return False

    def _timed_inference(self, lores: bytes) -> None:
        time_taken = execution_time(self._run_inference, lores)
        if self.config.verbose:
            logger.info("TfStage: Inference time: %.0f us", time_taken)

    def _run_inference(self, lores: bytes) -> None:
        if self.interpreter is None:
            raise RuntimeError("TfStage: no interpreter loaded")
        tf_info = StreamInfo(width=self.tf_w, height=self.tf_h, stride=self.tf_w * 3)
        rgb = yuv420_to_rgb(lores, self.lores_info, tf_info)

        tensor = self.interpreter.inputs[0]
        if tensor.dtype == "uint8":
            tensor.data[:] = list(rgb)
        elif tensor.dtype == "float32":
            offset = self.config.normalisation_offset
            scale = self.config.normalisation_scale
            tensor.data[:] = [(v - offset) / scale for v in rgb]

        if self.interpreter.invoke() is False:
            raise RuntimeError("TfStage: Failed to invoke TFLite")

        with self._output_lock:
            self.interpret_outputs()

    def stop(self) -> None:
        with self._future_lock:
            executor = self._executor
            self._executor = None
            self._future = None
        if executor is not None:
            executor.shutdown(wait=True)

    def read_extras(self, params: Mapping[str, Any]) -> None:
        """Read stage-specific parameters and check the model."""

    def check_configuration(self) -> None:
        """Check the stream configuration, raising if it is unusable."""

    def interpret_outputs(self) -> None:
        """Turn the network outputs into results; runs on the worker thread."""

    def apply_results(self, request: CompletedRequest) -> None:
        """Attach the latest results to a request; runs on the caller's thread."""