"""Image segmentation: labels every pixel of a 257x257 network input."""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from .stage import CompletedRequest, register_stage
from .tf_stage import InterpreterFactory, TfConfig, TfStage

logger = logging.getLogger(__name__)

NAME = "segmentation_tf"
WIDTH = 257
HEIGHT = 257


@dataclass
class Segmentation:
    """A segmentation map: one label index per pixel, row by row."""

    width: int
    height: int
    labels: list[str] = field(default_factory=list)
    segmentation: bytes = b""


@dataclass
class SegmentationTfConfig(TfConfig):
    """Segmentation settings on top of the common network settings."""

    draw: bool = True
    threshold: int = 5000  # pixels in a category before its name is reported


@register_stage(NAME)
class SegmentationTfStage(TfStage):
    """Segments the low res image and optionally draws the map on the main image."""

    config_class = SegmentationTfConfig
    config: SegmentationTfConfig

    def __init__(self, app: Any, interpreter_factory: Optional[InterpreterFactory] = None):
        super().__init__(app, WIDTH, HEIGHT, interpreter_factory)
        self.labels: list[str] = []
        self.segmentation = bytearray(WIDTH * HEIGHT)

    def name(self) -> str:
        return NAME

    def _read_labels_file(self, file_name: str) -> None:
        try:
            with open(file_name, encoding="utf-8") as f:
                lines = f.read().split("\n")
        except OSError:
            raise RuntimeError("SegmentationTfStage: Failed to load labels file") from None
        if lines and lines[-1] == "":
            lines.pop()
        self.labels = lines

    def read_extras(self, params: Mapping[str, Any]) -> None:
        self.config.draw = bool(int(params.get("draw", 1)))
        self.config.threshold = int(params.get("threshold", 5000))
        self._read_labels_file(str(params.get("labels_file", "")))

        dims = tuple(self.interpreter.outputs[0].dims)
        if len(dims) != 4 or dims[1] != HEIGHT or dims[2] != WIDTH or dims[3] != len(self.labels):
            raise RuntimeError("SegmentationTfStage: Unexpected output tensor size")

    def check_configuration(self) -> None:
        if self.main_stream is None and self.config.draw:
            raise RuntimeError("SegmentationTfStage: Main stream is required for drawing")

    def apply_results(self, request: CompletedRequest) -> None:
        request.post_process_metadata["segmentation.result"] = Segmentation(
            WIDTH, HEIGHT, list(self.labels), bytes(self.segmentation)
        )
        if not self.config.draw:
            return

        # Draw the map in the bottom right corner of the main image, in grey.
        info = self.main_stream_info
        if info.width < WIDTH or info.height < HEIGHT:
            raise RuntimeError("SegmentationTfStage: Main image too small for drawing")
        buffer = self.app.mmap(request.buffers[self.main_stream])[0]
        y_offset = info.height - HEIGHT
        x_offset = info.width - WIDTH
        scale = 255 // len(self.labels)

        for y in range(HEIGHT):
            src = self.segmentation[y * WIDTH : (y + 1) * WIDTH]
            start = (y + y_offset) * info.stride + x_offset
            buffer[start : start + WIDTH] = bytes((scale * v) & 0xFF for v in src)

        u_start = info.height * info.stride
        half_stride = info.stride // 2
        uv_size = (info.height // 2) * half_stride
        y_offset //= 2
        x_offset //= 2
        grey = bytes([128]) * (WIDTH // 2)
        for y in range(HEIGHT // 2):
            start = u_start + (y + y_offset) * half_stride + x_offset
            buffer[start : start + WIDTH // 2] = grey
            buffer[start + uv_size : start + uv_size + WIDTH // 2] = grey

    def interpret_outputs(self) -> None:
        output = self.interpreter.outputs[0].data
        num_categories = len(self.labels)
        categories = range(num_categories)
        hist: Counter[int] = Counter()
        segmentation = bytearray(WIDTH * HEIGHT)

        for k in range(WIDTH * HEIGHT):
            scores = output[k * num_categories : (k + 1) * num_categories]
            # The first of equally large confidences wins.
            index = max(categories, key=scores.__getitem__)
            segmentation[k] = index & 0xFF
            hist[index] += 1
        self.segmentation = segmentation

        if self.config.verbose:
            ordered = sorted(categories, key=lambda c: hist[c], reverse=True)
            parts = []
            for c in ordered:
                if hist[c] < self.config.threshold:
                    break
                parts.append(f"{self.labels[c]} ({hist[c]})")
            logger.info("%s", ", ".join(parts))