"""Post-processing stage base class, stage registry and image helpers."""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Mapping


@dataclass
class StreamInfo:
    """Geometry and format of a camera stream."""

    width: int = 0
    height: int = 0
    stride: int = 0
    pixel_format: str = "YUV420"
    colour_space: Any = None


@dataclass
class StreamConfiguration:
    """Stream settings a stage may adjust before the camera is configured."""

    buffer_count: int = 0
    pixel_format: str = "YUV420"


@dataclass
class CompletedRequest:
    """A finished capture: buffers keyed by stream plus metadata."""

    sequence: int = 0
    buffers: dict = field(default_factory=dict)
    metadata: dict = field(default_factory=dict)
    post_process_metadata: dict = field(default_factory=dict)


class PostProcessingStage(ABC):
    """Base class for stages run on every completed request.

    ``app`` is the camera application the stage serves; stages query it
    for streams, stream information and frame buffers. The base class
    records the use case it was configured for and whether the camera
    is running.
    """

    def __init__(self, app: Any):
        self.app = app
        self.use_case: str | None = None
        self.running = False

    @abstractmethod
    def name(self) -> str:
        """The name the stage is registered under."""

    def read(self, params: Mapping[str, Any]) -> None:
        """Read the stage's parameters."""

    def adjust_config(self, use_case: str, config: StreamConfiguration) -> None:
        """Adjust stream configuration before the camera is configured."""
        self.use_case = use_case

    def configure(self) -> None:
        """Called once the camera streams are configured."""

    def start(self) -> None:
        """Called when the camera starts."""
        self.running = True

    @abstractmethod
    def process(self, request: CompletedRequest) -> bool:
        """Process a request; return True if it should be dropped."""

    def stop(self) -> None:
        """Called when the camera stops."""
        self.running = False

    def teardown(self) -> None:
        """Called when the camera streams are torn down."""
        self.running = False
        self.use_case = None


def _clamp_byte(value: float) -> int:
    return min(max(int(value), 0), 255)


def yuv420_to_rgb(src: bytes, src_info: StreamInfo, dst_info: StreamInfo) -> bytearray:
    """Convert a YUV420 image to packed RGB, cropping from the centre if needed."""
    if src_info.width < dst_info.width or src_info.height < dst_info.height:
        raise ValueError("source image is smaller than the destination")
    if dst_info.stride < 3 * dst_info.width:
        raise ValueError("destination stride too small for RGB rows")

    output = bytearray(dst_info.height * dst_info.stride)
    off_x = ((src_info.width - dst_info.width) // 2) & ~1
    off_y = ((src_info.height - dst_info.height) // 2) & ~1
    half_stride = src_info.stride // 2
    y_size = src_info.height * src_info.stride
    u_size = (src_info.height // 2) * half_stride

    for y in range(dst_info.height):
        y_row = (y + off_y) * src_info.stride + off_x
        u_row = y_size + ((y + off_y) // 2) * half_stride + off_x // 2
        v_row = u_row + u_size
        row = bytearray()
        for x in range(dst_info.width):
            luma = src[y_row + x]
            u = src[u_row + x // 2] - 128
            v = src[v_row + x // 2] - 128
            row += bytes(
                (
                    _clamp_byte(luma + 1.402 * v),
                    _clamp_byte(luma - 0.345 * u - 0.714 * v),
                    _clamp_byte(luma + 1.771 * u),
                )
            )
        start = y * dst_info.stride
        output[start : start + len(row)] = row
    return output


def execution_time(f: Callable[..., Any], *args: Any, **kwargs: Any) -> float:
    """Call f and return how long it took, in microseconds."""
    start = time.perf_counter()
    f(*args, **kwargs)
    return (time.perf_counter() - start) * 1e6


StageFactory = Callable[[Any], PostProcessingStage]

_STAGES: dict[str, StageFactory] = {}


def register_stage(name: str) -> Callable[[StageFactory], StageFactory]:
    """Decorator registering a stage class or factory under name."""

    def decorator(factory: StageFactory) -> StageFactory:
        _STAGES[name] = factory
        return factory

    return decorator


def get_post_processing_stages() -> Mapping[str, StageFactory]:
    """Read-only view of all registered stages."""
    return MappingProxyType(_STAGES)


def create_stage(name: str, app: Any) -> PostProcessingStage:
    """Create the stage registered under name for app."""
    try:
        factory = _STAGES[name]
    except KeyError:
        raise KeyError(f"unknown post-processing stage: {name}") from None
    return factory(app)