"""Preview windows that display YUV420 frames and hand the buffers back."""

from __future__ import annotations

import enum
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Optional, Sequence

logger = logging.getLogger(__name__)

DoneCallback = Callable[[int], None]

_DEFAULT_IMAGE_WIDTH = 512
_DEFAULT_IMAGE_HEIGHT = 384


class ColourSpace(enum.Enum):
    """Colour spaces a camera stream can carry."""

    RAW = "raw"
    SRGB = "srgb"
    SYCC = "sycc"
    SMPTE170M = "smpte170m"
    REC709 = "rec709"
    REC2020 = "rec2020"


@dataclass
class PreviewOptions:
    """Options that choose and place the preview window."""

    nopreview: bool = False
    qt_preview: bool = False
    fullscreen: bool = False
    preview_x: int = 0
    preview_y: int = 0
    preview_width: int = 0
    preview_height: int = 0


# (offset Y, coeff Y, coeff V->R, coeff U->G, coeff V->G, coeff U->B)
_JPEG = (0, 1.0, 1.402, -0.344, -0.714, 1.772)
_SMPTE170M = (16, 1.164, 1.596, -0.392, -0.813, 2.017)
_REC709 = (16, 1.164, 1.793, -0.213, -0.533, 2.112)


def colour_space_info(colour_space: Optional[ColourSpace]) -> tuple[str, str]:
    """Return the (encoding, range) names a display uses for a colour space."""
    encoding, value_range = "601", "limited"
    if colour_space is ColourSpace.SYCC:
        value_range = "full"
    elif colour_space is ColourSpace.SMPTE170M:
        pass
    elif colour_space is ColourSpace.REC709:
        encoding = "709"
    else:
        logger.info("Preview: unexpected colour space %s", colour_space)
    return encoding, value_range


def _coefficients(colour_space: Optional[ColourSpace]) -> tuple:
    if colour_space is ColourSpace.SMPTE170M:
        return _SMPTE170M
    if colour_space is ColourSpace.REC709:
        return _REC709
    if colour_space is not ColourSpace.SYCC:
        logger.info("Preview: unexpected colour space %s", colour_space)
    return _JPEG


def _clamp_byte(value: float) -> int:
    return min(max(int(value), 0), 255)


def resample_yuv420_to_rgb(data: Sequence[int], info: Any, width: int, height: int) -> bytearray:
    """Resample a YUV420 image to packed RGB888 of the given (even) size.

    Nearest-neighbour sampling is used, with each pair of output pixels
    sharing one U and V sample.
    """
    if width <= 0 or height <= 0:
        raise ValueError("Preview: output dimensions must be positive")
    if width % 2 or height % 2:
        raise ValueError("Preview: expect even dimensions")
    src_w, src_h, stride = info.width, info.height, info.stride
    if src_w <= 0 or src_h <= 0:
        raise ValueError("Preview: source dimensions must be positive")
    half_stride = stride >> 1
    needed = ((5 * src_h + src_h - 1) >> 1) * half_stride + half_stride
    if len(data) < max(needed, stride * src_h):
        raise ValueError("Preview: source buffer too small")

    offset_y, coeff_y, coeff_vr, coeff_ug, coeff_vg, coeff_ub = _coefficients(
        getattr(info, "colour_space", None)
    )
    x_step = (src_w << 16) // width
    y_step = (src_h << 16) // height

    out = bytearray(width * height * 3)
    pos = 0
    for y in range(height):
        row = (y * y_step) >> 16
        y_row = data[row * stride : row * stride + stride]
        u_start = ((4 * src_h + row) >> 1) * half_stride
        v_start = ((5 * src_h + row) >> 1) * half_stride
        u_row = data[u_start : u_start + half_stride]
        v_row = data[v_start : v_start + half_stride]
        x_pos = x_step >> 1
        for _ in range(0, width, 2):
            y0 = y_row[x_pos >> 16] - offset_y
            x_pos += x_step
            y1 = y_row[x_pos >> 16] - offset_y
            u = u_row[x_pos >> 17] - 128
            v = v_row[x_pos >> 17] - 128
            x_pos += x_step
            for luma in (y0, y1):
                out[pos] = _clamp_byte(coeff_y * luma + coeff_vr * v)
                out[pos + 1] = _clamp_byte(coeff_y * luma + coeff_ug * u + coeff_vg * v)
                out[pos + 2] = _clamp_byte(coeff_y * luma + coeff_ub * u)
                pos += 3
    return out


class Preview(ABC):
    """A window showing camera buffers, returning each once it is no longer shown."""

    def __init__(self, options: PreviewOptions):
        self.options = options
        self._done_callback: Optional[DoneCallback] = None

    def set_done_callback(self, callback: DoneCallback) -> None:
        """Set the function called with a buffer's fd once it can be reused."""
        self._done_callback = callback

    def _done(self, fd: int) -> None:
        if self._done_callback is not None:
            self._done_callback(fd)

    def set_info_text(self, text: str) -> None:
        """Show some status text, where the window supports it."""

    @abstractmethod
    def show(self, fd: int, data: Sequence[int], info: Any) -> None:
        """Display a buffer; its fd comes back through the done callback."""

    @abstractmethod
    def reset(self) -> None:
        """Forget the current buffers, ready to show new ones."""

    def quit(self) -> bool:
        """Whether the window has been shut down."""
        return False

    @abstractmethod
    def max_image_size(self) -> tuple[int, int]:
        """The largest image size allowed; zeroes mean no limit."""


class NullPreview(Preview):
    """Shows nothing and hands every buffer straight back."""

    def __init__(self, options: PreviewOptions):
        super().__init__(options)
        self.frames_shown = 0
        logger.debug("Running without preview window")

    def show(self, fd: int, data: Sequence[int], info: Any) -> None:
        self.frames_shown += 1
        self._done(fd)

    def reset(self) -> None:
        """Start counting shown frames afresh."""
        self.frames_shown = 0

    def max_image_size(self) -> tuple[int, int]:
        return 0, 0

    def set_info_text(self, text: str) -> None:
        logger.info("%s", text)


class ImagePreview(Preview):
    """Renders each frame into an in-memory RGB888 image of the window's size."""

    def __init__(self, options: PreviewOptions):
        super().__init__(options)
        width, height = options.preview_width, options.preview_height
        if width % 2 or height % 2:
            raise ValueError("ImagePreview: expect even dimensions")
        # Conversion is expensive, so the window is small by default.
        if width == 0 or height == 0:
            width, height = _DEFAULT_IMAGE_WIDTH, _DEFAULT_IMAGE_HEIGHT
        self.width = width
        self.height = height
        self.x = options.preview_x
        self.y = options.preview_y
        self.image = bytearray(width * height * 3)
        self.title = ""
        self._quit = False
        logger.debug("Made image preview")

    def set_info_text(self, text: str) -> None:
        self.title = text

    def show(self, fd: int, data: Sequence[int], info: Any) -> None:
        self.image = resample_yuv420_to_rgb(data, info, self.width, self.height)
        self._done(fd)

    def reset(self) -> None:
        """Clear the displayed image to black."""
        self.image = bytearray(self.width * self.height * 3)

    def quit(self) -> bool:
        return self._quit

    def close(self) -> None:
        """Ask the window to close; the application sees it through quit()."""
        self._quit = True

    def max_image_size(self) -> tuple[int, int]:
        return 0, 0


def make_preview(options: PreviewOptions) -> Preview:
    """Choose a preview window for the options, falling back to none at all."""
    if options.nopreview:
        return NullPreview(options)
    if options.qt_preview:
        preview = ImagePreview(options)
        logger.info("Made image preview window")
        return preview
    logger.info("Preview window unavailable")
    return NullPreview(options)