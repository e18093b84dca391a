"""A simple motion detector working on the low resolution stream.

Pixels in a region of interest of the current low res image are compared with
the same pixels of the previous one. A pixel differs if the change exceeds a
threshold; if enough pixels differ, that counts as motion. The result goes
into the request's post-processing metadata as ``motion_detect.result``.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from .stage import CompletedRequest, PostProcessingStage, register_stage

logger = logging.getLogger(__name__)

NAME = "motion_detect"


@dataclass
class MotionDetectConfig:
    """Detector settings; the region of interest is in fractions of the image."""

    roi_x: float = 0.0
    roi_y: float = 0.0
    roi_width: float = 1.0
    roi_height: float = 1.0
    hskip: int = 1
    vskip: int = 1
    difference_m: float = 0.1
    difference_c: int = 10
    region_threshold: float = 0.005
    frame_period: int = 5
    verbose: bool = False


def _unsigned(value: float) -> int:
    return max(int(value), 0)


def _clamp(value: int, lo: int, hi: int) -> int:
    return min(max(value, lo), hi)


@register_stage(NAME)
class MotionDetectStage(PostProcessingStage):
    """Reports whether enough low res pixels changed since the last checked frame."""

    def __init__(self, app: Any):
        super().__init__(app)
        self.config = MotionDetectConfig()
        self.stream: Any = None
        self.lores_stride = 0
        # Region of interest in pixels of the image as subsampled by hskip and vskip.
        self.roi_x = 0
        self.roi_y = 0
        self.roi_width = 0
        self.roi_height = 0
        self.region_threshold = 0
        self.previous_frame: list[int] = []
        self.first_time = True
        self.motion_detected = False
        self._lock = threading.Lock()

    def name(self) -> str:
        return NAME

    def read(self, params: Mapping[str, Any]) -> None:
        self.config = MotionDetectConfig(
            roi_x=float(params.get("roi_x", 0.0)),
            roi_y=float(params.get("roi_y", 0.0)),
            roi_width=float(params.get("roi_width", 1.0)),
            roi_height=float(params.get("roi_height", 1.0)),
            hskip=int(params.get("hskip", 1)),
            vskip=int(params.get("vskip", 1)),
            difference_m=float(params.get("difference_m", 0.1)),
            difference_c=int(params.get("difference_c", 10)),
            region_threshold=float(params.get("region_threshold", 0.005)),
            frame_period=int(params.get("frame_period", 5)),
            verbose=bool(int(params.get("verbose", 0))),
        )

    def configure(self) -> None:
        self.stream = self.app.lores_stream()
        if self.stream is None:
            return
        info = self.app.get_stream_info(self.stream)

        config = self.config
        config.hskip = max(config.hskip, 1)
        config.vskip = max(config.vskip, 1)
        width = info.width // config.hskip
        height = info.height // config.vskip
        self.lores_stride = info.stride * config.vskip

        roi_x = _unsigned(config.roi_x * width)
        roi_y = _unsigned(config.roi_y * height)
        roi_width = _unsigned(config.roi_width * width)
        roi_height = _unsigned(config.roi_height * height)
        region_threshold = _unsigned(config.region_threshold * roi_width * roi_height)

        self.roi_x = _clamp(roi_x, 0, width)
        self.roi_y = _clamp(roi_y, 0, height)
        self.roi_width = _clamp(roi_width, 0, width - self.roi_x)
        self.roi_height = _clamp(roi_height, 0, height - self.roi_y)
        self.region_threshold = _clamp(region_threshold, 0, self.roi_width * self.roi_height)

        if config.verbose:
            logger.info(
                "Lores: %dx%d roi: (%d,%d) %dx%d threshold: %d",
                width,
                height,
                self.roi_x,
                self.roi_y,
                self.roi_width,
                self.roi_height,
                self.region_threshold,
            )

        self.previous_frame = [0] * (self.roi_width * self.roi_height)
        self.first_time = True
        self.motion_detected = False

    def _sample(self, image: Sequence[int]) -> list[int]:
        """The region of interest of image, subsampled by hskip and vskip."""
        hskip = self.config.hskip
        values: list[int] = []
        for y in range(self.roi_height):
            start = (self.roi_y + y) * self.lores_stride + self.roi_x * hskip
            row = image[start : start + self.roi_width * hskip : hskip]
            if len(row) < self.roi_width:
                raise ValueError("MotionDetectStage: image buffer too small")
            values.extend(row)
        return values

    def process(self, request: CompletedRequest) -> bool:
        if self.stream is None:
            return False

        period = self.config.frame_period
        if period and request.sequence % period:
            return False

        image = self.app.mmap(request.buffers[self.stream])[0]

        with self._lock:
            current = self._sample(image)

            if self.first_time:
                self.first_time = False
                self.previous_frame = current
                request.post_process_metadata["motion_detect.result"] = self.motion_detected
                return False

            m, c = self.config.difference_m, self.config.difference_c
            regions = sum(
                1 for new, old in zip(current, self.previous_frame) if abs(new - old) > m * old + c
            )
            self.previous_frame = current
            motion_detected = bool(current) and regions >= self.region_threshold

            if self.config.verbose and motion_detected != self.motion_detected:
                logger.info("Motion %s", "detected" if motion_detected else "stopped")

            self.motion_detected = motion_detected
            request.post_process_metadata["motion_detect.result"] = motion_detected
        return False