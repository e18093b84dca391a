"""Object detection with a network that outputs boxes, classes and scores."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from .detection import Detection, Rectangle
from .stage import CompletedRequest, register_stage
from .tf_stage import InterpreterFactory, TfConfig, TfStage

logger = logging.getLogger(__name__)

NAME = "object_detect_tf"
WIDTH = 300
HEIGHT = 300


def _clamp(value: int, lo: int, hi: int) -> int:
    return min(max(value, lo), hi)


@dataclass
class ObjectDetectTfConfig(TfConfig):
    """Detection settings on top of the common network settings."""

    confidence_threshold: float = 0.5
    overlap_threshold: float = 0.5


@register_stage(NAME)
class ObjectDetectTfStage(TfStage):
    """Detects objects in the low res image, reporting boxes in main image coordinates."""

    config_class = ObjectDetectTfConfig
    config: ObjectDetectTfConfig

    def __init__(self, app: Any, interpreter_factory: Optional[InterpreterFactory] = None):
        super().__init__(app, WIDTH, HEIGHT, interpreter_factory)
        self.labels: list[str] = []
        self.output_results: list[Detection] = []

    def name(self) -> str:
        return NAME

    def read_extras(self, params: Mapping[str, Any]) -> None:
        self.config.confidence_threshold = float(params.get("confidence_threshold", 0.5))
        self.config.overlap_threshold = float(params.get("overlap_threshold", 0.5))

        self._read_labels_file(str(params.get("labels_file", "")))
        if self.config.verbose:
            logger.info("Read %d labels", len(self.labels))

        # Check the tensor outputs; a wrong model is the likely cause of a mismatch.
        dims = tuple(self.interpreter.outputs[0].dims)
        if dims != (1, 10, 4):
            raise RuntimeError("ObjectDetectTfStage: unexpected output dimensions")

    def _read_labels_file(self, file_name: str) -> None:
        try:
            with open(file_name, encoding="utf-8") as f:
                lines = f.read().split("\n")
        except OSError:
            raise RuntimeError("ObjectDetectTfStage: Failed to load labels file") from None
        if lines and lines[-1] == "":
            lines.pop()
        # The first line is not a label.
        self.labels = lines[1:]

    def check_configuration(self) -> None:
        if self.main_stream is None:
            raise RuntimeError("ObjectDetectTfStage: Main stream is required")

    def apply_results(self, request: CompletedRequest) -> None:
        request.post_process_metadata["object_detect.results"] = list(self.output_results)

    def interpret_outputs(self) -> None:
        outputs = self.interpreter.outputs
        boxes = outputs[0].data
        classes = outputs[1].data
        scores = outputs[2].data
        num_detections = outputs[0].dims[1]
        lores, main = self.lores_info, self.main_stream_info
        threshold = self.config.overlap_threshold

        results: list[Detection] = []
        for i in range(num_detections):
            score = scores[i]
            if score < self.config.confidence_threshold:
                continue

            # Coordinates in the image fed to the network.
            top, left, bottom, right = boxes[i * 4 : i * 4 + 4]
            y = _clamp(int(HEIGHT * top), 0, HEIGHT)
            x = _clamp(int(WIDTH * left), 0, WIDTH)
            h = _clamp(int(HEIGHT * bottom - y), 0, HEIGHT)
            w = _clamp(int(WIDTH * right - x), 0, WIDTH)
            # The network sees a centre crop of the lores image.
            y += (lores.height - HEIGHT) // 2
            x += (lores.width - WIDTH) // 2
            # The lores image is a pure scaling of the main one.
            y = y * main.height // lores.height
            x = x * main.width // lores.width
            h = h * main.height // lores.height
            w = w * main.width // lores.width

            category = int(classes[i])
            detection = Detection(category, self.labels[category], score, Rectangle(x, y, w, h))

            for k, previous in enumerate(results):
                if previous.category != category:
                    continue
                overlap = previous.box.bounded_to(detection.box).area()
                if overlap > threshold * previous.box.area() or overlap > threshold * detection.box.area():
                    if detection.confidence > previous.confidence:
                        results[k] = detection
                    break
            else:
                results.append(detection)

        self.output_results = results
        if self.config.verbose:
            for detection in results:
                logger.info("%s", detection)