"""Image classification reporting the most likely labels."""

from __future__ import annotations

import heapq
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence

from .stage import CompletedRequest, register_stage
from .tf_stage import InterpreterFactory, TfConfig, TfStage

logger = logging.getLogger(__name__)

NAME = "object_classify_tf"
_LABEL_PADDING = 16


@dataclass
class ObjectClassifyTfConfig(TfConfig):
    """Classification settings on top of the common network settings."""

    number_of_results: int = 3
    top_n_results: int = 0
    threshold_high: float = 0.2
    threshold_low: float = 0.1
    display_labels: bool = True


def _short_label(label: str) -> str:
    """The part of a label after the first ':' and before the first ','."""
    start = label.find(":") + 1
    end = label.find(",")
    return label[start:end] if end >= start else label[start:]


@register_stage(NAME)
class ObjectClassifyTfStage(TfStage):
    """Classifies the low res image and reports the top results."""

    config_class = ObjectClassifyTfConfig
    config: ObjectClassifyTfConfig

    def __init__(self, app: Any, interpreter_factory: Optional[InterpreterFactory] = None):
        # The model expects 224x224 images.
        super().__init__(app, 224, 224, interpreter_factory)
        self.labels: list[str] = []
        self.label_count = 0
        self.output_results: list[tuple[str, float]] = []
        self._top_results: list[tuple[float, int]] = []

    def name(self) -> str:
        return NAME

    def read_extras(self, params: Mapping[str, Any]) -> None:
        config = self.config
        config.number_of_results = int(params.get("number_of_results", 3))
        config.threshold_high = float(params.get("threshold_high", 0.2))
        config.threshold_low = float(params.get("threshold_low", 0.1))
        config.display_labels = bool(int(params.get("display_labels", 1)))

        self._read_labels_file(str(params.get("labels_file", "/home/pi/models/labels.txt")))

        # A wrong model or labels file shows up as a mismatch here.
        if self.interpreter.outputs[0].dims[-1] != self.label_count:
            raise RuntimeError("ObjectClassifyTfStage: Label count mismatch")

    def _read_labels_file(self, file_name: str) -> None:
        try:
            with open(file_name, encoding="utf-8") as f:
                lines = f.read().split("\n")
        except OSError:
            raise RuntimeError("ObjectClassifyTfStage: Failed to load labels file") from None
        if lines and lines[-1] == "":
            lines.pop()
        self.label_count = len(lines)
        padding = -len(lines) % _LABEL_PADDING
        self.labels = lines + [""] * padding

    def interpret_outputs(self) -> None:
        output = self.interpreter.outputs[0]
        output_size = output.dims[-1]
        top = self.top_results(output.data[:output_size], self.config.number_of_results)
        self.output_results = [(self.labels[index], confidence) for confidence, index in top]
        if self.config.verbose:
            for label, confidence in self.output_results:
                logger.info("%s : %f", label, confidence)

    def top_results(self, prediction: Sequence[int], num_results: int) -> list[tuple[float, int]]:
        """Return the most confident (confidence, index) pairs, highest first.

        A result below the high threshold is kept only if it was among the
        previous top results, which stops results flickering in and out.
        """
        previous = {index for _, index in self._top_results}
        low, high = self.config.threshold_low, self.config.threshold_high
        candidates = []
        for index, value in enumerate(prediction):
            confidence = value / 255.0
            if confidence < low:
                continue
            if confidence >= high or index in previous:
                candidates.append((confidence, index))
        self._top_results = heapq.nlargest(max(num_results, 0), candidates)
        return list(self._top_results)

    def apply_results(self, request: CompletedRequest) -> None:
        request.post_process_metadata["object_classify.results"] = list(self.output_results)
        if self.config.display_labels:
            text = ", ".join(
                f"{_short_label(label)} {confidence:.2g}"
                for label, confidence in self.output_results
            )
            request.post_process_metadata["annotate.text"] = "Detected: " + text