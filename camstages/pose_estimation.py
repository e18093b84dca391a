"""Pose estimation: finds 17 body keypoints with a heatmap and offset network."""

from __future__ import annotations

from typing import Any, Mapping, Optional

from .stage import CompletedRequest, register_stage
from .tf_stage import InterpreterFactory, TfStage

NAME = "pose_estimation_tf"
FEATURE_SIZE = 17
HEATMAP_DIMS = 9
_INPUT_SIZE = 257


@register_stage(NAME)
class PoseEstimationTfStage(TfStage):
    """Reports keypoint locations in main image coordinates and their confidences."""

    def __init__(self, app: Any, interpreter_factory: Optional[InterpreterFactory] = None):
        # The model expects 257x257 images.
        super().__init__(app, _INPUT_SIZE, _INPUT_SIZE, interpreter_factory)
        self.heats: list[tuple[int, int]] = []
        self.confidences: list[float] = []
        self.locations: list[tuple[int, int]] = []

    def name(self) -> str:
        return NAME

    def read_extras(self, params: Mapping[str, Any]) -> None:
        # Nothing to read, but the output dimensions reveal a wrong model.
        dims = tuple(self.interpreter.outputs[0].dims)
        if dims[:4] != (1, HEATMAP_DIMS, HEATMAP_DIMS, FEATURE_SIZE):
            raise RuntimeError("PoseEstimationTfStage: Unexpected output dimensions")

    def check_configuration(self) -> None:
        if self.main_stream is None:
            raise RuntimeError("PoseEstimationTfStage: Main stream is required")

    def apply_results(self, request: CompletedRequest) -> None:
        request.post_process_metadata["pose_estimation.locations"] = list(self.locations)
        request.post_process_metadata["pose_estimation.confidences"] = list(self.confidences)

    def interpret_outputs(self) -> None:
        heatmaps = self.interpreter.outputs[0].data
        offsets = self.interpreter.outputs[1].data
        main = self.main_stream_info

        heats: list[tuple[int, int]] = []
        confidences: list[float] = []
        for i in range(FEATURE_SIZE):
            confidence = heatmaps[i]
            coord = (0, 0)
            for y in range(HEATMAP_DIMS):
                for x in range(HEATMAP_DIMS):
                    value = heatmaps[FEATURE_SIZE * (HEATMAP_DIMS * y + x) + i]
                    if value > confidence:
                        confidence = value
                        coord = (x, y)
            heats.append(coord)
            confidences.append(confidence)

        locations: list[tuple[int, int]] = []
        for i, (x, y) in enumerate(heats):
            j = (FEATURE_SIZE * 2) * (HEATMAP_DIMS * y + x) + i
            loc_y = int((y * main.height) // (HEATMAP_DIMS - 1) + offsets[j])
            loc_x = int((x * main.width) // (HEATMAP_DIMS - 1) + offsets[j + FEATURE_SIZE])
            locations.append((loc_x, loc_y))

        self.heats = heats
        self.confidences = confidences
        self.locations = locations