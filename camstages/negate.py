"""Negates every byte of the main image."""

from __future__ import annotations

from typing import Any

from .stage import CompletedRequest, PostProcessingStage, register_stage

NAME = "negate"

_INVERT = bytes(255 - i for i in range(256))


@register_stage(NAME)
class NegateStage(PostProcessingStage):
    """Inverts all the bytes of the main stream buffer in place."""

    def __init__(self, app: Any):
        super().__init__(app)
        self.stream: Any = None

    def name(self) -> str:
        return NAME

    def configure(self) -> None:
        self.stream = self.app.get_main_stream()

    def process(self, request: CompletedRequest) -> bool:
        buffer = self.app.mmap(request.buffers[self.stream])[0]
        buffer[:] = bytes(buffer).translate(_INVERT)
        return False