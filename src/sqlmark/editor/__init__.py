"""Editor package containing the headless tracked-range text buffer."""

from .text_buffer import (
    ContentChange,
    ContentChangedEvent,
    RangeSpec,
    TextEdit,
    TrackedRangeInfo,
    TrackedRangeProvider,
    TrackedTextBuffer,
)

__all__ = [
    "ContentChange",
    "ContentChangedEvent",
    "RangeSpec",
    "TextEdit",
    "TrackedRangeInfo",
    "TrackedRangeProvider",
    "TrackedTextBuffer",
]
