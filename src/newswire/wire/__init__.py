"""Server-side article cycling engine."""

from newswire.wire.engine import CyclingEngine
from newswire.wire.models import AdvanceResult, Article, CursorState, CycleMetadata

__all__ = [
    "AdvanceResult",
    "Article",
    "CursorState",
    "CycleMetadata",
    "CyclingEngine",
]
