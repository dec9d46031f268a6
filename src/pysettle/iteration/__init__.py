"""
Iteration module - lazy async sequences.

- cursor: AsyncSource / AsyncCursor protocol and IterResult
- sources: IterableSource, UnfoldSource, AsyncGeneratorSource
- consume: for_each, collect
"""

from pysettle.iteration.consume import collect, cursor_of, for_each
from pysettle.iteration.cursor import AsyncCursor, AsyncSource, IterResult
from pysettle.iteration.sources import (
    UNFOLD_DONE,
    AsyncGeneratorSource,
    IterableSource,
    UnfoldSource,
)

__all__ = [
    "IterResult",
    "AsyncSource",
    "AsyncCursor",
    "IterableSource",
    "UnfoldSource",
    "UNFOLD_DONE",
    "AsyncGeneratorSource",
    "for_each",
    "collect",
    "cursor_of",
]
