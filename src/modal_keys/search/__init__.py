"""Incremental multi-cursor text search."""

from .args import MatchStepArgs, SearchArgs, SearchOffset
from .controller import (
    CURRENT_MATCH,
    OTHER_MATCHES,
    SEARCH_MODE,
    SearchController,
    SearchState,
)
from .matcher import (
    InvalidPatternError,
    adjust_search_position,
    lines_of,
    search_matches,
)

__all__ = [
    "CURRENT_MATCH",
    "OTHER_MATCHES",
    "SEARCH_MODE",
    "InvalidPatternError",
    "MatchStepArgs",
    "SearchArgs",
    "SearchController",
    "SearchOffset",
    "SearchState",
    "adjust_search_position",
    "lines_of",
    "search_matches",
]
