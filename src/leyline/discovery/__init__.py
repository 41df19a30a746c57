"""Document discovery: front-matter scanning and the searchable index.

- ``scanner`` -- ``DocumentScanner`` and ``IndexedDocument``.
- ``index``   -- ``MetadataIndex`` (COLD -> WARMING -> WARM), ranking and
  "did you mean" suggestions.
"""

from .index import IndexState, MetadataIndex, SearchResult, levenshtein, stars
from .scanner import DocumentScanner, IndexedDocument

__all__ = [
    "DocumentScanner",
    "IndexState",
    "IndexedDocument",
    "MetadataIndex",
    "SearchResult",
    "levenshtein",
    "stars",
]
