"""Front-matter scanner for corpus documents.

A document is a Markdown file that starts with a YAML front-matter block::

    ---
    id: simplicity
    last_modified: '2025-01-01'
    ---
    # Simplicity Above All
    ...

Files without front matter are not documents and are skipped.
"""

from __future__ import annotations

import json
import logging
from pathlib import PurePosixPath
from typing import Any

import yaml
from pydantic import BaseModel

from ..cache.content_cache import hash_content
from ..file_handler import decode_bytes
from ..sync.categories import category_for_path, document_type_for_path

logger = logging.getLogger(__name__)

MAX_FRONT_MATTER_SIZE = 8 * 1024
CONTENT_PREVIEW_LENGTH = 200

_FRONT_MATTER_OPEN = "---\n"
_FRONT_MATTER_CLOSE = "\n---\n"


class IndexedDocument(BaseModel):
    """Searchable metadata for one document.

    Attributes:
        id: Front-matter ``id`` (file stem when absent).
        title: First heading after the front matter.
        type: ``tenet``, ``binding`` or ``unknown``.
        category: Category derived from the document's location.
        path: Relative POSIX path inside the corpus.
        content: Document body (front matter removed).
        content_preview: Up to 200 characters of body text.
        metadata: Parsed front matter (JSON-compatible values).
        content_hash: SHA-256 of the raw file bytes.
        size: Raw size in bytes.
    """

    id: str
    title: str
    type: str
    category: str
    path: str
    content: str
    content_preview: str
    metadata: dict[str, Any] = {}
    content_hash: str
    size: int = 0

    model_config = {"frozen": True}


class DocumentScanner:
    """Parse raw document bytes into ``IndexedDocument`` values."""

    def __init__(self) -> None:
        self.files_scanned = 0
        self.parse_errors = 0
        self.bytes_processed = 0

    def scan(self, raw: bytes, relative_path: str) -> IndexedDocument | None:
        """Parse one document.

        Returns:
            The document, or ``None`` if it has no usable front matter.
        """
        self.bytes_processed += len(raw)
        text, _encoding = decode_bytes(raw)
        text = text.lstrip("\ufeff").replace("\r\n", "\n")

        parsed = self._split_front_matter(text, relative_path)
        if parsed is None:
            return None
        front_matter, body = parsed

        self.files_scanned += 1
        stem = PurePosixPath(relative_path).stem
        doc_id = front_matter.get("id")
        return IndexedDocument(
            id=str(doc_id) if doc_id is not None else stem,
            title=extract_title(body) or fallback_title(stem),
            type=document_type_for_path(relative_path),
            category=category_for_path(relative_path),
            path=relative_path,
            content=body,
            content_preview=extract_preview(body),
            metadata=_json_safe(front_matter),
            content_hash=hash_content(raw),
            size=len(raw),
        )

    def statistics(self) -> dict:
        return {
            "files_scanned": self.files_scanned,
            "yaml_parse_errors": self.parse_errors,
            "total_bytes_processed": self.bytes_processed,
        }

    def _split_front_matter(
        self, text: str, relative_path: str
    ) -> tuple[dict, str] | None:
        if not text.startswith(_FRONT_MATTER_OPEN):
            return None
        start = len(_FRONT_MATTER_OPEN)
        end = text.find(_FRONT_MATTER_CLOSE, start - 1)
        if end == -1:
            return None

        block = text[start:end] if end >= start else ""
        if len(block.encode("utf-8")) > MAX_FRONT_MATTER_SIZE:
            logger.warning(
                "Front matter of %s exceeds %d bytes, skipping",
                relative_path,
                MAX_FRONT_MATTER_SIZE,
            )
            return None

        try:
            data = yaml.safe_load(block)
        except yaml.YAMLError as exc:
            self.parse_errors += 1
            logger.warning("YAML parse error in %s: %s", relative_path, exc)
            return None
        if not isinstance(data, dict):
            return None
        return data, text[end + len(_FRONT_MATTER_CLOSE):]


# ---------------------------------------------------------------------------
# Body helpers
# ---------------------------------------------------------------------------


def extract_title(body: str) -> str | None:
    for line in body.splitlines():
        stripped = line.strip()
        if stripped.startswith("#"):
            title = stripped.lstrip("#").strip()
            if title:
                return title
    return None


def fallback_title(stem: str) -> str:
    return stem.replace("-", " ").capitalize()


def extract_preview(body: str, limit: int = CONTENT_PREVIEW_LENGTH) -> str:
    """First *limit* characters of prose, cut at a word boundary."""
    words: list[str] = []
    length = 0
    for line in body.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue
        words.append(stripped)
        length += len(stripped) + 1
        if length >= limit:
            break

    preview = " ".join(words)
    if len(preview) > limit:
        cut = preview[:limit]
        space = cut.rfind(" ")
        if space > 0:
            cut = cut[:space]
        preview = cut.rstrip() + "..."
    return preview.strip()


def _json_safe(data: dict) -> dict:
    # Dates and other YAML scalars (keys included) become strings, matching
    # what a persisted snapshot reloads as.
    return json.loads(json.dumps(_stringify_keys(data), default=str))


def _stringify_keys(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            (k if isinstance(k, str) else str(k)): _stringify_keys(v)
            for k, v in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [_stringify_keys(v) for v in value]
    return value
