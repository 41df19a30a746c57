"""Output formatting for the discovery commands (categories, show, search)."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .index import SearchResult
    from .scanner import IndexedDocument


def format_stars(count: int) -> str:
    count = max(0, min(5, count))
    return "★" * count + "☆" * (5 - count)


def format_categories(counts: dict[str, int]) -> str:
    if not counts:
        return "No documents found. Run 'leyline sync' first."
    width = max(len(name) for name in counts)
    lines = [f"Available categories ({len(counts)}):"]
    for name, count in counts.items():
        lines.append(f"  {name.ljust(width)}  {count} documents")
    return "\n".join(lines)


def format_documents(
    category: str, documents: list[IndexedDocument], verbose: bool = False
) -> str:
    lines = [f"Category '{category}' ({len(documents)} documents):", ""]
    for doc in documents:
        lines.append(f"  {doc.title} [{doc.id}]")
        if verbose:
            lines.append(f"    {doc.path}")
        if doc.content_preview:
            lines.append(f"    {doc.content_preview}")
        lines.append("")
    return "\n".join(lines).rstrip()


def format_search(
    query: str, results: list[SearchResult], suggestions: list[str]
) -> str:
    if not results:
        lines = [f"No results for '{query}'."]
        if suggestions:
            lines.append("")
            lines.append("Did you mean:")
            lines.extend(f"  {s}" for s in suggestions)
        return "\n".join(lines)

    lines = [f"Results for '{query}' ({len(results)}):", ""]
    for number, result in enumerate(results, start=1):
        doc = result.document
        lines.append(
            f"{number:2d}. {doc.title} [{doc.category}]  "
            f"{format_stars(result.stars)} ({result.score})"
        )
        lines.append(f"    {doc.path}")
        if doc.content_preview:
            lines.append(f"    {doc.content_preview}")
        lines.append("")
    return "\n".join(lines).rstrip()


def document_to_json(doc: IndexedDocument) -> dict:
    return doc.model_dump(mode="json", exclude={"content"})


def search_to_json(
    query: str, results: list[SearchResult], suggestions: list[str]
) -> dict:
    return {
        "query": query,
        "results": [
            {
                "score": r.score,
                "stars": r.stars,
                "document": document_to_json(r.document),
            }
            for r in results
        ],
        "suggestions": suggestions,
    }
