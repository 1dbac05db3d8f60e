"""Case-insensitive substring search over assembled conversations."""

from typing import Iterable

from .core import Conversation, Message, SearchResult, SearchSnippet

DEFAULT_CONTEXT_CHARS = 50
ELLIPSIS = "..."


def find_matches(content: str, query: str) -> list[tuple[int, int]]:
    """Non-overlapping ``(start, end)`` spans of ``query`` in ``content``."""
    if not query:
        return []
    haystack = content.lower()
    needle = query.lower()
    spans = []
    start = haystack.find(needle)
    while start != -1:
        spans.append((start, start + len(needle)))
        start = haystack.find(needle, start + len(needle))
    return spans


def build_snippet(
    message: Message,
    query: str,
    context_chars: int = DEFAULT_CONTEXT_CHARS,
    matches: list[tuple[int, int]] | None = None,
) -> SearchSnippet | None:
    """Window of ``context_chars`` around the first match, or None if no match.

    Match positions are given in snippet coordinates and include only matches
    that fit entirely inside the window.
    """
    if matches is None:
        matches = find_matches(message.content, query)
    if not matches:
        return None

    content = message.content
    first_start, first_end = matches[0]
    start = max(0, first_start - context_chars)
    end = min(len(content), first_end + context_chars)

    text = content[start:end]
    shift = -start
    if start > 0:
        text = ELLIPSIS + text
        shift += len(ELLIPSIS)
    if end < len(content):
        text = text + ELLIPSIS

    positions = [(s + shift, e + shift) for s, e in matches if s >= start and e <= end]
    return SearchSnippet(message_role=message.role, text=text, match_positions=positions)


def search_conversations(
    conversations: Iterable[Conversation],
    query: str,
    context_chars: int = DEFAULT_CONTEXT_CHARS,
    limit: int | None = None,
) -> list[SearchResult]:
    """Rank conversations by total match count, most matches first."""
    if not query:
        return []

    results = []
    for conv in conversations:
        total = 0
        snippets = []
        for message in conv.messages:
            matches = find_matches(message.content, query)
            if not matches:
                continue
            total += len(matches)
            snippets.append(build_snippet(message, query, context_chars, matches))
        if total == 0:
            continue
        results.append(SearchResult(
            conversation_id=conv.id,
            display_index=conv.display_index,
            title=conv.title,
            workspace_path=conv.workspace_path,
            created_at=conv.created_at,
            match_count=total,
            snippets=snippets,
        ))

    results.sort(key=lambda r: r.match_count, reverse=True)
    if limit:
        results = results[:limit]
    return results
