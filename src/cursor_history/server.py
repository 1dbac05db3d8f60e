"""Read-only FastAPI server for browsing Cursor chat history locally."""

import logging

from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import Response

from .errors import ConversationNotFoundError, CursorHistoryError
from .export import (
    conversation_to_dict,
    conversation_to_json,
    conversation_to_markdown,
    safe_filename,
    search_result_to_dict,
    summary_to_dict,
    workspace_to_dict,
)
from .history import CursorHistory, to_summary

logger = logging.getLogger(__name__)

app = FastAPI(title="cursor-history", version="0.1.0")

# History cache (populated on first request)
_history: CursorHistory | None = None


def _get_history() -> CursorHistory:
    """Lazily initialize and cache the history reader."""
    global _history
    if _history is None:
        _history = CursorHistory()
        logger.info("Reading Cursor data from %s", _history.data_path)
    return _history


def _load_conversation(index: str, workspace: str | None):
    try:
        return _get_history().get_conversation(index, workspace=workspace)
    except ConversationNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except CursorHistoryError as e:
        logger.error("Failed to load conversation %s: %s", index, e)
        raise HTTPException(status_code=500, detail="Failed to load conversation")


# ── Routes ───────────────────────────────────────────────────────


@app.get("/api/workspaces")
async def get_workspaces():
    """Return workspaces with chat history, most conversations first."""
    try:
        scan = _get_history().scan_workspaces()
    except CursorHistoryError as e:
        logger.error("Failed to scan workspaces: %s", e)
        raise HTTPException(status_code=500, detail="Failed to scan workspaces")
    return {
        "workspaces": [workspace_to_dict(w) for w in scan.workspaces],
        "failures": [{"path": str(f.path), "reason": f.reason} for f in scan.failures],
    }


@app.get("/api/conversations")
async def get_conversations(
    workspace: str | None = Query(None, description="Filter by workspace path"),
    search: str | None = Query(None, description="Search in titles and previews"),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
):
    """Return conversation summaries, newest first."""
    try:
        conversations = _get_history().load_conversations(workspace)
    except CursorHistoryError as e:
        logger.error("Failed to list conversations: %s", e)
        raise HTTPException(status_code=500, detail="Failed to list conversations")

    summaries = [to_summary(c) for c in conversations]
    if search:
        needle = search.lower()
        summaries = [
            s for s in summaries
            if needle in s.title.lower() or needle in s.preview.lower()
        ]

    return {
        "total": len(summaries),
        "conversations": [summary_to_dict(s) for s in summaries[offset: offset + limit]],
    }


@app.get("/api/conversation/{index}")
async def get_conversation(index: str, workspace: str | None = Query(None)):
    """Return a full conversation by display index or id."""
    return conversation_to_dict(_load_conversation(index, workspace))


@app.get("/api/search")
async def search_conversations(
    q: str = Query(..., description="Search query"),
    context: int = Query(50, ge=0, le=1000),
    limit: int = Query(20, ge=1, le=1000),
    workspace: str | None = Query(None),
):
    """Full-text search across message content."""
    try:
        results = _get_history().search(q, workspace=workspace, context_chars=context, limit=limit)
    except CursorHistoryError as e:
        logger.error("Search failed for %r: %s", q, e)
        raise HTTPException(status_code=500, detail="Search failed")
    return {"query": q, "results": [search_result_to_dict(r) for r in results]}


@app.get("/api/export/{index}")
async def export_conversation(
    index: str,
    format: str = Query("md", description="Export format: md or json"),
    workspace: str | None = Query(None),
):
    """Export a conversation as Markdown or JSON."""
    conv = _load_conversation(index, workspace)

    if format == "json":
        return Response(
            content=conversation_to_json(conv),
            media_type="application/json",
            headers={"Content-Disposition": f'attachment; filename="{safe_filename(conv.title, "json")}"'},
        )
    return Response(
        content=conversation_to_markdown(conv),
        media_type="text/markdown",
        headers={"Content-Disposition": f'attachment; filename="{safe_filename(conv.title, "md")}"'},
    )
