"""Export conversations to Markdown and JSON formats."""

import json
from datetime import datetime

from .core import Conversation, ConversationSummary, Message, SearchResult, Workspace


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def conversation_to_markdown(conv: Conversation) -> str:
    """Export a conversation and its messages as clean Markdown."""
    lines = [f"# {conv.title}", ""]

    if conv.workspace_path:
        lines.append(f"**Workspace:** {conv.workspace_path}")
    lines.append(f"**Created:** {conv.created_at.isoformat()}")
    if conv.last_updated_at:
        lines.append(f"**Updated:** {conv.last_updated_at.isoformat()}")
    lines.append(f"**Messages:** {conv.message_count}")
    if conv.usage and conv.usage.total_input_tokens is not None:
        lines.append(
            f"**Tokens:** {conv.usage.total_input_tokens} in / {conv.usage.total_output_tokens} out"
        )
    lines.extend(["", "---", ""])

    for msg in conv.messages:
        role_label = msg.role.capitalize()
        lines.append(f"## {role_label} ({msg.timestamp.strftime('%Y-%m-%d %H:%M')})")
        lines.append("")
        lines.append(msg.content)
        lines.extend(["", "---", ""])

    return "\n".join(lines)


def summary_to_dict(summary: ConversationSummary) -> dict:
    """Convert a ConversationSummary to a JSON-serializable dict."""
    return {
        "id": summary.id,
        "index": summary.display_index,
        "title": summary.title,
        "created_at": _iso(summary.created_at),
        "last_updated_at": _iso(summary.last_updated_at),
        "message_count": summary.message_count,
        "workspace_id": summary.workspace_id,
        "workspace_path": summary.workspace_path,
        "preview": summary.preview,
    }


def message_to_dict(msg: Message) -> dict:
    """Convert a Message to a JSON-serializable dict."""
    data = {
        "id": msg.id,
        "role": msg.role,
        "content": msg.content,
        "timestamp": _iso(msg.timestamp),
        "code_blocks": [
            {"language": b.language, "content": b.content, "start_line": b.start_line}
            for b in msg.code_blocks
        ],
    }
    if msg.tool_calls:
        data["tool_calls"] = [
            {
                "name": t.name,
                "status": t.status,
                "params": t.params,
                "result": t.result,
                "error": t.error,
                "user_decision": t.user_decision,
                "files": t.files,
            }
            for t in msg.tool_calls
        ]
    if msg.thinking:
        data["thinking"] = msg.thinking
    if msg.token_usage:
        data["token_usage"] = {
            "input_tokens": msg.token_usage.input_tokens,
            "output_tokens": msg.token_usage.output_tokens,
        }
    if msg.context_window:
        data["context_window"] = {
            "tokens_used": msg.context_window.tokens_used,
            "token_limit": msg.context_window.token_limit,
            "percentage_remaining": msg.context_window.percentage_remaining,
        }
    return data


def conversation_to_dict(conv: Conversation) -> dict:
    data = summary_to_dict(conv)
    data["messages"] = [message_to_dict(m) for m in conv.messages]
    if conv.usage:
        data["usage"] = {
            "context_tokens_used": conv.usage.context_tokens_used,
            "context_token_limit": conv.usage.context_token_limit,
            "context_usage_percent": conv.usage.context_usage_percent,
            "total_input_tokens": conv.usage.total_input_tokens,
            "total_output_tokens": conv.usage.total_output_tokens,
        }
    return data


def conversation_to_json(conv: Conversation) -> str:
    """Export a conversation and its messages as structured JSON."""
    return json.dumps(conversation_to_dict(conv), indent=2, ensure_ascii=False)


def workspace_to_dict(ws: Workspace) -> dict:
    return {
        "id": ws.id,
        "path": ws.root_path,
        "store_path": str(ws.store_path),
        "conversation_count": ws.conversation_count,
    }


def search_result_to_dict(result: SearchResult) -> dict:
    return {
        "id": result.conversation_id,
        "index": result.display_index,
        "title": result.title,
        "workspace_path": result.workspace_path,
        "created_at": _iso(result.created_at),
        "match_count": result.match_count,
        "snippets": [
            {
                "role": s.message_role,
                "text": s.text,
                "match_positions": [list(p) for p in s.match_positions],
            }
            for s in result.snippets
        ],
    }


def safe_filename(title: str, ext: str) -> str:
    """Filename-safe version of a title, at most 50 characters before the extension."""
    safe = "".join(c if (c.isascii() and c.isalnum()) or c in "-_ " else "" for c in title)[:50].strip()
    return f"{safe or 'conversation'}.{ext}"
