"""Build messages and listing entries out of resolved turns."""

import dataclasses
import logging
import re
from datetime import datetime
from typing import Sequence, TypeVar

from .config import contract_path, expand_path
from .core import CodeBlock, ConversationSummary, Message, ROLE_USER
from .extractor import extract_thinking, extract_turn_text
from .formats import Turn
from .timestamps import fill_gaps, resolve_direct
from .tools import extract_tool_call
from .usage import extract_context_window_status, extract_token_usage

logger = logging.getLogger(__name__)

CODE_BLOCK_RE = re.compile(r"^```(\w*)\n(.*?)^```", re.MULTILINE | re.DOTALL)
_FENCE_RE = re.compile(r"```.*?```", re.DOTALL)
_NEWLINES_RE = re.compile(r"\n+")

PREVIEW_LENGTH = 100

S = TypeVar("S", bound=ConversationSummary)


def extract_code_blocks(content: str) -> list[CodeBlock]:
    """Find fenced code blocks that open and close at the start of a line."""
    blocks = []
    for match in CODE_BLOCK_RE.finditer(content):
        blocks.append(CodeBlock(
            language=match.group(1) or None,
            content=match.group(2).rstrip(),
            start_line=content.count("\n", 0, match.start()),
        ))
    return blocks


def extract_preview(messages: Sequence[Message]) -> str:
    """First user message with code replaced by ``[code]``, on one line."""
    first_user = next((m for m in messages if m.role == ROLE_USER), None)
    if first_user is None:
        return ""
    text = _FENCE_RE.sub("[code]", first_user.content)
    text = _NEWLINES_RE.sub(" ", text).strip()
    if len(text) <= PREVIEW_LENGTH:
        return text
    return text[:PREVIEW_LENGTH - 3] + "..."


def assemble_messages(
    turns: Sequence[Turn],
    session_created_at: datetime | None = None,
    now: datetime | None = None,
) -> list[Message]:
    """Turn decoded turns into messages, in store order.

    Timestamps are resolved over every turn before empty ones are dropped, so
    a turn with no text can still anchor its neighbours' times.
    """
    contents = []
    direct = []
    for turn in turns:
        try:
            content = turn.content if turn.content is not None else extract_turn_text(turn.doc, turn.role)
            when = resolve_direct(turn.doc)
        except (TypeError, ValueError, AttributeError) as e:
            logger.debug("Skipping unreadable turn %s: %s", turn.id, e)
            content, when = "", None
        contents.append(content)
        direct.append(when)

    timestamps = fill_gaps(direct, session_created_at, now)

    messages = []
    for turn, content, ts in zip(turns, contents, timestamps):
        if not content:
            continue
        try:
            messages.append(_build_message(turn, content, ts))
        except (TypeError, ValueError, AttributeError) as e:
            logger.debug("Skipping unreadable turn %s: %s", turn.id, e)
    return messages


def _build_message(turn: Turn, content: str, ts: datetime) -> Message:
    tool_call = extract_tool_call(turn.doc)
    return Message(
        id=turn.id,
        role=turn.role,
        content=content,
        timestamp=ts,
        code_blocks=extract_code_blocks(content),
        tool_calls=[tool_call] if tool_call else [],
        thinking=extract_thinking(turn.doc),
        token_usage=extract_token_usage(turn.doc),
        context_window=extract_context_window_status(turn.doc),
    )


def index_summaries(items: Sequence[S]) -> list[S]:
    """Sort newest first and number from 1. Returns new objects."""
    ordered = sorted(items, key=lambda s: s.created_at, reverse=True)
    return [dataclasses.replace(s, display_index=i) for i, s in enumerate(ordered, start=1)]


def matches_workspace(workspace_path: str | None, wanted: str | None) -> bool:
    """Exact or suffix match against the raw or ``~``-contracted path."""
    if not wanted:
        return True
    if not workspace_path:
        return False
    wanted = wanted.rstrip("/\\") or wanted
    path = workspace_path.rstrip("/\\") or workspace_path
    candidates = {path, contract_path(path)}
    targets = {wanted, str(expand_path(wanted))}
    return any(c == t or c.endswith(t) for c in candidates for t in targets)
