"""Detection of the container layouts Cursor has used for chat data.

A workspace store keeps its conversation list in one ``ItemTable`` row. Three
layouts are known:

- composer: ``{"allComposers": [head, ...]}`` (or a bare list of heads in
  early builds). Each head points at per-turn rows in ``cursorDiskKV``.
- legacy array: ``{"chatSessions": [session, ...]}`` with embedded messages.
- legacy tabs: ``{"tabs": [session, ...]}`` with embedded ``bubbles``.

Anything else classifies as :class:`UnrecognizedFormat`; it is a value, not an
exception, so callers simply yield no conversations for it.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Sequence, Union

from .core import ROLE_ASSISTANT, ROLE_USER, RawRow

COMPOSER_DATA_KEY = "composer.composerData"
LEGACY_AICHAT_KEY = "workbench.panel.aichat.view.aichat.chatdata"
LEGACY_CHAT_KEY = "workbench.panel.chat.view.chat.chatdata"
CHAT_DATA_KEYS = (COMPOSER_DATA_KEY, LEGACY_AICHAT_KEY, LEGACY_CHAT_KEY)

_ASSISTANT_ROLES = {"assistant", "ai", "bot", "system"}


@dataclass(frozen=True)
class Turn:
    """One conversation turn waiting to be turned into a message.

    ``content`` is preset for legacy messages, whose text field is known;
    composer turns leave it None and go through the extractor.
    """

    id: str | None
    role: str
    doc: dict
    content: str | None = None


@dataclass(frozen=True)
class ComposerHead:
    composer_id: str
    name: str | None = None
    created_at: int | None = None  # unix ms
    last_updated_at: int | None = None  # unix ms
    mode: str | None = None


@dataclass(frozen=True)
class LegacySession:
    id: str
    title: str | None
    created_at: Any  # ms number or ISO string as stored
    last_updated_at: Any
    turns: tuple[Turn, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ComposerFormat:
    heads: tuple[ComposerHead, ...]


@dataclass(frozen=True)
class LegacyArrayFormat:
    sessions: tuple[LegacySession, ...]


@dataclass(frozen=True)
class LegacyTabsFormat:
    sessions: tuple[LegacySession, ...]


@dataclass(frozen=True)
class UnrecognizedFormat:
    reason: str


ContainerFormat = Union[ComposerFormat, LegacyArrayFormat, LegacyTabsFormat, UnrecognizedFormat]


def detect_format(raw: RawRow | bytes | str | Any) -> ContainerFormat:
    """Classify a container blob (row, bytes, text or decoded document)."""
    if isinstance(raw, RawRow):
        raw = raw.value
    if isinstance(raw, (bytes, bytearray)):
        raw = bytes(raw).decode("utf-8", errors="replace")
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            return UnrecognizedFormat(f"invalid JSON: {e}")

    if isinstance(raw, list):
        if raw and all(isinstance(h, dict) and "composerId" in h for h in raw):
            return ComposerFormat(tuple(_parse_heads(raw)))
        return UnrecognizedFormat("list without composer heads")

    if not isinstance(raw, dict):
        return UnrecognizedFormat(f"unexpected document type {type(raw).__name__}")

    if isinstance(raw.get("allComposers"), list):
        return ComposerFormat(tuple(_parse_heads(raw["allComposers"])))
    if isinstance(raw.get("chatSessions"), list):
        return LegacyArrayFormat(tuple(_parse_sessions(raw["chatSessions"])))
    if isinstance(raw.get("tabs"), list):
        return LegacyTabsFormat(tuple(_parse_sessions(raw["tabs"])))

    return UnrecognizedFormat("no allComposers, chatSessions or tabs")


def normalize_role(value: Any) -> str:
    """Map a legacy role/type label onto user or assistant."""
    if isinstance(value, str) and value.lower() in _ASSISTANT_ROLES:
        return ROLE_ASSISTANT
    return ROLE_USER


def derive_title(items: Sequence[Any]) -> str | None:
    """Title from the first user entry's first line, at most 50 characters.

    Works on anything with ``role`` and ``content``: turns or messages.
    """
    first_user = next((t for t in items if t.role == ROLE_USER), None)
    if first_user is None:
        return None
    first_line = (first_user.content or "").split("\n")[0]
    if len(first_line) <= 50:
        return first_line or None
    return first_line[:47] + "..."


def _parse_heads(items: list) -> list[ComposerHead]:
    heads = []
    for item in items:
        if not isinstance(item, dict):
            continue
        composer_id = item.get("composerId")
        if not composer_id or not isinstance(composer_id, str):
            continue
        name = item.get("name")
        heads.append(ComposerHead(
            composer_id=composer_id,
            name=name.strip() if isinstance(name, str) and name.strip() else None,
            created_at=_as_ms(item.get("createdAt")),
            last_updated_at=_as_ms(item.get("lastUpdatedAt")),
            mode=item.get("unifiedMode") or item.get("forceMode"),
        ))
    return heads


def _parse_sessions(items: list) -> list[LegacySession]:
    sessions = []
    for raw in items:
        if not isinstance(raw, dict):
            continue
        session_id = raw.get("id") or raw.get("tabId")
        if not session_id:
            continue

        raw_messages = raw.get("messages")
        if raw_messages is None:
            raw_messages = raw.get("bubbles")
        turns = [t for t in map(_parse_legacy_message, raw_messages or []) if t is not None]
        if not turns:
            continue

        created = raw.get("createdAt")
        if created is None:
            created = turns[0].doc.get("createdAt")
        updated = raw.get("lastUpdatedAt")
        if updated is None:
            updated = raw.get("lastSendTime")
        if updated is None:
            updated = turns[-1].doc.get("createdAt")

        title = raw.get("title") or raw.get("chatTitle") or derive_title(turns)
        sessions.append(LegacySession(
            id=str(session_id),
            title=title,
            created_at=created,
            last_updated_at=updated,
            turns=tuple(turns),
        ))
    return sessions


def _parse_legacy_message(raw: Any) -> Turn | None:
    if not isinstance(raw, dict):
        return None
    content = raw.get("content")
    if not isinstance(content, str) or not content:
        content = raw.get("text") if isinstance(raw.get("text"), str) else ""
    label = raw.get("role") or raw.get("type")
    if not content and not label:
        return None

    doc = dict(raw)
    # Only the message's own time is a direct clock source for legacy entries
    doc.pop("timingInfo", None)
    stamp = raw.get("timestamp")
    if stamp is None:
        stamp = raw.get("createdAt")
    doc["createdAt"] = stamp
    return Turn(id=raw.get("id"), role=normalize_role(label), doc=doc, content=content)


def _as_ms(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    return None
