"""Cursor chat history reader.

Reads chat data from Cursor's SQLite databases (state.vscdb) in both
workspace-level and global storage locations. All database access is read-only.

Layout on disk::

    workspaceStorage/<hash>/workspace.json   {"folder": "file:///path/to/project"}
    workspaceStorage/<hash>/state.vscdb      ItemTable: conversation container
    globalStorage/state.vscdb                cursorDiskKV: per-turn rows

Composer conversations keep their turns as ``bubbleId:<composerId>:<turnId>``
rows, normally in the global store and in older builds in the workspace store
itself. When neither has any, the workspace's ``aiService.generations`` log is
used: entries inside the conversation's time window become user messages.
"""

import dataclasses
import json
import logging
import urllib.parse
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .assembler import assemble_messages, extract_preview, index_summaries, matches_workspace
from .config import get_cursor_global_path, get_cursor_workspace_path, validate_options
from .core import ROLE_USER, Conversation, ConversationSummary, SearchResult, Workspace
from .drivers import StoreDriver, select_driver
from .errors import ConversationNotFoundError, MalformedRowError, StoreUnavailableError
from .extractor import role_from_turn
from .formats import (
    CHAT_DATA_KEYS,
    ComposerFormat,
    ComposerHead,
    ContainerFormat,
    LegacyArrayFormat,
    LegacySession,
    LegacyTabsFormat,
    Turn,
    UnrecognizedFormat,
    derive_title,
    detect_format,
)
from .search import DEFAULT_CONTEXT_CHARS, search_conversations
from .store import DISK_KV_TABLE, RowStore, load_document
from .timestamps import ms_to_datetime, to_datetime
from .usage import extract_session_usage

logger = logging.getLogger(__name__)

TURN_PREFIX = "bubbleId:"
CONVERSATION_HEAD_PREFIX = "composerData:"
GENERATIONS_KEY = "aiService.generations"
PROMPTS_KEY = "aiService.prompts"
GENERATION_WINDOW_MS = 60_000
GLOBAL_WORKSPACE_ID = "global"
UNTITLED = "Untitled"


@dataclass
class ScanFailure:
    """A workspace store that could not be read."""

    path: Path
    reason: str


@dataclass
class WorkspaceScan:
    workspaces: list[Workspace] = field(default_factory=list)
    failures: list[ScanFailure] = field(default_factory=list)


class CursorHistory:
    """Read-only view over one Cursor installation's chat history.

    The SQLite driver is chosen on first use and kept for the lifetime of the
    instance. Pass ``driver`` (a name or a :class:`StoreDriver`) to pin it.
    """

    def __init__(
        self,
        data_path: str | Path | None = None,
        global_path: str | Path | None = None,
        driver: StoreDriver | str | None = None,
    ):
        self.data_path = get_cursor_workspace_path(data_path)
        self.global_path = Path(global_path) if global_path else get_cursor_global_path(data_path)
        self._driver_choice = driver
        self._driver: StoreDriver | None = None
        self.failures: list[ScanFailure] = []

    @property
    def driver(self) -> StoreDriver:
        if self._driver is None:
            if isinstance(self._driver_choice, StoreDriver):
                self._driver = self._driver_choice
            else:
                self._driver = select_driver(self._driver_choice)
        return self._driver

    def is_available(self) -> bool:
        return self.data_path.is_dir() or self.global_path.is_file()

    def open_store(self, path: Path) -> RowStore:
        return RowStore.open(path, self.driver)

    # ── Workspaces ───────────────────────────────────────────────────

    def scan_workspaces(self) -> WorkspaceScan:
        """Find every workspace with chat data, most conversations first."""
        scan = WorkspaceScan()
        for ws_id, root_path, db_path in self._workspace_dirs():
            try:
                with self.open_store(db_path) as store:
                    count = _container_size(self._read_container(store))
            except StoreUnavailableError as e:
                logger.warning("Skipping workspace %s: %s", ws_id, e)
                scan.failures.append(ScanFailure(db_path, e.reason))
                continue
            if count == 0:
                continue
            scan.workspaces.append(Workspace(
                id=ws_id,
                root_path=root_path,
                store_path=db_path,
                conversation_count=count,
            ))

        scan.workspaces.sort(key=lambda w: w.conversation_count, reverse=True)
        self.failures = scan.failures
        return scan

    def list_workspaces(self) -> list[Workspace]:
        return self.scan_workspaces().workspaces

    # ── Conversations ────────────────────────────────────────────────

    def list_conversations(
        self,
        workspace: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[ConversationSummary]:
        """Summaries across all workspaces, newest first, numbered from 1."""
        validate_options(limit=limit, offset=offset)
        summaries = [to_summary(c) for c in self.load_conversations(workspace)]
        end = offset + limit if limit else None
        return summaries[offset:end]

    def get_conversation(self, identifier: int | str, workspace: str | None = None) -> Conversation:
        """Look a conversation up by display index or by id.

        Raises ConversationNotFoundError.
        """
        conversations = self.load_conversations(workspace)
        index = resolve_identifier(identifier)
        if index is not None:
            if 1 <= index <= len(conversations):
                return conversations[index - 1]
            raise ConversationNotFoundError(index, len(conversations))

        for conv in conversations:
            if conv.id == identifier:
                return conv
        return self.get_global_conversation(identifier)

    def search(
        self,
        query: str,
        workspace: str | None = None,
        context_chars: int = DEFAULT_CONTEXT_CHARS,
        limit: int | None = None,
    ) -> list[SearchResult]:
        validate_options(limit=limit, context_chars=context_chars)
        if not query:
            return []
        return search_conversations(self.load_conversations(workspace), query, context_chars, limit)

    def load_conversations(self, workspace: str | None = None) -> list[Conversation]:
        """Assemble every workspace conversation, sorted and indexed.

        ``workspace`` filters by project path before numbering, so indexes
        are relative to the filtered list.
        """
        self.failures = []
        conversations: list[Conversation] = []
        global_store = self._open_global()
        try:
            for ws_id, root_path, db_path in self._workspace_dirs():
                if not matches_workspace(root_path, workspace):
                    continue
                try:
                    with self.open_store(db_path) as store:
                        conversations.extend(
                            self._read_workspace_conversations(store, ws_id, root_path, global_store)
                        )
                except StoreUnavailableError as e:
                    logger.warning("Skipping workspace %s: %s", ws_id, e)
                    self.failures.append(ScanFailure(db_path, e.reason))
        finally:
            if global_store is not None:
                global_store.close()
        return index_summaries(conversations)

    # ── Global storage ───────────────────────────────────────────────

    def list_global_conversations(self, limit: int | None = None) -> list[ConversationSummary]:
        """Conversations found only through ``composerData:`` heads in global storage."""
        validate_options(limit=limit)
        summaries = [to_summary(c) for c in self.load_global_conversations()]
        return summaries[:limit] if limit else summaries

    def get_global_conversation(self, identifier: int | str) -> Conversation:
        conversations = self.load_global_conversations()
        index = resolve_identifier(identifier)
        if index is not None:
            if 1 <= index <= len(conversations):
                return conversations[index - 1]
            raise ConversationNotFoundError(index, len(conversations))
        for conv in conversations:
            if conv.id == identifier:
                return conv
        raise ConversationNotFoundError(str(identifier))

    def load_global_conversations(self) -> list[Conversation]:
        global_store = self._open_global()
        if global_store is None:
            return []

        conversations = []
        with global_store:
            for row in global_store.scan_by_prefix(CONVERSATION_HEAD_PREFIX):
                try:
                    head = load_document(row)
                except MalformedRowError as e:
                    logger.debug("Skipping %s", e)
                    continue
                if not isinstance(head, dict):
                    continue
                composer_id = head.get("composerId") or row.key[len(CONVERSATION_HEAD_PREFIX):]
                turns = self._composer_turns(composer_id, (global_store,))
                if not turns:
                    continue
                conv = self._build_conversation(
                    conversation_id=composer_id,
                    turns=turns,
                    name=head.get("name") or head.get("title"),
                    created=to_datetime(head.get("createdAt")),
                    updated=to_datetime(head.get("lastUpdatedAt") or head.get("updatedAt")),
                    workspace_id=GLOBAL_WORKSPACE_ID,
                    workspace_path=_uri_to_path(head.get("workspaceUri")),
                    head_doc=head,
                )
                if conv is not None:
                    conversations.append(conv)
        return index_summaries(conversations)

    # ── Private helpers ──────────────────────────────────────────────

    def _workspace_dirs(self):
        base = self.data_path
        if not base.is_dir():
            return
        for ws_dir in sorted(base.iterdir()):
            if not ws_dir.is_dir():
                continue
            db_path = ws_dir / "state.vscdb"
            if not db_path.exists():
                continue
            root_path = read_workspace_path(ws_dir)
            if not root_path:
                continue
            yield ws_dir.name, root_path, db_path

    def _open_global(self) -> RowStore | None:
        if not self.global_path.is_file():
            return None
        try:
            return self.open_store(self.global_path)
        except StoreUnavailableError as e:
            logger.warning("Global storage unavailable: %s", e)
            return None

    def _read_container(self, store: RowStore) -> ContainerFormat:
        """First recognized container under the known keys, in priority order."""
        result: ContainerFormat = UnrecognizedFormat("no chat data")
        for key in CHAT_DATA_KEYS:
            row = store.lookup(key)
            if row is None or not row.value:
                continue
            fmt = detect_format(row)
            if not isinstance(fmt, UnrecognizedFormat):
                return fmt
            logger.warning("Unrecognized %s in %s: %s", key, store.path, fmt.reason)
            result = fmt
        return result

    def _read_workspace_conversations(
        self,
        store: RowStore,
        ws_id: str,
        root_path: str,
        global_store: RowStore | None,
    ) -> list[Conversation]:
        fmt = self._read_container(store)
        conversations: list[Conversation | None] = []

        if isinstance(fmt, ComposerFormat):
            prompts = None
            for head in fmt.heads:
                conv = self._composer_conversation(head, store, global_store, ws_id, root_path)
                if conv is not None and conv.title == UNTITLED:
                    if prompts is None:
                        prompts = _read_prompts(store)
                    if prompts:
                        conv = dataclasses.replace(conv, title=_truncate(prompts[0], 50))
                conversations.append(conv)
        elif isinstance(fmt, (LegacyArrayFormat, LegacyTabsFormat)):
            for session in fmt.sessions:
                conversations.append(self._legacy_conversation(session, ws_id, root_path))
        elif isinstance(fmt, UnrecognizedFormat):
            logger.debug("No conversations in %s: %s", store.path, fmt.reason)

        return [c for c in conversations if c is not None]

    def _composer_conversation(
        self,
        head: ComposerHead,
        store: RowStore,
        global_store: RowStore | None,
        ws_id: str,
        root_path: str,
    ) -> Conversation | None:
        stores = tuple(s for s in (global_store, store) if s is not None)
        turns = self._composer_turns(head.composer_id, stores)
        if not turns:
            turns = _generation_turns(store, head)

        head_doc = None
        if global_store is not None:
            row = global_store.lookup(CONVERSATION_HEAD_PREFIX + head.composer_id, table=DISK_KV_TABLE)
            if row is not None:
                try:
                    head_doc = load_document(row)
                except MalformedRowError as e:
                    logger.debug("Skipping %s", e)

        return self._build_conversation(
            conversation_id=head.composer_id,
            turns=turns,
            name=head.name,
            created=ms_to_datetime(head.created_at),
            updated=ms_to_datetime(head.last_updated_at),
            workspace_id=ws_id,
            workspace_path=root_path,
            head_doc=head_doc if isinstance(head_doc, dict) else None,
        )

    def _composer_turns(self, composer_id: str, stores: tuple[RowStore, ...]) -> list[Turn]:
        """Turn rows from the first store that has any, in row order."""
        for store in stores:
            turns = []
            for row in store.scan_by_prefix(f"{TURN_PREFIX}{composer_id}:"):
                try:
                    doc = load_document(row)
                except MalformedRowError as e:
                    logger.debug("Skipping %s", e)
                    continue
                if not isinstance(doc, dict):
                    continue
                turn_id = doc.get("bubbleId") or row.key.rsplit(":", 1)[-1]
                turns.append(Turn(id=turn_id, role=role_from_turn(doc), doc=doc))
            if turns:
                return turns
        return []

    def _legacy_conversation(self, session: LegacySession, ws_id: str, root_path: str) -> Conversation | None:
        return self._build_conversation(
            conversation_id=session.id,
            turns=list(session.turns),
            name=session.title,
            created=to_datetime(session.created_at),
            updated=to_datetime(session.last_updated_at),
            workspace_id=ws_id,
            workspace_path=root_path,
        )

    def _build_conversation(
        self,
        conversation_id: str,
        turns: list[Turn],
        name: str | None,
        created: datetime | None,
        updated: datetime | None,
        workspace_id: str,
        workspace_path: str | None,
        head_doc: dict | None = None,
    ) -> Conversation | None:
        messages = assemble_messages(turns, created)
        if not messages:
            return None

        return Conversation(
            id=conversation_id,
            display_index=0,
            title=name or derive_title(messages) or UNTITLED,
            created_at=created or messages[0].timestamp,
            last_updated_at=updated or messages[-1].timestamp,
            message_count=len(messages),
            workspace_id=workspace_id,
            workspace_path=workspace_path,
            preview=extract_preview(messages),
            messages=messages,
            usage=extract_session_usage(head_doc, messages),
        )


def to_summary(conv: Conversation) -> ConversationSummary:
    """Drop messages and usage, keeping the listing fields."""
    return ConversationSummary(**{
        f.name: getattr(conv, f.name) for f in dataclasses.fields(ConversationSummary)
    })


def resolve_identifier(identifier: int | str) -> int | None:
    """Return a display index for numeric identifiers, None for ids."""
    if isinstance(identifier, bool):
        return None
    if isinstance(identifier, int):
        return identifier
    text = str(identifier).strip()
    return int(text) if text.isdigit() else None


def read_workspace_path(ws_dir: Path) -> str | None:
    """Extract the project path from workspace.json."""
    ws_json = ws_dir / "workspace.json"
    if not ws_json.exists():
        return None
    try:
        data = json.loads(ws_json.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("Failed to read workspace.json in %s: %s", ws_dir, e)
        return None
    if not isinstance(data, dict):
        return None
    return _uri_to_path(data.get("folder") or data.get("workspace"))


def _uri_to_path(uri: Any) -> str | None:
    if not uri or not isinstance(uri, str):
        return None
    if uri.startswith("file://"):
        return urllib.parse.unquote(uri[7:])
    return uri


def _container_size(fmt: ContainerFormat) -> int:
    if isinstance(fmt, ComposerFormat):
        return len(fmt.heads)
    if isinstance(fmt, (LegacyArrayFormat, LegacyTabsFormat)):
        return len(fmt.sessions)
    return 0


def _read_json_item(store: RowStore, key: str) -> Any:
    row = store.lookup(key)
    if row is None or not row.value:
        return None
    try:
        return load_document(row)
    except MalformedRowError as e:
        logger.debug("Skipping %s", e)
        return None


def _read_prompts(store: RowStore) -> list[str]:
    """User prompt texts from aiService.prompts (no timestamps)."""
    data = _read_json_item(store, PROMPTS_KEY)
    if not isinstance(data, list):
        return []
    return [p["text"] for p in data if isinstance(p, dict) and isinstance(p.get("text"), str) and p["text"]]


def _generation_turns(store: RowStore, head: ComposerHead) -> list[Turn]:
    """Generations inside ``[createdAt, lastUpdatedAt + 60s]`` as user turns."""
    data = _read_json_item(store, GENERATIONS_KEY)
    if not isinstance(data, list):
        return []

    start = head.created_at or 0
    end = head.last_updated_at
    if end is None:
        end = int(datetime.now(timezone.utc).timestamp() * 1000)
    end += GENERATION_WINDOW_MS

    entries = [
        g for g in data
        if isinstance(g, dict)
        and isinstance(g.get("unixMs"), (int, float))
        and start <= g["unixMs"] <= end
        and isinstance(g.get("textDescription"), str)
        and g["textDescription"]
    ]
    entries.sort(key=lambda g: g["unixMs"])
    return [
        Turn(
            id=g.get("generationUUID"),
            role=ROLE_USER,
            doc={"createdAt": g["unixMs"]},
            content=g["textDescription"],
        )
        for g in entries
    ]


def _truncate(text: str, max_len: int) -> str:
    """Truncate text to max_len, adding ellipsis if needed."""
    text = text.split("\n")[0]
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."

