"""Shared test fixtures for cursor-history."""

import json
import sqlite3
from datetime import datetime, timezone

import pytest

from cursor_history import CursorHistory


def _ms(*args) -> int:
    return int(datetime(*args, tzinfo=timezone.utc).timestamp() * 1000)


NOW_MS = _ms(2025, 1, 15, 10, 0, 0)
LATER_MS = _ms(2025, 1, 15, 11, 0, 0)
MUCH_LATER_MS = _ms(2025, 1, 15, 14, 0, 0)
GLOBAL_ONLY_MS = _ms(2025, 1, 10, 9, 0, 0)
LEGACY_MS = _ms(2025, 1, 12, 8, 0, 0)


def write_store(db_path, items=None, disk_kv=None):
    """Create a state.vscdb with the two Cursor tables and the given rows.

    ``items`` and ``disk_kv`` map keys to values; non-string values are JSON
    encoded. Rows are inserted in the given order.
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path))
    conn.execute("CREATE TABLE ItemTable (key TEXT UNIQUE ON CONFLICT REPLACE, value BLOB)")
    conn.execute("CREATE TABLE cursorDiskKV (key TEXT UNIQUE ON CONFLICT REPLACE, value BLOB)")
    for table, rows in (("ItemTable", items or {}), ("cursorDiskKV", disk_kv or {})):
        for key, value in rows.items():
            if not isinstance(value, (str, bytes)):
                value = json.dumps(value)
            conn.execute(f"INSERT INTO {table} VALUES (?, ?)", (key, value))
    conn.commit()
    conn.close()
    return db_path


def write_workspace(ws_storage, ws_hash, folder, items=None, disk_kv=None):
    ws_dir = ws_storage / ws_hash
    ws_dir.mkdir(parents=True, exist_ok=True)
    (ws_dir / "workspace.json").write_text(json.dumps({"folder": folder}), encoding="utf-8")
    return write_store(ws_dir / "state.vscdb", items, disk_kv)


@pytest.fixture
def tmp_cursor_workspace(tmp_path):
    """Create a synthetic Cursor workspace with composer heads and generations."""
    ws_storage = tmp_path / "workspaceStorage"

    composer_data = {
        "allComposers": [
            {
                "composerId": "comp-uuid-001",
                "name": "Fix auth bug",
                "createdAt": NOW_MS,
                "lastUpdatedAt": LATER_MS,
                "unifiedMode": "agent",
                "isArchived": False,
            },
            {
                "composerId": "comp-uuid-002",
                "name": "Add dark mode",
                "createdAt": LATER_MS + 1000,
                "lastUpdatedAt": MUCH_LATER_MS,
                "unifiedMode": "chat",
                "isArchived": False,
            },
        ],
        "selectedComposerIds": ["comp-uuid-001"],
    }

    prompts = [
        {"text": "Fix the login authentication bug in auth.ts", "commandType": 4},
        {"text": "Add dark mode support to the app", "commandType": 4},
    ]

    generations = [
        {"unixMs": NOW_MS + 5000, "generationUUID": "gen-001", "type": "composer", "textDescription": "Fix the login authentication bug"},
        {"unixMs": NOW_MS + 30000, "generationUUID": "gen-002", "type": "composer", "textDescription": "Handle expired tokens"},
        {"unixMs": LATER_MS + 60000, "generationUUID": "gen-003", "type": "composer", "textDescription": "Implemented dark mode toggle with CSS variables"},
    ]

    write_workspace(
        ws_storage,
        "abc123hash",
        "file:///Users/testuser/dev/my-project",
        items={
            "composer.composerData": composer_data,
            "aiService.prompts": prompts,
            "aiService.generations": generations,
        },
    )
    return ws_storage


@pytest.fixture
def tmp_cursor_global(tmp_path):
    """Create a synthetic global store with per-turn rows and conversation heads.

    comp-uuid-001 has six readable turns; the fourth has no content and only
    anchors a timestamp. A malformed row sits between the second and third.
    global-comp-009 exists only in global storage.
    """
    turns_001 = [
        ("b1", {"bubbleId": "b1", "type": 1, "text": "Fix the login bug in auth.ts",
                "createdAt": "2025-01-15T10:00:05.000Z"}),
        ("b2", {"bubbleId": "b2", "type": 2, "text": "Let me look at the auth module.",
                "timingInfo": {"clientStartTime": NOW_MS + 9000, "clientRpcSendTime": NOW_MS + 10000},
                "tokenCount": {"inputTokens": 1200, "outputTokens": 300}}),
        # Not JSON
        ("b2x", b"\xff{"),
        ("b3", {"bubbleId": "b3", "type": 2, "toolFormerData": {
            "name": "read_file",
            "params": json.dumps({"targetFile": "src/auth.ts"}),
            "result": json.dumps({"contents": "export function login() {}"}),
            "status": "completed",
        }}),
        ("b4", {"bubbleId": "b4", "type": 2, "text": "", "createdAt": "2025-01-15T10:00:20Z"}),
        ("b5", {"bubbleId": "b5", "type": 2, "thinking": {"text": "The token check is inverted."},
                "timingInfo": {"clientRpcSendTime": 12345, "clientEndTime": NOW_MS + 40000}}),
        ("b6", {"bubbleId": "b6", "type": 2, "text": "Fixed it.",
                "codeBlocks": [{"content": "return token.valid;", "languageId": "typescript"}],
                "createdAt": "2025-01-15T10:00:45Z"}),
    ]
    turns_009 = [
        ("g1", {"bubbleId": "g1", "type": 1, "text": "How do I reverse a list in Python?"}),
        ("g2", {"bubbleId": "g2", "type": 2, "text": "Use reversed() or slicing."}),
    ]

    disk_kv = {}
    disk_kv["composerData:comp-uuid-001"] = {
        "composerId": "comp-uuid-001",
        "name": "Fix auth bug",
        "createdAt": NOW_MS,
        "lastUpdatedAt": LATER_MS,
        "contextTokensUsed": 5000,
        "contextTokenLimit": 128000,
        "contextUsagePercent": 3.9,
    }
    for bubble_id, doc in turns_001:
        disk_kv[f"bubbleId:comp-uuid-001:{bubble_id}"] = doc
    disk_kv["composerData:global-comp-009"] = {
        "composerId": "global-comp-009",
        "name": "Scratch question",
        "createdAt": GLOBAL_ONLY_MS,
        "workspaceUri": "file:///Users/testuser/dev/other",
    }
    for bubble_id, doc in turns_009:
        disk_kv[f"bubbleId:global-comp-009:{bubble_id}"] = doc
    # A head with no turns is not listed
    disk_kv["composerData:empty-comp"] = {"composerId": "empty-comp", "createdAt": NOW_MS}

    return write_store(tmp_path / "globalStorage" / "state.vscdb", disk_kv=disk_kv)


@pytest.fixture
def tmp_legacy_workspace(tmp_cursor_workspace):
    """Add a workspace that still uses the legacy tabs layout."""
    chatdata = {
        "tabs": [
            {
                "tabId": "legacy-tab-001",
                "bubbles": [
                    {"type": "user", "text": "What is Python?", "timestamp": LEGACY_MS},
                    {"type": "ai", "text": "Python is a high-level programming language."},
                    {"type": "user", "text": "Show me an example"},
                    {"type": "ai", "text": "Here is a hello world example:\n```python\nprint('hello')\n```",
                     "timestamp": LEGACY_MS + 60000},
                ],
            }
        ]
    }
    write_workspace(
        tmp_cursor_workspace,
        "def456hash",
        "file:///Users/testuser/dev/legacy-app",
        items={"workbench.panel.aichat.view.aichat.chatdata": chatdata},
    )
    return tmp_cursor_workspace


@pytest.fixture
def tmp_broken_workspace(tmp_cursor_workspace):
    """Add a workspace whose state.vscdb is not a database."""
    ws_dir = tmp_cursor_workspace / "broken789"
    ws_dir.mkdir()
    (ws_dir / "workspace.json").write_text('{"folder": "file:///tmp/broken"}', encoding="utf-8")
    (ws_dir / "state.vscdb").write_bytes(b"this is not a sqlite database" * 10)
    return tmp_cursor_workspace


@pytest.fixture
def history(tmp_cursor_workspace, tmp_cursor_global):
    """A CursorHistory pointed at the synthetic stores."""
    return CursorHistory(data_path=tmp_cursor_workspace, global_path=tmp_cursor_global)
