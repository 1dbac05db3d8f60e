"""Tests for the CursorHistory reader against synthetic Cursor stores."""

from datetime import datetime, timezone

import pytest

from conftest import GLOBAL_ONLY_MS, LATER_MS, write_workspace
from cursor_history import CursorHistory
from cursor_history.errors import ConversationNotFoundError, InvalidConfigError
from cursor_history.history import read_workspace_path, resolve_identifier


def _at(hour, minute, second):
    return datetime(2025, 1, 15, hour, minute, second, tzinfo=timezone.utc)


class TestAvailability:
    def test_available(self, history):
        assert history.is_available()

    def test_not_available(self, tmp_path):
        history = CursorHistory(data_path=tmp_path / "nope", global_path=tmp_path / "nope.vscdb")
        assert not history.is_available()
        assert history.list_conversations() == []
        assert history.list_workspaces() == []

    def test_global_path_derived_from_data_path(self, tmp_cursor_workspace, tmp_cursor_global, monkeypatch):
        monkeypatch.delenv("CURSOR_GLOBAL_STORAGE_PATH", raising=False)
        history = CursorHistory(data_path=tmp_cursor_workspace)
        assert history.global_path == tmp_cursor_global

    def test_driver_chosen_once(self, history):
        assert history.driver is history.driver
        assert history.driver.name == "sqlite3"


class TestListConversations:
    def test_newest_first(self, history):
        convs = history.list_conversations()
        assert [c.id for c in convs] == ["comp-uuid-002", "comp-uuid-001"]
        assert [c.display_index for c in convs] == [1, 2]

    def test_summary_fields(self, history):
        conv = history.list_conversations()[1]
        assert conv.title == "Fix auth bug"
        assert conv.message_count == 5
        assert conv.workspace_id == "abc123hash"
        assert conv.workspace_path == "/Users/testuser/dev/my-project"
        assert conv.preview == "Fix the login bug in auth.ts"
        assert conv.created_at == _at(10, 0, 0)
        assert conv.last_updated_at == _at(11, 0, 0)
        assert not hasattr(conv, "messages")

    def test_limit_and_offset(self, history):
        assert [c.id for c in history.list_conversations(limit=1)] == ["comp-uuid-002"]
        page = history.list_conversations(limit=1, offset=1)
        assert [c.id for c in page] == ["comp-uuid-001"]
        assert page[0].display_index == 2

    def test_negative_limit_rejected(self, history):
        with pytest.raises(InvalidConfigError):
            history.list_conversations(limit=-1)

    def test_workspace_filter(self, history, tmp_legacy_workspace):
        convs = history.list_conversations(workspace="legacy-app")
        assert [c.id for c in convs] == ["legacy-tab-001"]
        assert convs[0].display_index == 1

    def test_includes_legacy(self, history, tmp_legacy_workspace):
        convs = history.list_conversations()
        assert [c.id for c in convs] == ["comp-uuid-002", "comp-uuid-001", "legacy-tab-001"]

    def test_broken_workspace_skipped(self, history, tmp_broken_workspace):
        convs = history.list_conversations()
        assert len(convs) == 2
        assert len(history.failures) == 1
        assert history.failures[0].path.parent.name == "broken789"


class TestGetConversation:
    def test_turn_rows_from_global_store(self, history):
        conv = history.get_conversation(2)
        assert conv.id == "comp-uuid-001"
        assert [m.id for m in conv.messages] == ["b1", "b2", "b3", "b5", "b6"]
        assert [m.role for m in conv.messages] == ["user"] + ["assistant"] * 4

    def test_message_content(self, history):
        messages = history.get_conversation("comp-uuid-001").messages
        assert messages[0].content == "Fix the login bug in auth.ts"
        assert messages[1].content == "Let me look at the auth module."
        assert messages[2].content == (
            "[Tool: Read File]\n"
            "File: src/auth.ts\n"
            "Content: export function login() {}\n"
            "Status: ✓ completed"
        )
        assert messages[3].content == "[Thinking]\nThe token check is inverted."
        assert messages[4].content == "Fixed it.\n\n```typescript\nreturn token.valid;\n```"

    def test_message_timestamps(self, history):
        messages = history.get_conversation("comp-uuid-001").messages
        assert [m.timestamp for m in messages] == [
            _at(10, 0, 5),
            _at(10, 0, 10),
            # Borrowed from the dropped empty turn that follows it
            _at(10, 0, 20),
            _at(10, 0, 40),
            _at(10, 0, 45),
        ]

    def test_structured_fields(self, history):
        messages = history.get_conversation("comp-uuid-001").messages
        assert messages[1].token_usage.input_tokens == 1200
        assert messages[2].tool_calls[0].name == "read_file"
        assert messages[2].tool_calls[0].files == ["src/auth.ts"]
        assert messages[3].thinking == "The token check is inverted."
        assert messages[4].code_blocks[0].language == "typescript"

    def test_session_usage(self, history):
        usage = history.get_conversation("comp-uuid-001").usage
        assert usage.context_tokens_used == 5000
        assert usage.context_token_limit == 128000
        assert usage.context_usage_percent == 3.9
        assert usage.total_input_tokens == 1200
        assert usage.total_output_tokens == 300

    def test_generations_fallback(self, history):
        conv = history.get_conversation(1)
        assert conv.id == "comp-uuid-002"
        assert len(conv.messages) == 1
        assert conv.messages[0].role == "user"
        assert conv.messages[0].content == "Implemented dark mode toggle with CSS variables"
        assert conv.messages[0].timestamp == datetime.fromtimestamp((LATER_MS + 60000) / 1000, tz=timezone.utc)
        assert conv.usage is None

    def test_numeric_string_identifier(self, history):
        assert history.get_conversation("1").id == "comp-uuid-002"

    def test_index_out_of_range(self, history):
        with pytest.raises(ConversationNotFoundError) as exc:
            history.get_conversation(99)
        assert "#99" in str(exc.value)
        assert "2 available" in str(exc.value)

    def test_unknown_id(self, history):
        with pytest.raises(ConversationNotFoundError):
            history.get_conversation("does-not-exist")

    def test_falls_back_to_global_by_id(self, history):
        conv = history.get_conversation("global-comp-009")
        assert conv.title == "Scratch question"
        assert conv.workspace_id == "global"

    def test_legacy_conversation(self, history, tmp_legacy_workspace):
        conv = history.get_conversation("legacy-tab-001")
        assert conv.title == "What is Python?"
        assert [m.role for m in conv.messages] == ["user", "assistant", "user", "assistant"]
        assert conv.messages[3].code_blocks[0].language == "python"
        assert conv.usage is None

    def test_untitled_composer_uses_first_prompt(self, tmp_path):
        ws_storage = tmp_path / "workspaceStorage"
        write_workspace(
            ws_storage,
            "nameless",
            "file:///tmp/nameless",
            items={
                "composer.composerData": {"allComposers": [
                    {"composerId": "c-1", "createdAt": GLOBAL_ONLY_MS, "lastUpdatedAt": GLOBAL_ONLY_MS},
                ]},
                "aiService.prompts": [{"text": "Explain the build pipeline\nin detail"}],
            },
            disk_kv={"bubbleId:c-1:x": {"type": 2, "text": "Sure."}},
        )
        history = CursorHistory(data_path=ws_storage, global_path=tmp_path / "missing.vscdb")
        conv = history.get_conversation(1)
        assert conv.title == "Explain the build pipeline"
        assert conv.messages[0].content == "Sure."


class TestUnreadableTurns:
    def test_malformed_row_skipped_in_order(self, history):
        conv = history.get_conversation("comp-uuid-001")
        assert conv.message_count == 5
        assert [m.id for m in conv.messages] == ["b1", "b2", "b3", "b5", "b6"]
        assert "b2x" not in [m.id for m in conv.messages]

    @pytest.fixture
    def mixed_storage(self, tmp_path):
        ws_storage = tmp_path / "workspaceStorage"
        write_workspace(
            ws_storage,
            "mixed",
            "file:///tmp/mixed",
            items={"composer.composerData": {"allComposers": [
                {"composerId": "good", "name": "Good", "createdAt": GLOBAL_ONLY_MS},
                {"composerId": "bad", "name": "Bad", "createdAt": GLOBAL_ONLY_MS + 1000},
            ]}},
            disk_kv={
                "bubbleId:good:1": {"type": 1, "text": "a working question"},
                "bubbleId:bad:1": {"type": 1, "text": "still readable"},
                "bubbleId:bad:2": {"type": 2, "toolFormerData": {"name": ["x"]}},
                "bubbleId:bad:3": {"type": 2, "toolFormerData": {"name": {"n": 1}, "result": "{}"}},
            },
        )
        return CursorHistory(data_path=ws_storage, global_path=tmp_path / "missing.vscdb")

    def test_odd_tool_name_does_not_hide_other_conversations(self, mixed_storage):
        convs = mixed_storage.list_conversations()
        assert [c.id for c in convs] == ["bad", "good"]
        assert [c.message_count for c in convs] == [1, 1]

    def test_conversation_with_odd_turn_still_readable(self, mixed_storage):
        conv = mixed_storage.get_conversation("bad")
        assert [m.content for m in conv.messages] == ["still readable"]
        assert mixed_storage.search("working")[0].conversation_id == "good"


class TestWorkspaces:
    def test_counts_and_order(self, history, tmp_legacy_workspace):
        workspaces = history.list_workspaces()
        assert [(w.id, w.conversation_count) for w in workspaces] == [
            ("abc123hash", 2),
            ("def456hash", 1),
        ]
        assert workspaces[0].root_path == "/Users/testuser/dev/my-project"
        assert workspaces[0].store_path.name == "state.vscdb"

    def test_failures_reported(self, history, tmp_broken_workspace):
        scan = history.scan_workspaces()
        assert [w.id for w in scan.workspaces] == ["abc123hash"]
        assert len(scan.failures) == 1
        assert scan.failures[0].reason

    def test_workspace_without_json_skipped(self, history, tmp_cursor_workspace):
        (tmp_cursor_workspace / "orphan").mkdir()
        (tmp_cursor_workspace / "orphan" / "state.vscdb").write_bytes(b"")
        assert [w.id for w in history.list_workspaces()] == ["abc123hash"]


class TestGlobalConversations:
    def test_listing(self, history):
        convs = history.list_global_conversations()
        assert [c.id for c in convs] == ["comp-uuid-001", "global-comp-009"]
        assert [c.display_index for c in convs] == [1, 2]

    def test_limit(self, history):
        assert len(history.list_global_conversations(limit=1)) == 1

    def test_session_time_fills_missing_timestamps(self, history):
        conv = history.get_global_conversation(2)
        expected = datetime.fromtimestamp(GLOBAL_ONLY_MS / 1000, tz=timezone.utc)
        assert [m.timestamp for m in conv.messages] == [expected, expected]
        assert conv.workspace_path == "/Users/testuser/dev/other"

    def test_not_found(self, history):
        with pytest.raises(ConversationNotFoundError):
            history.get_global_conversation("empty-comp")

    def test_no_global_store(self, tmp_cursor_workspace, tmp_path):
        history = CursorHistory(data_path=tmp_cursor_workspace, global_path=tmp_path / "none.vscdb")
        assert history.list_global_conversations() == []


class TestSearch:
    def test_matches(self, history):
        results = history.search("auth")
        assert len(results) == 1
        assert results[0].conversation_id == "comp-uuid-001"
        assert results[0].display_index == 2
        assert results[0].match_count == 3
        assert len(results[0].snippets) == 3

    def test_case_insensitive(self, history):
        assert history.search("DARK MODE")[0].conversation_id == "comp-uuid-002"

    def test_no_results(self, history):
        assert history.search("kubernetes") == []

    def test_empty_query(self, history):
        assert history.search("") == []

    def test_negative_context_rejected(self, history):
        with pytest.raises(InvalidConfigError):
            history.search("auth", context_chars=-5)


class TestHelpers:
    @pytest.mark.parametrize("identifier,expected", [
        (3, 3),
        ("3", 3),
        (" 12 ", 12),
        ("comp-uuid-001", None),
        ("-1", None),
        (True, None),
    ])
    def test_resolve_identifier(self, identifier, expected):
        assert resolve_identifier(identifier) == expected

    def test_read_workspace_path(self, tmp_path):
        (tmp_path / "workspace.json").write_text('{"folder": "file:///Users/me/my%20app"}')
        assert read_workspace_path(tmp_path) == "/Users/me/my app"

    def test_read_workspace_path_multi_root(self, tmp_path):
        (tmp_path / "workspace.json").write_text('{"workspace": "file:///Users/me/app.code-workspace"}')
        assert read_workspace_path(tmp_path) == "/Users/me/app.code-workspace"

    def test_read_workspace_path_bad_json(self, tmp_path):
        (tmp_path / "workspace.json").write_text("{nope")
        assert read_workspace_path(tmp_path) is None
