"""Core data models for cursor-history."""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"


@dataclass(frozen=True)
class RawRow:
    """A single key/value row read from a state.vscdb table."""

    key: str
    value: bytes


@dataclass
class Workspace:
    """A project folder that has its own Cursor store."""

    id: str  # workspaceStorage directory hash
    root_path: str  # e.g. "/Users/me/dev/my-project"
    store_path: Path
    conversation_count: int = 0


@dataclass
class CodeBlock:
    """A fenced code segment found inside message content."""

    language: Optional[str]
    content: str
    start_line: int  # lines before the opening fence


@dataclass
class ToolCall:
    """A tool invocation recorded on an assistant turn."""

    name: str
    status: str = ""
    params: dict = field(default_factory=dict)
    result: Optional[str] = None
    error: Optional[str] = None
    user_decision: Optional[str] = None
    files: list[str] = field(default_factory=list)


@dataclass
class TokenUsage:
    input_tokens: int
    output_tokens: int


@dataclass
class ContextWindowStatus:
    tokens_used: int
    token_limit: int
    percentage_remaining: float


@dataclass
class PromptDryRunInfo:
    full_conversation_token_count: Optional[int] = None
    user_message_token_count: Optional[int] = None


@dataclass
class SessionUsage:
    """Aggregated token usage for one conversation."""

    context_tokens_used: Optional[int] = None
    context_token_limit: Optional[int] = None
    context_usage_percent: Optional[float] = None
    total_input_tokens: Optional[int] = None
    total_output_tokens: Optional[int] = None


@dataclass
class Message:
    """A single role-tagged message within a conversation."""

    id: Optional[str]
    role: str  # "user" | "assistant"
    content: str
    timestamp: datetime
    code_blocks: list[CodeBlock] = field(default_factory=list)
    tool_calls: list[ToolCall] = field(default_factory=list)
    thinking: Optional[str] = None
    token_usage: Optional[TokenUsage] = None
    context_window: Optional[ContextWindowStatus] = None


@dataclass
class ConversationSummary:
    """Listing entry for a conversation; display_index is set after sorting."""

    id: str
    display_index: int
    title: str
    created_at: datetime
    last_updated_at: Optional[datetime]
    message_count: int
    workspace_id: str
    workspace_path: Optional[str] = None
    preview: str = ""


@dataclass
class Conversation(ConversationSummary):
    """A conversation with its messages in store order."""

    messages: list[Message] = field(default_factory=list)
    usage: Optional[SessionUsage] = None


@dataclass
class SearchSnippet:
    message_role: str
    text: str
    match_positions: list[tuple[int, int]] = field(default_factory=list)


@dataclass
class SearchResult:
    conversation_id: str
    display_index: int
    title: str
    workspace_path: Optional[str]
    created_at: datetime
    match_count: int
    snippets: list[SearchSnippet] = field(default_factory=list)
