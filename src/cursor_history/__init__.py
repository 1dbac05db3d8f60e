"""Browse, search and export Cursor chat history from its local SQLite stores."""

from .core import (
    CodeBlock,
    Conversation,
    ConversationSummary,
    Message,
    SearchResult,
    SearchSnippet,
    ToolCall,
    Workspace,
)
from .errors import (
    ConversationNotFoundError,
    CursorHistoryError,
    DriverNotAvailableError,
    InvalidConfigError,
    MalformedRowError,
    NoDriverAvailableError,
    StoreUnavailableError,
)
from .history import CursorHistory, ScanFailure, WorkspaceScan

__version__ = "0.1.0"
