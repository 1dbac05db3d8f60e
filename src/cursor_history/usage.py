"""Token and context-window usage recorded on composer turns.

Cursor has recorded token counts under several field names. Per turn, the
first source found wins:

1. ``tokenCount`` ``{inputTokens, outputTokens}``
2. ``usage`` ``{input_tokens, output_tokens}``
3. ``contextWindowStatusAtCreation.tokensUsed`` (input only)
4. ``promptDryRunInfo``, a JSON string with ``fullConversationTokenCount``
   or ``userMessageTokenCount`` (input only)
"""

from typing import Any, Iterable

from .core import ContextWindowStatus, Message, PromptDryRunInfo, SessionUsage, TokenUsage
from .tools import parse_json


def _number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _count(value: Any) -> int:
    return int(value) if _number(value) else 0


def extract_token_usage(doc: dict) -> TokenUsage | None:
    counts = doc.get("tokenCount")
    if isinstance(counts, dict):
        usage = TokenUsage(_count(counts.get("inputTokens")), _count(counts.get("outputTokens")))
        if usage.input_tokens or usage.output_tokens:
            return usage

    counts = doc.get("usage")
    if isinstance(counts, dict):
        usage = TokenUsage(_count(counts.get("input_tokens")), _count(counts.get("output_tokens")))
        if usage.input_tokens or usage.output_tokens:
            return usage

    status = doc.get("contextWindowStatusAtCreation")
    if isinstance(status, dict) and _number(status.get("tokensUsed")) and status["tokensUsed"] > 0:
        return TokenUsage(int(status["tokensUsed"]), 0)

    dry_run = extract_prompt_dry_run_info(doc)
    if dry_run is not None:
        tokens = dry_run.full_conversation_token_count
        if tokens is None:
            tokens = dry_run.user_message_token_count
        if tokens:
            return TokenUsage(tokens, 0)

    return None


def extract_context_window_status(doc: dict) -> ContextWindowStatus | None:
    status = doc.get("contextWindowStatusAtCreation")
    if not isinstance(status, dict):
        return None
    used = status.get("tokensUsed")
    limit = status.get("tokenLimit")
    remaining = status.get("percentageRemainingFloat")
    if not _number(remaining):
        remaining = status.get("percentageRemaining")
    if not (_number(used) and _number(limit) and _number(remaining)):
        return None
    return ContextWindowStatus(tokens_used=int(used), token_limit=int(limit), percentage_remaining=remaining)


def extract_prompt_dry_run_info(doc: dict) -> PromptDryRunInfo | None:
    raw = doc.get("promptDryRunInfo")
    if not isinstance(raw, str):
        return None
    ok, data = parse_json(raw)
    if not ok or not isinstance(data, dict):
        return None

    def num_tokens(key: str) -> int | None:
        entry = data.get(key)
        value = entry.get("numTokens") if isinstance(entry, dict) else None
        return int(value) if _number(value) else None

    info = PromptDryRunInfo(
        full_conversation_token_count=num_tokens("fullConversationTokenCount"),
        user_message_token_count=num_tokens("userMessageTokenCount"),
    )
    if info.full_conversation_token_count is None and info.user_message_token_count is None:
        return None
    return info


def extract_session_usage(
    composer_data: dict | None,
    messages: Iterable[Message],
) -> SessionUsage | None:
    """Combine the composer's context fields with summed per-message usage."""
    usage = SessionUsage()
    found = False

    if isinstance(composer_data, dict):
        if _number(composer_data.get("contextTokensUsed")):
            usage.context_tokens_used = int(composer_data["contextTokensUsed"])
            found = True
        if _number(composer_data.get("contextTokenLimit")):
            usage.context_token_limit = int(composer_data["contextTokenLimit"])
            found = True
        if _number(composer_data.get("contextUsagePercent")):
            usage.context_usage_percent = composer_data["contextUsagePercent"]
            found = True

    counted = [m.token_usage for m in messages if m.token_usage is not None]
    if counted:
        usage.total_input_tokens = sum(u.input_tokens for u in counted)
        usage.total_output_tokens = sum(u.output_tokens for u in counted)
        found = True

    return usage if found else None
