"""Turn a raw conversation-turn document into display text.

Cursor has stored turn content in many different fields over time. Extraction
is a chain of probes: small functions ``(doc) -> str | None`` evaluated in
order, the first non-empty result winning. Assistant and user turns use
different chains. Independently of which probe wins, a turn whose tool call
ended in error gets an ``[Error]`` marker.
"""

from typing import Any, Callable

from .core import ROLE_ASSISTANT, ROLE_USER
from .tools import format_diff_block, format_tool_call, format_tool_with_diff, parse_json, tool_name

Probe = Callable[[dict], "str | None"]

ERROR_PREFIX = "[Error]\n"
THINKING_PREFIX = "[Thinking]\n"
USER_TEXT_FIELDS = ("text", "content", "finalText", "message", "markdown", "textDescription")


def role_from_turn(doc: dict) -> str:
    """Composer turns mark assistant output with ``type == 2``."""
    return ROLE_ASSISTANT if isinstance(doc, dict) and doc.get("type") == 2 else ROLE_USER


def is_error_turn(doc: dict) -> bool:
    tool = doc.get("toolFormerData")
    if not isinstance(tool, dict):
        return False
    extra = tool.get("additionalData")
    return isinstance(extra, dict) and extra.get("status") == "error"


def extract_thinking(doc: dict) -> str | None:
    thinking = doc.get("thinking")
    if isinstance(thinking, dict):
        text = thinking.get("text")
        if isinstance(text, str) and text.strip():
            return text
    return None


def code_block_parts(doc: dict) -> list[str]:
    """Render ``codeBlocks`` entries, fenced when the language is known."""
    blocks = doc.get("codeBlocks")
    if not isinstance(blocks, list):
        return []
    parts = []
    for block in blocks:
        if not isinstance(block, dict):
            continue
        content = block.get("content")
        if not isinstance(content, str) or not content.strip():
            continue
        lang = block.get("languageId") or ""
        parts.append(f"```{lang}\n{content}\n```" if lang else content)
    return parts


def _tool(doc: dict) -> dict | None:
    tool = doc.get("toolFormerData")
    return tool if isinstance(tool, dict) else None


# Assistant probes


def probe_tool_diff(doc: dict) -> str | None:
    tool = _tool(doc)
    if tool is None or not tool.get("result"):
        return None
    return format_tool_with_diff(tool)


def probe_named_tool(doc: dict) -> str | None:
    tool = _tool(doc)
    if tool is None or tool_name(tool) is None:
        return None
    info = format_tool_call(tool)
    blocks = doc.get("codeBlocks")
    first = blocks[0] if isinstance(blocks, list) and blocks else None
    content = first.get("content") if isinstance(first, dict) else None
    if isinstance(content, str) and content:
        preview = content[:200].replace("\n", "\\n")
        info += f"\nContent: {preview}{'...' if len(content) > 200 else ''}"
    return info


def probe_text(doc: dict) -> str | None:
    text = doc.get("text")
    if not isinstance(text, str) or not text.strip():
        return None

    if text.strip().startswith("{"):
        ok, payload = parse_json(text)
        if ok and isinstance(payload, dict) and isinstance(payload.get("diff"), dict):
            diff_text = format_diff_block(payload["diff"])
            if diff_text:
                if payload.get("resultForModel"):
                    return f"{diff_text}\n\nResult: {payload['resultForModel']}"
                return diff_text

    parts = code_block_parts(doc)
    if parts:
        return text + "\n\n" + "\n\n".join(parts)
    return text


def probe_thinking(doc: dict) -> str | None:
    thinking = extract_thinking(doc)
    if thinking is None:
        return None
    parts = code_block_parts(doc)
    if parts:
        return f"{THINKING_PREFIX}{thinking}\n\n" + "\n\n".join(parts)
    return f"{THINKING_PREFIX}{thinking}"


def probe_tool_result(doc: dict) -> str | None:
    tool = _tool(doc)
    raw = tool.get("result") if tool else None
    if not raw:
        return None
    ok, result = parse_json(raw)
    if ok:
        if isinstance(result, dict):
            for key in ("contents", "content", "text"):
                if isinstance(result.get(key), str):
                    return result[key]
        return None
    if isinstance(raw, str) and len(raw) > 50 and not raw.startswith("{"):
        return raw
    return None


def probe_code_blocks(doc: dict) -> str | None:
    parts = code_block_parts(doc)
    return "\n\n".join(parts) if parts else None


# User probes


def probe_text_fields(doc: dict) -> str | None:
    for key in USER_TEXT_FIELDS:
        value = doc.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return None


def probe_thinking_plain(doc: dict) -> str | None:
    thinking = extract_thinking(doc)
    return f"{THINKING_PREFIX}{thinking}" if thinking else None


def probe_best_string(doc: dict) -> str | None:
    """Longest string anywhere in the document that looks like prose or markdown."""
    best = ""
    stack: list[Any] = [doc]
    while stack:
        node = stack.pop()
        if isinstance(node, dict):
            stack.extend(reversed(list(node.values())))
        elif isinstance(node, list):
            stack.extend(reversed(node))
        elif isinstance(node, str):
            if len(node) > len(best) and ("\n" in node or "```" in node or "# " in node):
                best = node
    return best or None


ASSISTANT_PROBES: tuple[Probe, ...] = (
    probe_tool_diff,
    probe_named_tool,
    probe_text,
    probe_thinking,
    probe_tool_result,
    probe_code_blocks,
)

USER_PROBES: tuple[Probe, ...] = (
    probe_code_blocks,
    probe_text_fields,
    probe_thinking_plain,
    probe_best_string,
)


def extract_turn_text(doc: dict, role: str | None = None) -> str:
    """Return the display text for one turn, or ``""`` when nothing is found."""
    if not isinstance(doc, dict):
        return ""
    if role is None:
        role = role_from_turn(doc)
    probes = ASSISTANT_PROBES if role == ROLE_ASSISTANT else USER_PROBES

    text = ""
    for probe in probes:
        found = probe(doc)
        if found:
            text = found
            break

    if text and is_error_turn(doc):
        return ERROR_PREFIX + text
    return text
