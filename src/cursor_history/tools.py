"""Rendering of tool invocations recorded in ``toolFormerData``.

Assistant turns that ran a tool carry a ``toolFormerData`` object::

    {"name": "read_file", "params": "<json>", "rawArgs": "<json>",
     "result": "<json or text>", "status": "completed",
     "additionalData": {"status": "error", "userDecision": "accepted"}}

``params`` and ``result`` are usually JSON encoded strings. These helpers turn
that record into the plain-text block shown in place of the message body.
"""

import json
from typing import Any

from .core import ToolCall

READ_TOOLS = {"read_file", "read_file_v2"}
LIST_TOOLS = {"list_dir"}
SEARCH_TOOLS = {"grep", "search", "codebase_search", "glob_file_search", "file_search"}
TERMINAL_TOOLS = {"run_terminal_command", "run_terminal_cmd", "execute_command"}
EDIT_TOOLS = {"edit_file", "search_replace"}
WRITE_TOOLS = {"create_file", "write_file", "write"}
DELETE_TOOLS = {"delete_file"}

_FILE_KEYS = ("targetFile", "path", "file", "filePath", "relativeWorkspacePath", "file_path")


def parse_json(value: Any) -> tuple[bool, Any]:
    """Return ``(ok, decoded)``; dicts and lists pass through as already decoded."""
    if isinstance(value, (dict, list)):
        return True, value
    if not isinstance(value, str):
        return False, None
    try:
        return True, json.loads(value)
    except (json.JSONDecodeError, ValueError):
        return False, None


def tool_name(tool: dict) -> str | None:
    """The tool's name, or None when it is missing or not a string."""
    name = tool.get("name")
    return name if isinstance(name, str) and name else None


def _params_of(tool: dict) -> dict:
    raw = tool.get("params")
    if raw is None:
        raw = tool.get("rawArgs")
    ok, params = parse_json(raw if raw is not None else "{}")
    return params if ok and isinstance(params, dict) else {}


def _get_param(params: dict, *keys: str) -> str:
    for key in keys:
        value = params.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return ""


def _clip(text: str, limit: int) -> str:
    return text[:limit] + ("..." if len(text) > limit else "")


def _status_lines(tool: dict) -> list[str]:
    lines = []
    status = tool.get("status")
    if status:
        mark = "✓" if status == "completed" else "❌"
        lines.append(f"Status: {mark} {status}")
    return lines


def _decision_lines(tool: dict) -> list[str]:
    extra = tool.get("additionalData")
    decision = extra.get("userDecision") if isinstance(extra, dict) else None
    if not decision or not isinstance(decision, str):
        return []
    if decision == "accepted":
        mark = "✓"
    elif decision == "rejected":
        mark = "✗"
    else:
        mark = "⏳"
    return [f"User Decision: {mark} {decision}"]


def format_diff_block(diff: Any) -> str | None:
    """Fence every ``chunks[].diffString`` as a diff block."""
    if not isinstance(diff, dict) or not isinstance(diff.get("chunks"), list):
        return None
    lines = []
    for chunk in diff["chunks"]:
        if isinstance(chunk, dict) and isinstance(chunk.get("diffString"), str):
            lines.extend(["```diff", chunk["diffString"], "```"])
    return "\n".join(lines) if lines else None


def format_tool_with_diff(tool: dict) -> str | None:
    """Render a write/edit tool whose result carries a diff, else None."""
    ok, result = parse_json(tool.get("result") if tool.get("result") is not None else "{}")
    if not ok or not isinstance(result, dict) or not isinstance(result.get("diff"), dict):
        return None

    params = _params_of(tool)
    file_path = params.get("relativeWorkspacePath") or params.get("file_path") or ""

    name = tool_name(tool) or "write"
    lines = [f"[Tool: {'Write File' if name in ('write', 'write_file') else 'Edit File'}]"]
    if file_path:
        lines.append(f"File: {file_path}")

    diff_text = format_diff_block(result["diff"])
    if diff_text:
        lines.extend(["", diff_text])

    summary = result.get("resultForModel")
    if summary and isinstance(summary, str):
        lines.extend(["", f"Result: {summary}"])

    status = _status_lines(tool)
    if status:
        lines.append("")
        lines.extend(status)
    lines.extend(_decision_lines(tool))
    return "\n".join(lines)


def format_tool_call(tool: dict) -> str:
    """Render a named tool invocation with its key parameters and outcome."""
    name = tool_name(tool) or "unknown"
    params = _params_of(tool)
    raw_result = tool.get("result")
    lines: list[str] = []

    if name in READ_TOOLS:
        lines.append("[Tool: Read File]")
        file_path = _get_param(params, "targetFile", "path", "file")
        if file_path:
            lines.append(f"File: {file_path}")
        ok, result = parse_json(raw_result if raw_result is not None else "{}")
        contents = result.get("contents") if ok and isinstance(result, dict) else None
        if contents and isinstance(contents, str):
            preview = contents[:300].replace("\n", "\\n")
            lines.append(f"Content: {preview}{'...' if len(contents) > 300 else ''}")

    elif name in LIST_TOOLS:
        lines.append("[Tool: List Directory]")
        directory = _get_param(params, "targetDirectory", "path", "directory")
        if directory:
            lines.append(f"Directory: {directory}")

    elif name in SEARCH_TOOLS:
        lines.append(f"[Tool: {'Grep' if name == 'grep' else 'Search'}]")
        pattern = _get_param(params, "pattern", "query", "searchQuery", "regex", "globPattern")
        path = _get_param(params, "path", "directory", "targetDirectory")
        if pattern:
            lines.append(f"Pattern: {pattern}")
        if path:
            lines.append(f"Path: {path}")

    elif name in TERMINAL_TOOLS:
        lines.append("[Tool: Terminal Command]")
        command = _get_param(params, "command", "cmd")
        if command:
            lines.append(f"Command: {command}")
        ok, result = parse_json(raw_result)
        output = result.get("output") if ok and isinstance(result, dict) else None
        if isinstance(output, str) and output.strip():
            lines.append(f"Output: {_clip(output.strip(), 500)}")

    elif name in EDIT_TOOLS:
        lines.append(f"[Tool: {'Search & Replace' if name == 'search_replace' else 'Edit File'}]")
        file_path = _get_param(params, "targetFile", "path", "file", "filePath", "relativeWorkspacePath")
        if file_path:
            lines.append(f"File: {file_path}")
        old = _get_param(params, "oldString", "old_string", "search", "searchString")
        new = _get_param(params, "newString", "new_string", "replace", "replaceString")
        if old:
            lines.append(f"Old: {_clip(old, 100)}")
        if new:
            lines.append(f"New: {_clip(new, 100)}")

    elif name in WRITE_TOOLS:
        lines.append(f"[Tool: {'Create File' if name == 'create_file' else 'Write File'}]")
        file_path = _get_param(params, "targetFile", "path", "file", "relativeWorkspacePath")
        if file_path:
            lines.append(f"File: {file_path}")

    elif name in DELETE_TOOLS:
        lines.append("[Tool: Delete File]")
        file_path = _get_param(params, "targetFile", "path", "file", "relativeWorkspacePath")
        if file_path:
            lines.append(f"File: {file_path}")

    else:
        lines.append(f"[Tool: {name}]")
        for key, value in params.items():
            if isinstance(value, str) and value.strip():
                label = key[:1].upper() + key[1:]
                lines.append(f"{label}: {_clip(value, 100)}")
        if raw_result:
            ok, result = parse_json(raw_result)
            if ok:
                text = None
                if isinstance(result, dict):
                    text = (result.get("output") or result.get("result")
                            or result.get("content") or result.get("text"))
                if isinstance(text, str) and text.strip():
                    lines.append(f"Result: {_clip(text, 500)}")
            elif isinstance(raw_result, str) and len(raw_result) < 1000:
                lines.append(f"Result: {raw_result}")

    lines.extend(_status_lines(tool))
    lines.extend(_decision_lines(tool))
    return "\n".join(lines)


def extract_tool_call(doc: dict) -> ToolCall | None:
    """Build a structured :class:`ToolCall` from a turn, or None."""
    tool = doc.get("toolFormerData") if isinstance(doc, dict) else None
    if not isinstance(tool, dict) or tool_name(tool) is None:
        return None

    params = _params_of(tool)
    extra = tool.get("additionalData") if isinstance(tool.get("additionalData"), dict) else {}
    raw_result = tool.get("result")
    if raw_result is not None and not isinstance(raw_result, str):
        raw_result = json.dumps(raw_result, ensure_ascii=False)

    error = None
    if extra.get("status") == "error":
        error = raw_result or "error"

    files = []
    for key in _FILE_KEYS:
        value = params.get(key)
        if isinstance(value, str) and value.strip() and value not in files:
            files.append(value)

    return ToolCall(
        name=tool_name(tool),
        status=tool.get("status") or "",
        params=params,
        result=raw_result,
        error=error,
        user_decision=extra.get("userDecision"),
        files=files,
    )
