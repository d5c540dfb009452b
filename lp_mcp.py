#!/usr/bin/env python3
"""LogicPatch MCP Server — Model Context Protocol server for safe patching.

Exposes LogicPatch's edit capabilities as MCP tools that any compatible
AI agent can use. Runs over stdio using JSON-RPC 2.0.

Tools provided:
  - logicpatch_apply: Apply one search/replace edit to a file
  - logicpatch_apply_blocks: Apply every SEARCH/REPLACE block in AI output
  - logicpatch_match: Locate the search block without applying (dry run)
  - logicpatch_check: Check a file's bracket balance

Usage:
  python lp_mcp.py
"""

import json
import sys
from typing import Any

from lp import (
    check_brace_syntax,
    find_fuzzy_locations,
    find_match_locations,
    get_logic_signature,
    read_text,
    resolve_dialect,
)
from lp_wrapper import LogicPatch

# MCP Protocol version
PROTOCOL_VERSION = "2024-11-05"
SERVER_NAME = "logicpatch"
SERVER_VERSION = "0.1.0"

FAILED_STATUSES = ("no_match", "error", "ambiguous", "syntax_rejected")

TOOLS = [
    {
        "name": "logicpatch_apply",
        "description": (
            "Replace one block of code in a file. The search block is matched on "
            "its trimmed, non-blank lines (falling back to a whitespace-insensitive "
            "match) and must match exactly one location. The replacement is "
            "re-indented to the file. Edits that already landed are reported as "
            "already_applied; results that break bracket balance are refused."
        ),
        "inputSchema": {
            "type": "object",
            "properties": {
                "file": {
                    "type": "string",
                    "description": "Path to the file to edit",
                },
                "search": {
                    "type": "string",
                    "description": "Code to find, copied from the file",
                },
                "replace": {
                    "type": "string",
                    "description": "Replacement code (empty deletes the block)",
                },
                "dialect": {
                    "type": "string",
                    "description": "Extension or language (default: the file extension)",
                },
                "dry_run": {
                    "type": "boolean",
                    "description": "If true, show what would change without applying",
                    "default": False,
                },
                "force": {
                    "type": "boolean",
                    "description": "Write even if the result fails the bracket check",
                    "default": False,
                },
            },
            "required": ["file", "search", "replace"],
        },
    },
    {
        "name": "logicpatch_apply_blocks",
        "description": (
            "Apply every SEARCH/REPLACE block found in a piece of AI output. "
            "Each block is applied independently. Returns an array of results."
        ),
        "inputSchema": {
            "type": "object",
            "properties": {
                "text": {
                    "type": "string",
                    "description": "Text containing <<<<<<< SEARCH ... >>>>>>> REPLACE blocks",
                },
                "file": {
                    "type": "string",
                    "description": "File for blocks that do not name one",
                },
                "dry_run": {
                    "type": "boolean",
                    "default": False,
                },
            },
            "required": ["text"],
        },
    },
    {
        "name": "logicpatch_match",
        "description": (
            "Locate the search block in a file without modifying it. Returns "
            "the 1-based start line, the number of lines covered, and how many "
            "locations matched."
        ),
        "inputSchema": {
            "type": "object",
            "properties": {
                "file": {
                    "type": "string",
                    "description": "Path to the file to search",
                },
                "search": {
                    "type": "string",
                    "description": "Code to find",
                },
                "dialect": {
                    "type": "string",
                },
            },
            "required": ["file", "search"],
        },
    },
    {
        "name": "logicpatch_check",
        "description": (
            "Check a file's bracket balance without modifying it. Comments, "
            "strings, regex and template literals are ignored. Only "
            "JavaScript/TypeScript files are checked."
        ),
        "inputSchema": {
            "type": "object",
            "properties": {
                "file": {
                    "type": "string",
                    "description": "Path to the file to check",
                },
                "dialect": {
                    "type": "string",
                },
            },
            "required": ["file"],
        },
    },
]


def make_response(id: Any, result: Any) -> dict:
    return {"jsonrpc": "2.0", "id": id, "result": result}


def make_error(id: Any, code: int, message: str, data: Any = None) -> dict:
    err = {"code": code, "message": message}
    if data is not None:
        err["data"] = data
    return {"jsonrpc": "2.0", "id": id, "error": err}


def text_result(id: Any, payload: Any, is_error: bool = False) -> dict:
    return make_response(id, {
        "content": [{"type": "text", "text": json.dumps(payload, indent=2)}],
        "isError": is_error,
    })


def handle_initialize(id: Any, params: dict) -> dict:
    return make_response(id, {
        "protocolVersion": PROTOCOL_VERSION,
        "capabilities": {
            "tools": {},
        },
        "serverInfo": {
            "name": SERVER_NAME,
            "version": SERVER_VERSION,
        },
    })


def handle_tools_list(id: Any, params: dict) -> dict:
    return make_response(id, {"tools": TOOLS})


def locate(content: str, search: str, dialect_hint: str) -> dict:
    """Where the search block would match, without applying anything."""
    dialect = resolve_dialect(dialect_hint)
    locations = find_match_locations(
        get_logic_signature(content), get_logic_signature(search), dialect.indent_sensitive
    )
    match_type = "logic"
    if not locations:
        locations = find_fuzzy_locations(content.replace('\r\n', '\n'),
                                         search.replace('\r\n', '\n'),
                                         dialect.indent_sensitive)
        match_type = "fuzzy"
    if not locations:
        return {"status": "no_match", "match_count": 0}
    result = {
        "status": "found" if len(locations) == 1 else "ambiguous",
        "match_type": match_type,
        "match_count": len(locations),
        "match_lines": [loc.start_line + 1 for loc in locations],
    }
    if len(locations) == 1:
        result["match_line"] = locations[0].start_line + 1
        result["line_count"] = locations[0].end_line - locations[0].start_line + 1
    return result


def handle_tool_call(id: Any, params: dict) -> dict:
    name = params.get("name", "")
    args = params.get("arguments") or {}
    patcher = LogicPatch()

    tool = next((t for t in TOOLS if t["name"] == name), None)
    if tool is not None:
        missing = [k for k in tool["inputSchema"].get("required", []) if k not in args]
        if missing:
            return make_error(id, -32602, f"Missing required argument(s): {', '.join(missing)}")

    if name == "logicpatch_apply":
        resp = patcher.edit(
            args["file"],
            args["search"],
            args["replace"],
            dialect_hint=args.get("dialect"),
            dry_run=args.get("dry_run", False),
            force=args.get("force", False),
        )
        return text_result(id, resp.to_dict(), is_error=not resp.success)

    elif name == "logicpatch_apply_blocks":
        responses = patcher.apply_blocks(
            args["text"],
            default_file=args.get("file"),
            dry_run=args.get("dry_run", False),
        )
        results = [r.to_dict() for r in responses]
        any_error = not responses or any(not r.success for r in responses)
        return text_result(id, results, is_error=any_error)

    elif name == "logicpatch_match":
        file_path = args["file"]
        try:
            content = read_text(file_path)
        except OSError as e:
            return text_result(id, {"status": "error", "error": str(e)}, is_error=True)
        hint = args.get("dialect", file_path)
        result = locate(content, args["search"], hint)
        return text_result(id, result, is_error=result["status"] != "found")

    elif name == "logicpatch_check":
        file_path = args["file"]
        try:
            content = read_text(file_path)
        except OSError as e:
            return text_result(id, {"status": "error", "error": str(e)}, is_error=True)
        check = check_brace_syntax(content, args.get("dialect", file_path))
        result = {"status": "valid" if check.valid else "invalid", "file": file_path}
        if check.error:
            result["error"] = check.error
            result["line"] = check.line
        return text_result(id, result, is_error=not check.valid)

    else:
        return make_error(id, -32601, f"Unknown tool: {name}")


HANDLERS = {
    "initialize": handle_initialize,
    "notifications/initialized": None,  # notification, no response
    "tools/list": handle_tools_list,
    "tools/call": handle_tool_call,
}


def run_stdio():
    """Main stdio loop — read JSON-RPC messages, dispatch, respond."""
    for line in sys.stdin:
        line = line.strip()
        if not line:
            continue
        try:
            msg = json.loads(line)
        except json.JSONDecodeError:
            resp = make_error(None, -32700, "Parse error")
            sys.stdout.write(json.dumps(resp) + "\n")
            sys.stdout.flush()
            continue

        method = msg.get("method", "")
        id = msg.get("id")
        params = msg.get("params", {})

        handler = HANDLERS.get(method)
        if handler is None:
            if id is not None and method not in HANDLERS:
                resp = make_error(id, -32601, f"Method not found: {method}")
                sys.stdout.write(json.dumps(resp) + "\n")
                sys.stdout.flush()
            continue

        resp = handler(id, params)
        sys.stdout.write(json.dumps(resp) + "\n")
        sys.stdout.flush()


if __name__ == "__main__":
    run_stdio()
