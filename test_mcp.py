"""Tests for lp_mcp.py — MCP server for LogicPatch."""

import json
import os
import subprocess
import sys

import pytest


def mcp_call(*messages):
    """Send JSON-RPC messages to MCP server, return parsed responses."""
    input_str = "\n".join(m if isinstance(m, str) else json.dumps(m) for m in messages) + "\n"
    proc = subprocess.run(
        [sys.executable, "lp_mcp.py"],
        input=input_str, capture_output=True, text=True,
        cwd=os.path.dirname(os.path.abspath(__file__)),
    )
    lines = [l for l in proc.stdout.strip().split("\n") if l.strip()]
    return [json.loads(l) for l in lines]


def init_msg(id=1):
    return {"jsonrpc": "2.0", "id": id, "method": "initialize", "params": {}}


def tool_call(id, name, arguments):
    return {"jsonrpc": "2.0", "id": id, "method": "tools/call",
            "params": {"name": name, "arguments": arguments}}


def tool_result(resp):
    return json.loads(resp["result"]["content"][0]["text"])


@pytest.fixture
def js_file(tmp_path):
    f = tmp_path / "app.js"
    f.write_text("function f() {\n  return 1;\n}\n")
    return f


class TestInitialize:
    def test_returns_server_info(self):
        [resp] = mcp_call(init_msg())
        assert resp["result"]["serverInfo"]["name"] == "logicpatch"
        assert resp["result"]["protocolVersion"] == "2024-11-05"

    def test_has_tools_capability(self):
        [resp] = mcp_call(init_msg())
        assert "tools" in resp["result"]["capabilities"]

    def test_notification_gets_no_response(self):
        resps = mcp_call(
            init_msg(),
            {"jsonrpc": "2.0", "method": "notifications/initialized"},
            {"jsonrpc": "2.0", "id": 2, "method": "tools/list", "params": {}},
        )
        assert [r["id"] for r in resps] == [1, 2]


class TestToolsList:
    def test_lists_four_tools(self):
        resps = mcp_call(init_msg(), {"jsonrpc": "2.0", "id": 2, "method": "tools/list", "params": {}})
        names = {t["name"] for t in resps[1]["result"]["tools"]}
        assert names == {"logicpatch_apply", "logicpatch_apply_blocks", "logicpatch_match", "logicpatch_check"}


class TestApply:
    def test_applies(self, js_file):
        resps = mcp_call(init_msg(), tool_call(2, "logicpatch_apply", {
            "file": str(js_file), "search": "return 1;", "replace": "return 2;",
        }))
        result = tool_result(resps[1])
        assert result["status"] == "applied"
        assert result["match_line"] == 2
        assert resps[1]["result"]["isError"] is False
        assert js_file.read_text() == "function f() {\n  return 2;\n}\n"

    def test_dry_run(self, js_file):
        resps = mcp_call(init_msg(), tool_call(2, "logicpatch_apply", {
            "file": str(js_file), "search": "return 1;", "replace": "return 2;",
            "dry_run": True,
        }))
        assert tool_result(resps[1])["status"] == "applied"
        assert "return 1;" in js_file.read_text()  # unchanged

    def test_syntax_rejected(self, js_file):
        resps = mcp_call(init_msg(), tool_call(2, "logicpatch_apply", {
            "file": str(js_file), "search": "function f() {", "replace": "function f()",
        }))
        result = tool_result(resps[1])
        assert result["status"] == "syntax_rejected"
        assert resps[1]["result"]["isError"] is True

    def test_file_not_found(self):
        resps = mcp_call(init_msg(), tool_call(2, "logicpatch_apply", {
            "file": "/nonexistent/file.js", "search": "x", "replace": "y",
        }))
        assert tool_result(resps[1])["status"] == "error"
        assert resps[1]["result"]["isError"] is True

    def test_no_match(self, js_file):
        resps = mcp_call(init_msg(), tool_call(2, "logicpatch_apply", {
            "file": str(js_file), "search": "missing();", "replace": "x();",
        }))
        result = tool_result(resps[1])
        assert result["status"] == "no_match"
        assert "feedback" in result
        assert resps[1]["result"]["isError"] is True


class TestApplyBlocks:
    def test_blocks(self, js_file):
        text = "<<<<<<< SEARCH\nreturn 1;\n=======\nreturn 3;\n>>>>>>> REPLACE\n"
        resps = mcp_call(init_msg(), tool_call(2, "logicpatch_apply_blocks", {
            "text": text, "file": str(js_file),
        }))
        results = tool_result(resps[1])
        assert [r["status"] for r in results] == ["applied"]
        assert "return 3;" in js_file.read_text()

    def test_no_blocks_is_error(self):
        resps = mcp_call(init_msg(), tool_call(2, "logicpatch_apply_blocks", {"text": "nothing"}))
        assert tool_result(resps[1]) == []
        assert resps[1]["result"]["isError"] is True


class TestMatch:
    def test_found(self, js_file):
        resps = mcp_call(init_msg(), tool_call(2, "logicpatch_match", {
            "file": str(js_file), "search": "return 1;",
        }))
        result = tool_result(resps[1])
        assert result["status"] == "found"
        assert result["match_line"] == 2
        assert result["line_count"] == 1
        assert "return 1;" in js_file.read_text()

    def test_ambiguous(self, tmp_path):
        f = tmp_path / "dup.js"
        f.write_text("a();\na();\n")
        resps = mcp_call(init_msg(), tool_call(2, "logicpatch_match", {
            "file": str(f), "search": "a();",
        }))
        result = tool_result(resps[1])
        assert result["status"] == "ambiguous"
        assert result["match_lines"] == [1, 2]
        assert resps[1]["result"]["isError"] is True

    def test_no_match(self, js_file):
        resps = mcp_call(init_msg(), tool_call(2, "logicpatch_match", {
            "file": str(js_file), "search": "missing();",
        }))
        assert tool_result(resps[1])["status"] == "no_match"


class TestCheck:
    def test_valid(self, js_file):
        resps = mcp_call(init_msg(), tool_call(2, "logicpatch_check", {"file": str(js_file)}))
        assert tool_result(resps[1])["status"] == "valid"
        assert resps[1]["result"]["isError"] is False

    def test_invalid(self, tmp_path):
        f = tmp_path / "bad.js"
        f.write_text("function f() {\n")
        resps = mcp_call(init_msg(), tool_call(2, "logicpatch_check", {"file": str(f)}))
        result = tool_result(resps[1])
        assert result["status"] == "invalid"
        assert result["line"] == 1


class TestErrors:
    def test_unknown_tool(self):
        resps = mcp_call(init_msg(), tool_call(2, "nope", {}))
        assert resps[1]["error"]["code"] == -32601

    def test_unknown_method(self):
        resps = mcp_call(init_msg(), {"jsonrpc": "2.0", "id": 2, "method": "bogus", "params": {}})
        assert resps[1]["error"]["code"] == -32601

    def test_parse_error(self):
        [resp] = mcp_call("{not json")
        assert resp["error"]["code"] == -32700
        assert resp["id"] is None

    def test_missing_required_argument(self, js_file):
        resps = mcp_call(
            init_msg(),
            tool_call(2, "logicpatch_apply", {"file": str(js_file)}),
            {"jsonrpc": "2.0", "id": 3, "method": "tools/list", "params": {}},
        )
        assert resps[1]["error"]["code"] == -32602
        assert "search" in resps[1]["error"]["message"]
        assert len(resps[2]["result"]["tools"]) == 4
        assert js_file.read_text() == "function f() {\n  return 1;\n}\n"
