"""
LogicPatch Python Wrapper — importable API for patching files.

Zero dependencies (like lp.py itself). Import and use directly:

    from lp_wrapper import LogicPatch

    lp = LogicPatch()
    result = lp.edit("app.js", "return 1;", "return 2;")
    print(result.success, result.status, result.match_line)
"""

from __future__ import annotations

import hashlib
import json
import os
import threading
from dataclasses import dataclass
from typing import Dict, List, Optional

from lp import (
    AlreadyApplied,
    Ambiguous,
    NoMatch,
    Success,
    SyntaxRejected,
    _compute_diff,
    check_brace_syntax,
    patch,
    read_text,
    write_text,
)
from lp_blocks import parse_blocks
from lp_feedback import build_feedback


@dataclass
class EditResponse:
    """Result of an edit operation."""
    success: bool
    file: str
    status: str  # applied, already_applied, no_match, ambiguous, syntax_rejected, error
    match_type: Optional[str] = None  # logic, fuzzy
    match_line: Optional[int] = None
    line_count: Optional[int] = None
    match_count: Optional[int] = None
    error: Optional[str] = None
    feedback: Optional[str] = None
    diff: Optional[str] = None
    written: bool = False

    def to_dict(self) -> dict:
        d = {"success": self.success, "file": self.file, "status": self.status}
        if self.match_type:
            d["match_type"] = self.match_type
        if self.match_line is not None:
            d["match_line"] = self.match_line
        if self.line_count is not None:
            d["line_count"] = self.line_count
        if self.match_count is not None:
            d["match_count"] = self.match_count
        if self.error:
            d["error"] = self.error
        if self.feedback:
            d["feedback"] = self.feedback
        if self.diff:
            d["diff"] = self.diff
        d["written"] = self.written
        return d

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)


class AppliedStore:
    """
    Side store of "already applied" markers.

    Injected into LogicPatch explicitly; the matching engine itself never
    touches it.  With a path, markers persist as JSON between runs.
    """

    def __init__(self, path: Optional[str] = None):
        self.path = path
        self._lock = threading.Lock()
        self._markers: Dict[str, str] = {}
        if path and os.path.exists(path):
            with open(path, "r", encoding="utf-8") as f:
                self._markers = json.load(f)

    @staticmethod
    def key(file: str, search: str) -> str:
        digest = hashlib.sha1(f"{file}:{search[:100]}".encode("utf-8")).hexdigest()
        return f"patch_{digest[:16]}"

    def mark(self, file: str, search: str) -> None:
        with self._lock:
            self._markers[self.key(file, search)] = file
            self._save()

    def unmark(self, file: str, search: str) -> None:
        with self._lock:
            if self._markers.pop(self.key(file, search), None) is not None:
                self._save()

    def is_marked(self, file: str, search: str) -> bool:
        with self._lock:
            return self.key(file, search) in self._markers

    def _save(self) -> None:
        if not self.path:
            return
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(self._markers, f, indent=2, sort_keys=True)


class LogicPatch:
    """
    Safe search/replace patching toolkit.

    Usage:
        lp = LogicPatch(applied_store=AppliedStore(".lp-applied.json"))
        result = lp.edit("file.js", search, replace)
        results = lp.apply_blocks(ai_response_text)
        diff_str = lp.preview("file.js", search, replace)
    """

    def __init__(self, validate: bool = True, applied_store: Optional[AppliedStore] = None):
        self.validate = validate
        self.applied_store = applied_store
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _file_lock(self, file: str) -> threading.Lock:
        # one in-flight patch per file: the match is computed on a snapshot
        path = os.path.realpath(file)
        with self._locks_guard:
            if path not in self._locks:
                self._locks[path] = threading.Lock()
            return self._locks[path]

    def edit(
        self,
        file: str,
        search: str,
        replace: str,
        dialect_hint: Optional[str] = None,
        dry_run: bool = False,
        force: bool = False,
    ) -> EditResponse:
        """
        Apply a search/replace edit to a file.

        Args:
            file: Path to the file to edit.
            search: Block to find.
            replace: Replacement block; blank deletes the searched lines.
            dialect_hint: Extension or language; defaults to the file path.
            dry_run: Compute everything but do not write.
            force: Write even if the result fails the bracket check.

        Returns:
            EditResponse with status, location, feedback for refused edits, and diff.
        """
        with self._file_lock(file):
            try:
                content = read_text(file)
            except FileNotFoundError:
                return EditResponse(success=False, file=file, status="error",
                                    error=f"File not found: {file}")
            except OSError as e:
                return EditResponse(success=False, file=file, status="error", error=str(e))

            hint = file if dialect_hint is None else dialect_hint
            outcome = patch(content, search, replace, hint)

            if isinstance(outcome, NoMatch) and self.applied_store is not None \
                    and self.applied_store.is_marked(file, search):
                outcome = AlreadyApplied()

            resp = EditResponse(
                success=isinstance(outcome, (Success, AlreadyApplied)),
                file=file,
                status=outcome.status,
            )
            if isinstance(outcome, NoMatch):
                resp.error = "Search block not found in file"
            elif isinstance(outcome, Ambiguous):
                resp.match_count = outcome.match_count
                resp.error = f"Found {outcome.match_count} matching locations"
            if isinstance(outcome, (NoMatch, Ambiguous, SyntaxRejected)):
                resp.feedback = build_feedback(outcome, file, content, search, replace)
            if not isinstance(outcome, (Success, SyntaxRejected)):
                return resp

            resp.match_line = outcome.match_line
            resp.line_count = outcome.line_count
            resp.diff = _compute_diff(content, outcome.content, file)
            if isinstance(outcome, SyntaxRejected):
                resp.error = outcome.detail
                if self.validate and not force:
                    return resp
            else:
                resp.match_type = outcome.match_type

            if dry_run:
                return resp
            try:
                write_text(file, outcome.content)
            except OSError as e:
                resp.success = False
                resp.error = str(e)
                return resp
            resp.written = True
            resp.success = True
            if self.applied_store is not None:
                self.applied_store.mark(file, search)
            return resp

    def apply_blocks(self, text: str, default_file: Optional[str] = None,
                     dry_run: bool = False) -> List[EditResponse]:
        """
        Apply every SEARCH/REPLACE block found in AI output, in order.

        Each block reports independently; a failed block does not stop the rest.
        """
        results = []
        for block in parse_blocks(text, default_file=default_file):
            if not block.file:
                results.append(EditResponse(success=False, file="", status="error",
                                            error="Block names no file"))
                continue
            results.append(self.edit(block.file, block.search, block.replace, dry_run=dry_run))
        return results

    def undo(self, file: str, search: str, replace: str) -> EditResponse:
        """Revert an applied edit by patching replace back to search."""
        resp = self.edit(file, replace, search)
        if resp.written and self.applied_store is not None:
            self.applied_store.unmark(file, replace)
            self.applied_store.unmark(file, search)
        return resp

    def check(self, file: str, dialect_hint: Optional[str] = None) -> tuple[bool, Optional[str]]:
        """
        Check a file's bracket balance (brace-language dialects only).

        Returns:
            (is_valid, error_message_or_none)
        """
        if not os.path.exists(file):
            return False, f"File not found: {file}"
        result = check_brace_syntax(read_text(file), file if dialect_hint is None else dialect_hint)
        return result.valid, result.error

    def preview(self, file: str, search: str, replace: str) -> Optional[str]:
        """
        Preview the diff that would result from an edit, without applying it.

        Returns:
            Unified diff string, or None if the edit would not apply.
        """
        if not os.path.exists(file):
            return None
        content = read_text(file)
        outcome = patch(content, search, replace, file)
        if not isinstance(outcome, (Success, SyntaxRejected)):
            return None
        return _compute_diff(content, outcome.content, file)

    # --- Tool definition for LLM APIs ---

    @staticmethod
    def anthropic_tool_schema() -> dict:
        """Return the Anthropic tool_use schema for LogicPatch edit."""
        return {
            "name": "patch_file",
            "description": (
                "Replace one block of code in a file. The search block must match "
                "exactly one place (whitespace and indentation may differ). "
                "An empty replace deletes the block."
            ),
            "input_schema": {
                "type": "object",
                "properties": {
                    "file": {"type": "string", "description": "Path to the file to edit"},
                    "search": {"type": "string", "description": "Code to find, copied from the file"},
                    "replace": {"type": "string", "description": "Replacement code"},
                },
                "required": ["file", "search", "replace"],
            },
        }

    @staticmethod
    def openai_function_schema() -> dict:
        """Return the OpenAI function calling schema for LogicPatch edit."""
        return {
            "type": "function",
            "function": {
                "name": "patch_file",
                "description": (
                    "Replace one block of code in a file. The search block must match "
                    "exactly one place (whitespace and indentation may differ)."
                ),
                "parameters": {
                    "type": "object",
                    "properties": {
                        "file": {"type": "string", "description": "Path to the file to edit"},
                        "search": {"type": "string", "description": "Code to find, copied from the file"},
                        "replace": {"type": "string", "description": "Replacement code"},
                    },
                    "required": ["file", "search", "replace"],
                },
            },
        }
