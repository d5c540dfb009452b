"""Corrective feedback for edits LogicPatch refused to apply.

Turns a non-success outcome into a plain-text message that can be sent back
to the assistant so it can produce a corrected edit: what looks wrong with the
search block, where the closest candidates are, which lines were ambiguous,
or where the rejected result loses bracket balance.
"""

from __future__ import annotations

import difflib
import re
from dataclasses import dataclass, field
from typing import List, Optional

from lp import (
    Ambiguous,
    NoMatch,
    PatchOutcome,
    SyntaxRejected,
    ZERO_WIDTH_CHARS,
)

ELLIPSIS_RES = [
    re.compile(r'^\s*//\s*\.{3,}'),
    re.compile(r'^\s*#\s*\.{3,}'),
    re.compile(r'^\s*/\*\s*\.{3,}'),
    re.compile(r'^\s*\.{3,}\s*$'),
]

FIRST_LINE_SIMILARITY = 0.6
CANDIDATE_SIMILARITY = 0.5
SYNTAX_CONTEXT_LINES = 3


@dataclass
class Candidate:
    start_line: int  # 1-based
    end_line: int
    score: float
    lines: List[str] = field(default_factory=list)


def line_similarity(a: str, b: str) -> float:
    return difflib.SequenceMatcher(None, a.strip(), b.strip()).ratio()


def detect_issues(search_block: str, file_content: str) -> List[str]:
    """Common reasons a search block fails to match the file."""
    issues = []
    search_block = search_block.replace('\r\n', '\n')
    file_content = file_content.replace('\r\n', '\n')
    search_lines = search_block.split('\n')
    file_lines = file_content.split('\n')

    if any(p.match(line) for line in search_lines for p in ELLIPSIS_RES):
        issues.append(
            "The search block contains an ellipsis placeholder (...); "
            "copy the original code in full."
        )

    search_tabs = '\t' in search_block
    search_spaces = re.search(r'^ {2,}', search_block, re.MULTILINE) is not None
    file_tabs = '\t' in file_content
    file_spaces = re.search(r'^ {2,}', file_content, re.MULTILINE) is not None
    if search_tabs and not file_tabs and file_spaces:
        issues.append("The search block indents with tabs but the file uses spaces.")
    if search_spaces and not file_spaces and file_tabs:
        issues.append("The search block indents with spaces but the file uses tabs.")

    trailing = [str(i + 1) for i, line in enumerate(search_lines) if re.search(r'[ \t]+$', line)]
    if trailing:
        issues.append(f"Search block lines {', '.join(trailing)} end with trailing whitespace.")

    hidden = [
        str(i + 1) for i, line in enumerate(search_lines)
        if any(ch in ZERO_WIDTH_CHARS for ch in line)
    ]
    if hidden:
        issues.append(
            f"Search block lines {', '.join(hidden)} contain zero-width characters."
        )

    first_line = next((line.strip() for line in search_lines if line.strip()), '')
    if first_line and not any(line.strip() == first_line for line in file_lines):
        best_score = 0.0
        best_index = -1
        for i, line in enumerate(file_lines):
            if not line.strip():
                continue
            score = line_similarity(first_line, line)
            if score > best_score:
                best_score, best_index = score, i
        if best_score >= FIRST_LINE_SIMILARITY:
            issues.append(
                f"The first search line does not exist; line {best_index + 1} is "
                f"{int(best_score * 100)}% similar: {file_lines[best_index].strip()[:80]!r}"
            )
        else:
            issues.append(f"The first search line {first_line[:60]!r} does not exist in the file.")

    return issues


def find_candidates(
    search_block: str,
    file_content: str,
    min_similarity: float = CANDIDATE_SIMILARITY,
    limit: int = 3,
) -> List[Candidate]:
    """Regions of the file most similar to the search block, best first."""
    search_lines = [l for l in search_block.replace('\r\n', '\n').split('\n') if l.strip()]
    file_lines = file_content.replace('\r\n', '\n').split('\n')
    if not search_lines:
        return []
    n = len(search_lines)
    scored = []
    for start in range(len(file_lines) - n + 1):
        window = file_lines[start:start + n]
        score = sum(line_similarity(s, f) for s, f in zip(search_lines, window)) / n
        if score >= min_similarity:
            scored.append(Candidate(start + 1, start + n, round(score, 4), window))

    scored.sort(key=lambda c: c.score, reverse=True)
    picked: List[Candidate] = []
    for candidate in scored:
        if any(abs(c.start_line - candidate.start_line) < 3 for c in picked):
            continue
        picked.append(candidate)
        if len(picked) == limit:
            break
    return picked


def _numbered(lines: List[str], first_line: int) -> str:
    return '\n'.join(f"{first_line + i:>5} | {line}" for i, line in enumerate(lines))


def build_feedback(
    outcome: PatchOutcome,
    file_path: str,
    file_content: str,
    search_block: str,
    replace_block: Optional[str] = None,
) -> Optional[str]:
    """Message explaining why the edit was refused, or None if nothing to fix."""
    if isinstance(outcome, NoMatch):
        parts = [f"The SEARCH block was not found in {file_path}."]
        issues = detect_issues(search_block, file_content)
        if issues:
            parts.append("Problems detected:")
            parts.extend(f"- {issue}" for issue in issues)
        candidates = find_candidates(search_block, file_content)
        for candidate in candidates:
            parts.append(
                f"Closest region (lines {candidate.start_line}-{candidate.end_line}, "
                f"{int(candidate.score * 100)}% similar):"
            )
            parts.append(_numbered(candidate.lines, candidate.start_line))
        parts.append("Resend the edit with a SEARCH block copied exactly from the file.")
        return '\n'.join(parts)

    if isinstance(outcome, Ambiguous):
        lines = ', '.join(str(n) for n in outcome.match_lines)
        return (
            f"The SEARCH block matches {outcome.match_count} places in {file_path} "
            f"(starting at lines {lines}). Include more surrounding lines so it "
            f"matches exactly one location."
        )

    if isinstance(outcome, SyntaxRejected):
        parts = [f"Applying the edit to {file_path} would break bracket balance: {outcome.detail}"]
        if outcome.line and outcome.content:
            lines = outcome.content.replace('\r\n', '\n').split('\n')
            start = max(1, outcome.line - SYNTAX_CONTEXT_LINES)
            end = min(len(lines), outcome.line + SYNTAX_CONTEXT_LINES)
            parts.append("Result around the problem:")
            parts.append(_numbered(lines[start - 1:end], start))
        if replace_block is not None and not replace_block.strip():
            parts.append("The edit deletes code; make sure it removes whole bracketed blocks.")
        else:
            parts.append("Check that the REPLACE block opens and closes the same brackets as SEARCH.")
        return '\n'.join(parts)

    return None
