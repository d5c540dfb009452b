#!/usr/bin/env python3
"""LogicPatch — safe search/replace patching for AI-proposed code edits.

Applies a (search, replace) pair proposed by an AI assistant to a file body.
Never touches an ambiguous location, never lets a brace-unbalanced result
through, and never re-applies an edit that already landed.

Algorithm:
  1. Normalize line endings (remember whether the file used CRLF)
  2. Already applied? -> report it, change nothing
  3. Logic-signature match (trimmed, non-blank lines; indentation shape
     checked for indentation-sensitive dialects)
  4. Fall back to a whitespace-insensitive match on whole lines
  5. Exactly one location: mask multi-line literals in the replacement,
     realign its indentation to the file, splice, restore literals
  6. Restore line endings, check bracket balance

Exit codes: 0=applied or already applied, 1=no match/error/syntax rejected,
2=ambiguous (multiple matches)
"""

import argparse
import difflib
import json
import os
import re
import sys
from collections import Counter
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import ClassVar, Dict, Iterator, List, Optional, Tuple

TAB_WIDTH = 4
ZERO_WIDTH_CHARS = '\u200b\u200c\u200d\ufeff'
_ZERO_WIDTH_RE = re.compile('[' + ZERO_WIDTH_CHARS + ']')

INDENT_SENSITIVE_DIALECTS = frozenset({'py', 'pyi', 'pyw', 'yaml', 'yml'})
BRACE_DIALECTS = frozenset({'js', 'jsx', 'ts', 'tsx', 'mjs', 'cjs', 'mts', 'cts'})
DIALECT_ALIASES = {
    'python': 'py',
    'javascript': 'js',
    'typescript': 'ts',
}


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class LogicLine:
    content: str
    indent: int  # leading columns, tabs expanded to TAB_WIDTH
    line_index: int

    def level(self, unit_width: int) -> int:
        return self.indent // max(1, unit_width)


@dataclass(frozen=True)
class MatchLocation:
    start_line: int  # 0-based, inclusive
    end_line: int


@dataclass(frozen=True)
class Dialect:
    name: str
    indent_sensitive: bool
    brace_checked: bool


LiteralMap = Dict[str, str]


@dataclass(frozen=True)
class PatchOutcome:
    """Base of the outcome variants; ``status`` is the variant tag."""
    status: ClassVar[str] = ''


@dataclass(frozen=True)
class Success(PatchOutcome):
    status: ClassVar[str] = 'applied'
    content: str
    match_line: int
    line_count: int
    match_type: str = 'logic'  # "logic" or "fuzzy"


@dataclass(frozen=True)
class NoMatch(PatchOutcome):
    status: ClassVar[str] = 'no_match'


@dataclass(frozen=True)
class AlreadyApplied(PatchOutcome):
    status: ClassVar[str] = 'already_applied'


@dataclass(frozen=True)
class Ambiguous(PatchOutcome):
    status: ClassVar[str] = 'ambiguous'
    match_count: int
    match_lines: Tuple[int, ...] = ()


@dataclass(frozen=True)
class SyntaxRejected(PatchOutcome):
    status: ClassVar[str] = 'syntax_rejected'
    detail: str
    line: Optional[int] = None
    content: str = ''  # the rejected candidate, kept for a forced preview
    match_line: int = 0
    line_count: int = 0


@dataclass(frozen=True)
class SyntaxCheck:
    valid: bool
    error: Optional[str] = None
    line: Optional[int] = None


@dataclass
class EditResult:
    status: str  # PatchOutcome.status values, or "error"
    file: str
    match_type: Optional[str] = None
    match_line: Optional[int] = None
    line_count: Optional[int] = None
    match_count: Optional[int] = None
    match_lines: List[int] = field(default_factory=list)
    error: Optional[str] = None
    line: Optional[int] = None
    written: bool = False
    diff: Optional[str] = None


def resolve_dialect(hint: Optional[str]) -> Dialect:
    """Derive the dialect from a file path, an extension or a language name.

    An empty hint is not indentation sensitive but is still brace checked.
    """
    hint = (hint or '').strip()
    if not hint:
        return Dialect(name='', indent_sensitive=False, brace_checked=True)
    ext = os.path.splitext(hint)[1]
    name = ext[1:] if ext else hint.lstrip('.')
    name = name.lower()
    name = DIALECT_ALIASES.get(name, name)
    return Dialect(
        name=name,
        indent_sensitive=name in INDENT_SENSITIVE_DIALECTS,
        brace_checked=name in BRACE_DIALECTS,
    )


# ---------------------------------------------------------------------------
# Line endings
# ---------------------------------------------------------------------------

def detect_line_ending(text: str) -> str:
    """Return '\\r\\n' if the text contains it anywhere, else '\\n'."""
    return '\r\n' if '\r\n' in text else '\n'


def normalize_line_endings(text: str) -> str:
    return text.replace('\r\n', '\n')


def restore_line_endings(text: str, ending: str) -> str:
    if ending == '\r\n':
        return text.replace('\n', '\r\n')
    return text


# ---------------------------------------------------------------------------
# Logic signature
# ---------------------------------------------------------------------------

def _clean_line(line: str) -> str:
    return _ZERO_WIDTH_RE.sub('', line).rstrip()


def _leading_whitespace(line: str) -> str:
    return line[:len(line) - len(line.lstrip())]


def _indent_width(line: str) -> int:
    return len(_leading_whitespace(line).replace('\t', ' ' * TAB_WIDTH))


def get_logic_signature(text: str) -> List[LogicLine]:
    """Project text onto its non-blank lines: trimmed content plus indent.

    Blank lines are dropped; ``line_index`` keeps the physical position.
    """
    text = text.replace('\r\n', '\n')
    signature = []
    for index, raw in enumerate(text.split('\n')):
        line = _clean_line(raw)
        content = line.strip()
        if not content:
            continue
        signature.append(LogicLine(
            content=content,
            indent=_indent_width(line),
            line_index=index,
        ))
    return signature


def signature_content(signature: List[LogicLine]) -> str:
    return '\n'.join(line.content for line in signature)


# ---------------------------------------------------------------------------
# Matcher
# ---------------------------------------------------------------------------

def _indent_shape_matches(window: List[LogicLine], search_sig: List[LogicLine]) -> bool:
    """Check that indentation moves the same way in both blocks.

    Relative to each block's first line, every later line either stays put in
    both, or moves in the same direction in both by a constant ratio.
    """
    file_base = window[0].indent
    search_base = search_sig[0].indent
    ratio = None  # (file_delta, search_delta) of the first line that moved
    for file_line, search_line in zip(window[1:], search_sig[1:]):
        file_delta = file_line.indent - file_base
        search_delta = search_line.indent - search_base
        if file_delta == 0 and search_delta == 0:
            continue
        if file_delta * search_delta <= 0:
            return False
        if ratio is None:
            ratio = (file_delta, search_delta)
        elif file_delta * ratio[1] != search_delta * ratio[0]:
            return False
    return True


def _iter_match_offsets(
    file_sig: List[LogicLine], search_sig: List[LogicLine], indent_sensitive: bool
) -> Iterator[int]:
    n_search = len(search_sig)
    if n_search == 0:
        return
    for offset in range(len(file_sig) - n_search + 1):
        window = file_sig[offset:offset + n_search]
        if any(f.content != s.content for f, s in zip(window, search_sig)):
            continue
        if indent_sensitive and not _indent_shape_matches(window, search_sig):
            continue
        yield offset


def count_matches(
    file_sig: List[LogicLine], search_sig: List[LogicLine], indent_sensitive: bool = False
) -> int:
    """Count the offsets where search_sig matches file_sig line for line."""
    return sum(1 for _ in _iter_match_offsets(file_sig, search_sig, indent_sensitive))


def find_match_position(
    file_sig: List[LogicLine], search_sig: List[LogicLine], indent_sensitive: bool = False
) -> Optional[int]:
    """Physical line index of the first match, or None."""
    for offset in _iter_match_offsets(file_sig, search_sig, indent_sensitive):
        return file_sig[offset].line_index
    return None


def find_match_locations(
    file_sig: List[LogicLine], search_sig: List[LogicLine], indent_sensitive: bool = False
) -> List[MatchLocation]:
    """Physical line spans of every logic-signature match."""
    last = len(search_sig) - 1
    return [
        MatchLocation(file_sig[offset].line_index, file_sig[offset + last].line_index)
        for offset in _iter_match_offsets(file_sig, search_sig, indent_sensitive)
    ]


# ---------------------------------------------------------------------------
# Fuzzy locator
# ---------------------------------------------------------------------------

def _is_blank_char(ch: str) -> bool:
    return ch.isspace() or ch in ZERO_WIDTH_CHARS


def _strip_whitespace_with_map(text: str) -> Tuple[str, List[int]]:
    """Strip all whitespace from text, returning (stripped, position_map).

    position_map[i] = index in original text of the i-th non-ws char.
    """
    chars: List[str] = []
    positions: List[int] = []
    for i, ch in enumerate(text):
        if not _is_blank_char(ch):
            chars.append(ch)
            positions.append(i)
    return ''.join(chars), positions


def find_fuzzy_locations(
    content: str, search: str, indent_sensitive: bool = False
) -> List[MatchLocation]:
    """Find whole-line spans whose text equals search once whitespace is ignored.

    A candidate must start on the first non-blank character of a line and end
    on the last non-blank character of a line.  For indentation-sensitive
    dialects it must also span as many logical lines as the search block and
    keep its indentation shape.
    """
    stripped_search, _ = _strip_whitespace_with_map(search)
    if not stripped_search:
        return []
    stripped_content, pos_map = _strip_whitespace_with_map(content)

    file_sig = get_logic_signature(content) if indent_sensitive else []
    search_sig = get_logic_signature(search) if indent_sensitive else []

    locations = []
    start = 0
    while True:
        idx = stripped_content.find(stripped_search, start)
        if idx == -1:
            break
        start = idx + 1
        first = pos_map[idx]
        last = pos_map[idx + len(stripped_search) - 1]
        line_start = content.rfind('\n', 0, first) + 1
        line_end = content.find('\n', last)
        if line_end == -1:
            line_end = len(content)
        if not all(_is_blank_char(ch) for ch in content[line_start:first]):
            continue
        if not all(_is_blank_char(ch) for ch in content[last + 1:line_end]):
            continue
        location = MatchLocation(
            start_line=content.count('\n', 0, first),
            end_line=content.count('\n', 0, last),
        )
        if indent_sensitive:
            window = [
                line for line in file_sig
                if location.start_line <= line.line_index <= location.end_line
            ]
            if len(window) != len(search_sig):
                continue
            if not _indent_shape_matches(window, search_sig):
                continue
        locations.append(location)
    return locations


# ---------------------------------------------------------------------------
# Idempotence
# ---------------------------------------------------------------------------

def is_already_applied(
    content: str, search: str, replace: str, indent_sensitive: bool = False
) -> bool:
    """Decide whether the edit is already present in content.

    An edit whose search and replace reduce to the same logic lines is never
    reported as applied.
    """
    file_sig = get_logic_signature(content)
    search_sig = get_logic_signature(search)
    replace_sig = get_logic_signature(replace)

    search_text = signature_content(search_sig)
    replace_text = signature_content(replace_sig)
    if search_text == replace_text:
        return False

    search_count = count_matches(file_sig, search_sig)

    if not replace_sig:
        # A removal has landed once nothing resembling its target remains.
        return (
            search_count == 0
            and not find_fuzzy_locations(content, search, indent_sensitive)
        )

    replace_count = count_matches(file_sig, replace_sig)
    if replace_count > 0 and search_count == 0:
        return True
    # Replacement wraps the search block: the search text survives inside it.
    if replace_count > 0 and replace_count >= search_count and search_text in replace_text:
        return True
    return False


# ---------------------------------------------------------------------------
# Literal masking
# ---------------------------------------------------------------------------

class FrameKind(Enum):
    TEMPLATE = 'template'
    INTERPOLATION = 'interpolation'


@dataclass
class _Frame:
    kind: FrameKind
    depth: int = 0  # open braces inside an interpolation
    line: int = 0   # 1-based line where the frame opened


_LITERAL_START_RE = re.compile(r'"""|\'\'\'|[`"\']')


def _skip_quoted(text: str, i: int) -> int:
    """Index just past the one-line string opening at i.

    Stops before an unescaped newline when the string is unterminated.
    """
    quote = text[i]
    i += 1
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == '\\':
            i += 2
            continue
        if ch == quote:
            return i + 1
        if ch == '\n':
            return i
        i += 1
    return n


def _find_triple_end(text: str, i: int, quote: str) -> int:
    n = len(text)
    while i < n:
        if text[i] == '\\':
            i += 2
            continue
        if text.startswith(quote, i):
            return i + 3
        i += 1
    return n


def _scan_template(text: str, start: int) -> int:
    """Index just past the template literal whose backtick is at start."""
    stack = [_Frame(FrameKind.TEMPLATE)]
    i = start + 1
    n = len(text)
    while i < n and stack:
        ch = text[i]
        frame = stack[-1]
        if frame.kind is FrameKind.TEMPLATE:
            if ch == '\\':
                i += 2
                continue
            if ch == '`':
                stack.pop()
            elif text.startswith('${', i):
                stack.append(_Frame(FrameKind.INTERPOLATION, depth=1))
                i += 2
                continue
            i += 1
            continue
        # Inside ${ ... }: only braces opened here can close it.
        if ch in '"\'':
            i = _skip_quoted(text, i)
            continue
        if ch == '`':
            stack.append(_Frame(FrameKind.TEMPLATE))
        elif ch == '{':
            frame.depth += 1
        elif ch == '}':
            frame.depth -= 1
            if frame.depth == 0:
                stack.pop()
        i += 1
    return min(i, n)


def _placeholder_prefix(text: str) -> str:
    prefix = '__LITERAL_'
    while prefix in text:
        prefix = '_' + prefix
    return prefix


def _comment_markers(dialect: Dialect) -> Tuple[str, ...]:
    # '#' starts private fields in JS and '//' is floor division in Python
    if dialect.indent_sensitive:
        return ('#',)
    if dialect.brace_checked:
        return ('//',)
    return ('//', '#')


def mask_literals(
    text: str, comment_markers: Tuple[str, ...] = ('//', '#')
) -> Tuple[str, LiteralMap]:
    """Replace multi-line string literals with placeholder tokens.

    Triple-quoted strings are always masked; template literals only when they
    span a newline.  Line comments starting with one of ``comment_markers``
    are skipped, so quotes inside them open nothing.
    Returns (masked_text, placeholder -> original literal).
    """
    literals: LiteralMap = {}
    prefix = _placeholder_prefix(text)
    start_re = _LITERAL_START_RE
    if comment_markers:
        start_re = re.compile(
            _LITERAL_START_RE.pattern + '|' + '|'.join(re.escape(m) for m in comment_markers)
        )
    parts: List[str] = []
    i = 0
    n = len(text)
    while i < n:
        m = start_re.search(text, i)
        if m is None:
            parts.append(text[i:])
            break
        parts.append(text[i:m.start()])
        token = m.group(0)
        start = m.start()
        if token in comment_markers:
            end = text.find('\n', start)
            end = n if end == -1 else end
            mask = False
        elif len(token) == 3:
            end = _find_triple_end(text, start + 3, token)
            mask = True
        elif token == '`':
            end = _scan_template(text, start)
            mask = '\n' in text[start:end]
        else:
            end = _skip_quoted(text, start)
            mask = False
        literal = text[start:end]
        if mask:
            placeholder = f'{prefix}{len(literals)}__'
            literals[placeholder] = literal
            parts.append(placeholder)
        else:
            parts.append(literal)
        i = end
    return ''.join(parts), literals


def restore_literals(text: str, literals: LiteralMap) -> str:
    """Put the original literals back in place of their placeholders."""
    for placeholder, original in literals.items():
        # str.replace is literal: '$1' or '\\g<0>' in the original stay as-is
        text = text.replace(placeholder, original)
    return text


# ---------------------------------------------------------------------------
# Indent alignment
# ---------------------------------------------------------------------------

_DOC_LINE_RE = re.compile(r'\*(\s|/|$)')
_MATH_LINE_RE = re.compile(r'\*\s+[A-Za-z_]')


def _round_half_up(value: float) -> int:
    return int(value + 0.5) if value >= 0 else -int(-value + 0.5)


def detect_indent_unit(lines: List[str]) -> str:
    """Return the file's indentation unit: '\\t', '  ' or '    '."""
    counts = {'tab': 0, 4: 0, 2: 0}
    for line in lines:
        line = _ZERO_WIDTH_RE.sub('', line)
        if not line.strip():
            continue
        indent = _leading_whitespace(line)
        if not indent:
            continue
        if '\t' in indent:
            counts['tab'] += 1
        elif len(indent) % 4 == 0:
            counts[4] += 1
        elif len(indent) % 2 == 0:
            counts[2] += 1

    if counts['tab'] > counts[4] and counts['tab'] > counts[2]:
        return '\t'
    if counts[2] and counts[2] >= counts[4]:
        return '  '
    return '    '


def detect_base_level(lines: List[str], start: int, unit: str) -> int:
    """Nesting level of the line at ``start`` measured in ``unit``."""
    line = lines[start] if 0 <= start < len(lines) else ''
    width = _indent_width(_ZERO_WIDTH_RE.sub('', line))
    unit_width = TAB_WIDTH if unit == '\t' else len(unit)
    return width // unit_width


def _source_step(indents: List[int]) -> int:
    """Indent step the replacement was written with.

    Steps of one column are ignored: they come from ' * ' comment lines.
    """
    present = [n for n in indents if n >= 0]
    if not present:
        return TAB_WIDTH
    steps = [
        abs(b - a) for a, b in zip(present, present[1:])
        if abs(b - a) >= 2
    ]
    if steps:
        counts = Counter(steps)
        return max(counts, key=lambda s: (counts[s], -s))
    anchor = present[0]
    diffs = [n - anchor for n in present if n > anchor]
    if diffs:
        return max(2, min(diffs))
    return TAB_WIDTH


def analyze_indent_levels(lines: List[str]) -> List[int]:
    """Relative nesting level of each line against the first non-blank line.

    Blank lines get 0.  Levels may be negative when the block dedents below
    its first line (e.g. a closing brace).
    """
    indents = []
    for line in lines:
        line = _ZERO_WIDTH_RE.sub('', line)
        if not line.strip():
            indents.append(-1)
            continue
        width = _indent_width(line)
        if width % 2 == 1 and _DOC_LINE_RE.match(line.lstrip()):
            width -= 1  # ' * ' comment continuation: the extra column is restored later
        indents.append(width)

    anchor = next((n for n in indents if n >= 0), None)
    if anchor is None:
        return [0] * len(lines)

    step = _source_step(indents)
    return [0 if n < 0 else _round_half_up((n - anchor) / step) for n in indents]


def normalize_indent(lines: List[str], unit: str, base_level: int) -> List[str]:
    """Re-indent lines with ``unit`` at ``base_level`` plus their own nesting."""
    levels = analyze_indent_levels(lines)
    result = []
    in_block_comment = False
    for line, level in zip(lines, levels):
        clean = _ZERO_WIDTH_RE.sub('', line)
        if not clean.strip():
            result.append(clean)
            continue
        total = max(0, base_level + level)
        trimmed = clean.lstrip()
        indent = unit * total
        if total > 0 and _DOC_LINE_RE.match(trimmed):
            # ' * ' continuation lines of a /** */ block sit one column in
            if in_block_comment or not (_MATH_LINE_RE.match(trimmed) and '@' not in trimmed):
                indent += ' '
        if trimmed.startswith('/*'):
            in_block_comment = '*/' not in trimmed[2:]
        elif in_block_comment and '*/' in trimmed:
            in_block_comment = False
        result.append(indent + trimmed)
    return result


def align_indent(file_lines: List[str], match_start: int, replace: str) -> List[str]:
    """Realign the replacement's lines to the indentation at match_start."""
    unit = detect_indent_unit(file_lines)
    base_level = detect_base_level(file_lines, match_start, unit)
    return normalize_indent(replace.split('\n'), unit, base_level)


# ---------------------------------------------------------------------------
# Syntax validation (brace-language dialects)
# ---------------------------------------------------------------------------

_REGEX_PREFIX_CHARS = frozenset('=(:,;[!&|?{}<>+-*%^~')
_REGEX_PREFIX_KEYWORD_RE = re.compile(
    r'(?<![\w$])(?:return|yield|await|typeof|void|delete|throw|case|in)$'
)
_BRACKET_PAIRS = {')': '(', ']': '[', '}': '{'}


def _can_start_regex(out: List[str]) -> bool:
    """A '/' starts a regex literal unless it follows an operand."""
    j = len(out) - 1
    while j >= 0 and out[j].isspace():
        j -= 1
    if j < 0:
        return True
    if out[j] in _REGEX_PREFIX_CHARS:
        return True
    tail = ''.join(out[max(0, j - 10):j + 1])
    return _REGEX_PREFIX_KEYWORD_RE.search(tail) is not None


def _scan_regex(code: str, start: int) -> Optional[int]:
    """Index just past the regex literal at start, or None if the line ends first."""
    i = start + 1
    n = len(code)
    in_class = False
    while i < n:
        ch = code[i]
        if ch == '\n':
            return None
        if ch == '\\':
            i += 2
            continue
        if ch == '[':
            in_class = True
        elif ch == ']':
            in_class = False
        elif ch == '/' and not in_class:
            i += 1
            while i < n and code[i].isalpha():
                i += 1
            return i
        i += 1
    return None


def strip_comments_and_strings(code: str) -> Tuple[str, SyntaxCheck]:
    """Remove comments, strings, regex and template text, keeping newlines.

    Interpolations keep their braces so the bracket pass still sees them.
    Returns (stripped, check); check is invalid when a template literal or
    interpolation is left open at end of input.
    """
    out: List[str] = []
    stack: List[_Frame] = []
    i = 0
    n = len(code)
    while i < n:
        ch = code[i]
        nxt = code[i + 1] if i + 1 < n else ''
        top = stack[-1] if stack else None

        if top is not None and top.kind is FrameKind.TEMPLATE:
            if ch == '`':
                stack.pop()
                i += 1
            elif ch == '$' and nxt == '{':
                stack.append(_Frame(FrameKind.INTERPOLATION, depth=1,
                                    line=code.count('\n', 0, i) + 1))
                out.append('{')
                i += 2
            elif ch == '\\':
                if nxt == '\n':
                    out.append('\n')
                i += 2
            else:
                if ch == '\n':
                    out.append('\n')
                i += 1
            continue

        if ch == '/' and nxt == '/':
            end = code.find('\n', i)
            i = n if end == -1 else end
            continue
        if ch == '/' and nxt == '*':
            end = code.find('*/', i + 2)
            end = n if end == -1 else end + 2
            out.append('\n' * code.count('\n', i, end))
            i = end
            continue
        if ch in '"\'':
            end = _skip_quoted(code, i)
            out.append('\n' * code.count('\n', i, end))
            i = end
            continue
        if ch == '`':
            stack.append(_Frame(FrameKind.TEMPLATE, line=code.count('\n', 0, i) + 1))
            i += 1
            continue
        if ch == '/' and _can_start_regex(out):
            end = _scan_regex(code, i)
            if end is not None:
                i = end
                continue

        if top is not None:
            if ch == '{':
                top.depth += 1
            elif ch == '}':
                top.depth -= 1
                if top.depth == 0:
                    stack.pop()
        out.append(ch)
        i += 1

    stripped = ''.join(out)
    if stack:
        top = stack[-1]
        if top.kind is FrameKind.TEMPLATE:
            error = f"Line {top.line}: unclosed template literal"
        else:
            error = f"Line {top.line}: unfinished ${{}} interpolation"
        return stripped, SyntaxCheck(valid=False, error=error, line=top.line)
    return stripped, SyntaxCheck(valid=True)


def check_brackets(code: str) -> SyntaxCheck:
    """Classic bracket matching over already-stripped code."""
    stack: List[Tuple[str, int]] = []
    line = 1
    for ch in code:
        if ch == '\n':
            line += 1
        elif ch in '([{':
            stack.append((ch, line))
        elif ch in _BRACKET_PAIRS:
            if not stack:
                return SyntaxCheck(False, f"Line {line}: unexpected '{ch}'", line)
            opener, open_line = stack.pop()
            if opener != _BRACKET_PAIRS[ch]:
                return SyntaxCheck(
                    False,
                    f"Line {line}: '{ch}' does not match '{opener}' from line {open_line}",
                    line,
                )
    if stack:
        opener, open_line = stack[-1]
        return SyntaxCheck(False, f"Line {open_line}: '{opener}' is never closed", open_line)
    return SyntaxCheck(True)


def validate_brace_balance(content: str) -> SyntaxCheck:
    stripped, check = strip_comments_and_strings(content)
    if not check.valid:
        return check
    return check_brackets(stripped)


def check_brace_syntax(content: str, dialect_hint: Optional[str] = '') -> SyntaxCheck:
    """Bracket-balance check; always valid for dialects that are not brace checked."""
    if not resolve_dialect(dialect_hint).brace_checked:
        return SyntaxCheck(True)
    return validate_brace_balance(content)


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------

def _splice(
    content: str, location: MatchLocation, replace: str, ending: str,
    dialect: Dialect, match_type: str,
) -> PatchOutcome:
    lines = content.split('\n')
    masked, literals = mask_literals(replace, _comment_markers(dialect))
    if masked.strip():
        aligned = align_indent(lines, location.start_line, masked)
        new_lines = [restore_literals(line, literals) for line in aligned]
    else:
        new_lines = []

    patched = '\n'.join(
        lines[:location.start_line] + new_lines + lines[location.end_line + 1:]
    )
    patched = restore_line_endings(patched, ending)
    match_line = location.start_line + 1
    line_count = location.end_line - location.start_line + 1

    if dialect.brace_checked:
        check = validate_brace_balance(patched)
        if not check.valid:
            return SyntaxRejected(
                detail=check.error or 'unbalanced brackets',
                line=check.line,
                content=patched,
                match_line=match_line,
                line_count=line_count,
            )
    return Success(
        content=patched,
        match_line=match_line,
        line_count=line_count,
        match_type=match_type,
    )


def patch(
    file_content: str, search_block: str, replace_block: str, dialect_hint: Optional[str] = ''
) -> PatchOutcome:
    """Apply one search/replace edit to file_content.

    Pure function of its inputs; returns exactly one outcome variant.
    """
    dialect = resolve_dialect(dialect_hint)
    ending = detect_line_ending(file_content)
    content = normalize_line_endings(file_content)
    search = normalize_line_endings(search_block)
    replace = normalize_line_endings(replace_block)
    if replace.endswith('\n'):
        replace = replace[:-1]

    if is_already_applied(content, search, replace, dialect.indent_sensitive):
        return AlreadyApplied()

    file_sig = get_logic_signature(content)
    search_sig = get_logic_signature(search)
    locations = find_match_locations(file_sig, search_sig, dialect.indent_sensitive)
    match_type = 'logic'
    if not locations:
        locations = find_fuzzy_locations(content, search, dialect.indent_sensitive)
        match_type = 'fuzzy'

    if not locations:
        return NoMatch()
    if len(locations) > 1:
        return Ambiguous(
            match_count=len(locations),
            match_lines=tuple(loc.start_line + 1 for loc in locations),
        )
    return _splice(content, locations[0], replace, ending, dialect, match_type)


def outcome_to_dict(outcome: PatchOutcome, include_content: bool = False) -> dict:
    """Convert an outcome to a JSON-serializable dict."""
    d = {'status': outcome.status}
    for key, value in asdict(outcome).items():
        if key == 'content' and not include_content:
            continue
        d[key] = list(value) if isinstance(value, tuple) else value
    return d


# ---------------------------------------------------------------------------
# File-level edit
# ---------------------------------------------------------------------------

def _compute_diff(old_content: str, new_content: str, file_path: str) -> str:
    """Compute a unified diff between old and new content."""
    old_lines = old_content.splitlines(keepends=True)
    new_lines = new_content.splitlines(keepends=True)
    diff_lines = difflib.unified_diff(
        old_lines, new_lines,
        fromfile=f"a/{os.path.basename(file_path)}",
        tofile=f"b/{os.path.basename(file_path)}",
    )
    return ''.join(diff_lines)


def read_text(file_path: str) -> str:
    with open(file_path, 'rb') as f:
        return f.read().decode('utf-8', errors='replace')


def write_text(file_path: str, content: str) -> None:
    # bytes keep CRLF exactly as the engine produced it
    with open(file_path, 'wb') as f:
        f.write(content.encode('utf-8'))


def apply_edit(
    file_path: str,
    search: str,
    replace: str,
    dialect_hint: Optional[str] = None,
    dry_run: bool = False,
    force: bool = False,
) -> EditResult:
    """Apply a single edit to a file.

    The dialect defaults to the file's extension.  A syntax-rejected result is
    written only with ``force`` (explicit override).
    """
    try:
        content = read_text(file_path)
    except FileNotFoundError:
        return EditResult(status="error", file=file_path, error=f"File not found: {file_path}")
    except OSError as e:
        return EditResult(status="error", file=file_path, error=str(e))

    hint = file_path if dialect_hint is None else dialect_hint
    outcome = patch(content, search, replace, hint)
    result = EditResult(status=outcome.status, file=file_path)

    if isinstance(outcome, NoMatch):
        result.error = "Search block not found in file"
        return result
    if isinstance(outcome, Ambiguous):
        result.match_count = outcome.match_count
        result.match_lines = list(outcome.match_lines)
        result.error = (
            f"Found {outcome.match_count} matching locations "
            f"(lines {', '.join(str(n) for n in outcome.match_lines)})"
        )
        return result
    if isinstance(outcome, AlreadyApplied):
        return result

    result.match_line = outcome.match_line
    result.line_count = outcome.line_count
    result.diff = _compute_diff(content, outcome.content, file_path)
    if isinstance(outcome, SyntaxRejected):
        result.error = outcome.detail
        result.line = outcome.line
        if not force:
            return result
    else:
        result.match_type = outcome.match_type

    if not dry_run:
        try:
            write_text(file_path, outcome.content)
        except OSError as e:
            return EditResult(status="error", file=file_path, error=str(e))
        result.written = True
    return result


def result_to_dict(result: EditResult) -> dict:
    """Convert EditResult to JSON-serializable dict."""
    d = {"status": result.status, "file": result.file}
    if result.match_type is not None:
        d["match_type"] = result.match_type
    if result.match_line is not None:
        d["match_line"] = result.match_line
    if result.line_count is not None:
        d["line_count"] = result.line_count
    if result.match_count is not None:
        d["match_count"] = result.match_count
        d["match_lines"] = result.match_lines
    if result.error is not None:
        d["error"] = result.error
    if result.line is not None:
        d["line"] = result.line
    d["written"] = result.written
    if result.diff is not None:
        d["diff"] = result.diff
    return d


def exit_code_for(result: EditResult) -> int:
    if result.status in ("applied", "already_applied") or result.written:
        return 0
    if result.status == "ambiguous":
        return 2
    return 1


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def parse_edit_input(args) -> List[dict]:
    """Parse edit instructions from CLI args, a JSON file, stdin or AI output."""
    if args.blocks:
        from lp_blocks import parse_blocks

        with open(args.blocks, 'r', encoding='utf-8') as f:
            text = f.read()
        return [
            {"file": b.file, "search": b.search, "replace": b.replace}
            for b in parse_blocks(text, default_file=args.file)
        ]

    if args.stdin:
        data = json.load(sys.stdin)
    elif args.edit:
        with open(args.edit, 'r', encoding='utf-8') as f:
            data = json.load(f)
    elif args.file and args.search is not None and args.replace is not None:
        return [{"file": args.file, "search": args.search, "replace": args.replace}]
    else:
        raise ValueError(
            "Must provide --file/--search/--replace, --edit <file>, --blocks <file> or --stdin"
        )

    if isinstance(data, dict) and "edits" in data:
        return data["edits"]
    return [data]


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="lp",
        description="LogicPatch — safe search/replace patching for AI code edits",
    )
    sub = parser.add_subparsers(dest="command")

    apply_parser = sub.add_parser("apply", help="Apply edit(s) to file(s)")
    apply_parser.add_argument("--file", help="Target file path (default file for --blocks)")
    apply_parser.add_argument("--search", help="Block to find")
    apply_parser.add_argument("--replace", help="Replacement block (empty deletes)")
    apply_parser.add_argument("--edit", help="JSON edit instruction file")
    apply_parser.add_argument("--blocks", help="Text file with SEARCH/REPLACE blocks")
    apply_parser.add_argument(
        "--stdin", action="store_true", help="Read JSON from stdin"
    )
    apply_parser.add_argument(
        "--dialect",
        help="Dialect hint (extension or language); defaults to the file extension",
    )
    apply_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would change without writing",
    )
    apply_parser.add_argument(
        "--force",
        action="store_true",
        help="Write even when the result fails the bracket check",
    )
    apply_parser.add_argument(
        "--diff",
        action="store_true",
        help="Print unified diff to stderr",
    )

    check_parser = sub.add_parser("check", help="Check a file's bracket balance")
    check_parser.add_argument("file", help="File to check")
    check_parser.add_argument("--dialect", help="Dialect hint; defaults to the file extension")

    args = parser.parse_args(argv)

    if args.command == "check":
        try:
            content = read_text(args.file)
        except OSError as e:
            print(json.dumps({"status": "error", "file": args.file, "error": str(e)}))
            return 1
        hint = args.file if args.dialect is None else args.dialect
        check = check_brace_syntax(content, hint)
        result = {"status": "valid" if check.valid else "invalid", "file": args.file}
        if check.error:
            result["error"] = check.error
            result["line"] = check.line
        print(json.dumps(result, indent=2))
        return 0 if check.valid else 1

    if args.command != "apply":
        parser.print_help()
        return 1

    try:
        edits = parse_edit_input(args)
    except (ValueError, OSError, json.JSONDecodeError) as e:
        print(json.dumps({"status": "error", "error": str(e)}))
        return 1

    results = []
    exit_code = 0

    for edit in edits:
        file_path = edit.get("file") or ""
        result = apply_edit(
            file_path,
            edit.get("search", ""),
            edit.get("replace", ""),
            dialect_hint=edit.get("dialect", args.dialect),
            dry_run=args.dry_run,
            force=args.force,
        )

        if args.diff and result.diff:
            print(result.diff, file=sys.stderr, end='')

        results.append(result_to_dict(result))
        exit_code = max(exit_code, exit_code_for(result))

    if len(results) == 1:
        print(json.dumps(results[0], indent=2))
    else:
        print(json.dumps(results, indent=2))

    return exit_code


if __name__ == "__main__":
    sys.exit(main())
