"""Edit-block extraction for LogicPatch.

Pulls SEARCH/REPLACE and DELETE blocks out of free-form AI output:

    <<<<<<< SEARCH [src/app.js]
    return 1;
    =======
    return 2;
    >>>>>>> REPLACE

    <<<<<<< DELETE [src/old.js]
    >>>>>>> END

Markers must occupy whole lines.  Delimiter runs of 6-10 characters are
accepted, the file may be given in brackets or bare, and a trailing
``start-end`` line range after the file is ignored.  A block whose closing
REPLACE marker was cut off runs to the end of the text.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional

SEARCH_BLOCK_RE = re.compile(
    r'^<{6,10}[ \t]*SEARCH'
    r'(?:[ \t]*\[(?P<bracket>[^\]\n]+)\]|[ \t]+(?P<bare>[^\s\[\]]+))?'
    r'(?:[ \t]+\d+-\d+)?[ \t]*\n'
    r'(?P<search>.*?)'
    r'^={6,10}[ \t]*(?:\n|\Z)'
    r'(?P<replace>.*?)'
    r'(?:^>{6,10}[ \t]*REPLACE[ \t]*$|\Z)',
    re.MULTILINE | re.DOTALL,
)

DELETE_BLOCK_RE = re.compile(
    r'^<{6,10}[ \t]*DELETE[ \t]*\[(?P<file>[^\]\n]+)\].*?^>{6,10}[ \t]*END[ \t]*$',
    re.MULTILINE | re.DOTALL,
)

FILE_ANNOTATION_RES = [
    re.compile(r'^//\s*FILE:\s*(.+?)(?:\s*\[OVERWRITE\])?\s*$', re.MULTILINE),
    re.compile(r'^#\s*FILE:\s*(.+?)(?:\s*\[OVERWRITE\])?\s*$', re.MULTILINE),
    re.compile(r'^/\*\s*FILE:\s*(.+?)(?:\s*\[OVERWRITE\])?\s*\*/$', re.MULTILINE),
    re.compile(r'^<!--\s*FILE:\s*(.+?)(?:\s*\[OVERWRITE\])?\s*-->$', re.MULTILINE),
]


@dataclass
class EditBlock:
    file: Optional[str]
    search: str
    replace: str
    is_removal: bool = False  # blank replace: the searched code is deleted


@dataclass
class DeleteBlock:
    file: str


def _drop_one_newline(text: str) -> str:
    return text[:-1] if text.endswith('\n') else text


def extract_file_path(text: str) -> Optional[str]:
    """Return the path of the first ``FILE:`` annotation comment, if any."""
    for pattern in FILE_ANNOTATION_RES:
        m = pattern.search(text)
        if m:
            return m.group(1).strip()
    return None


def parse_search_replace(text: str) -> List[EditBlock]:
    """Extract every SEARCH/REPLACE block, in order of appearance."""
    text = text.replace('\r\n', '\n')
    blocks = []
    for m in SEARCH_BLOCK_RE.finditer(text):
        path = m.group('bracket') or m.group('bare')
        replace = _drop_one_newline(m.group('replace'))
        blocks.append(EditBlock(
            file=path.strip() if path else None,
            search=_drop_one_newline(m.group('search')),
            replace=replace,
            is_removal=not replace.strip(),
        ))
    return blocks


def parse_delete(text: str) -> List[DeleteBlock]:
    """Extract ``DELETE [path]`` file-deletion directives."""
    text = text.replace('\r\n', '\n')
    return [DeleteBlock(file=m.group('file').strip()) for m in DELETE_BLOCK_RE.finditer(text)]


def parse_blocks(text: str, default_file: Optional[str] = None) -> List[EditBlock]:
    """SEARCH/REPLACE blocks with a file filled in wherever one can be found.

    Blocks without their own path fall back to a ``FILE:`` annotation in the
    text, then to ``default_file``.
    """
    fallback = extract_file_path(text) or default_file
    blocks = parse_search_replace(text)
    for block in blocks:
        if not block.file:
            block.file = fallback
    return blocks
