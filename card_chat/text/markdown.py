"""Best-effort repair of markdown returned by the chat providers.

Both providers run their output through the same pass:

1. Comparison tables (a heading followed by ``|`` rows): blank lines inside the
   block are dropped, cells trimmed, divider rows standardized.
2. "Best suited for" / "recommendation by use case" sections emitted with ``|`` or
   ``||`` delimiters instead of a table are rebuilt as a three-column table.
3. Heading markers are collapsed to at most ``###`` with a single following space.
   Lines made only of ``#`` and ``#!`` lines are not headings and stay as they are.

This is not a markdown parser. ``normalize`` never raises, leaves fenced code blocks
alone and is idempotent: ``normalize(normalize(x)) == normalize(x)``.
"""

import re
from typing import Callable, List, Optional, Tuple

from card_chat.infrastructure.logging.logger import logger

PLACEHOLDER = "-"
USE_CASE_HEADER = ["Use Case", "Best Option", "Reason"]
MAX_HEADING_LEVEL = 3

_FENCE_RE = re.compile(r"^\s*(```|~~~)")
_HEADING_RE = re.compile(r"^#+")
_HEADING_MARKER_RE = re.compile(r"^(#+)[ \t]*((?:#+[ \t]+)*)([^#!\s].*)$")
_CELL_SPLIT_RE = re.compile(r"(?<!\\)\|")
_ROW_SPLIT_RE = re.compile(r"(?<!\\)\|\|")
_DIVIDER_CELL_RE = re.compile(r"^(:?)\s*-+\s*(:?)$")
_USE_CASE_TITLE_RE = re.compile(
    r"best\s+suited\s+for|recommendations?\s+by\s+use\s+case", re.IGNORECASE
)
_BULLET_RE = re.compile(r"^(?:[-*+]|\d+[.)])\s+")

Step = Callable[[List[str]], List[str]]


def _is_fence(line: str) -> bool:
    return bool(_FENCE_RE.match(line))


def _is_heading(line: str) -> bool:
    return bool(_HEADING_RE.match(line))


def _is_row(line: str) -> bool:
    return line.lstrip().startswith("|")


def _split_cells(line: str) -> List[str]:
    inner = line.strip()
    if inner.startswith("|"):
        inner = inner[1:]
    if inner.endswith("|") and not inner.endswith("\\|"):
        inner = inner[:-1]
    return [cell.strip() for cell in _CELL_SPLIT_RE.split(inner)]


def _join_cells(cells: List[str]) -> str:
    return "| " + " | ".join(cells) + " |"


def _is_divider(cells: List[str]) -> bool:
    return bool(cells) and all(_DIVIDER_CELL_RE.match(cell) for cell in cells)


def _divider_cell(cell: str) -> str:
    m = _DIVIDER_CELL_RE.match(cell)
    return f"{m.group(1)}---{m.group(2)}"


# ---- step 1: comparison tables ----

def _format_table(rows: List[str]) -> List[str]:
    parsed = [_split_cells(row) for row in rows]
    has_divider = any(_is_divider(cells) for cells in parsed)
    formatted: List[str] = []
    for idx, cells in enumerate(parsed):
        if _is_divider(cells):
            formatted.append(_join_cells([_divider_cell(c) for c in cells]))
        else:
            formatted.append(_join_cells(cells))
        if idx == 0 and not has_divider:
            formatted.append(_join_cells(["---"] * len(cells)))
    return formatted


def _collect_table(lines: List[str], start: int) -> Tuple[List[str], int]:
    """Return (rows, end) for the ``|`` block starting at ``start``; blank lines
    are skipped only when another row follows them."""
    rows: List[str] = []
    k = start
    n = len(lines)
    while k < n:
        if _is_row(lines[k]):
            rows.append(lines[k])
            k += 1
            continue
        if not lines[k].strip():
            m = k
            while m < n and not lines[m].strip():
                m += 1
            if m < n and _is_row(lines[m]):
                k = m
                continue
        break
    return rows, k


def _repair_tables(lines: List[str]) -> List[str]:
    out: List[str] = []
    in_fence = False
    i, n = 0, len(lines)
    while i < n:
        line = lines[i]
        if _is_fence(line):
            in_fence = not in_fence
        if in_fence or not _is_heading(line):
            out.append(line)
            i += 1
            continue

        j = i + 1
        while j < n and not lines[j].strip():
            j += 1
        rows, end = _collect_table(lines, j)
        if len(rows) < 2:
            out.append(line)
            i += 1
            continue
        out.append(line)
        out.extend(_format_table(rows))
        i = end
    return out


# ---- step 2: "best suited for" sections ----

def _rebuild_use_case_table(block: List[str]) -> Optional[List[str]]:
    if not block or _is_row(block[0]) or not any("|" in line for line in block):
        return None

    rows: List[List[str]] = []
    for raw in block:
        for chunk in _ROW_SPLIT_RE.split(raw):
            parts = [p.strip() for p in _CELL_SPLIT_RE.split(chunk)]
            parts = [p for p in parts if p]
            if not parts:
                continue
            parts[0] = _BULLET_RE.sub("", parts[0]) or PLACEHOLDER
            if _is_divider(parts) or parts[0].lower() == USE_CASE_HEADER[0].lower():
                continue
            rows.append(parts)
    if not rows:
        return None

    table = [_join_cells(USE_CASE_HEADER), _join_cells(["---"] * len(USE_CASE_HEADER))]
    for parts in rows:
        if len(parts) > 3:
            parts = parts[:2] + [", ".join(parts[2:])]
        parts = parts + [PLACEHOLDER] * (3 - len(parts))
        table.append(_join_cells(parts))
    return table


def _repair_use_case_sections(lines: List[str]) -> List[str]:
    out: List[str] = []
    in_fence = False
    i, n = 0, len(lines)
    while i < n:
        line = lines[i]
        if _is_fence(line):
            in_fence = not in_fence
        if in_fence or not (_is_heading(line) and _USE_CASE_TITLE_RE.search(line)):
            out.append(line)
            i += 1
            continue

        j = i + 1
        while j < n and not lines[j].strip():
            j += 1
        k = j
        while k < n and lines[k].strip() and not _is_heading(lines[k]) and not _is_fence(lines[k]):
            k += 1
        table = _rebuild_use_case_table(lines[j:k])
        # rows after blank lines would join the rebuilt table in step 1 of the
        # next pass, so they are absorbed now
        m = k
        while m < n and not lines[m].strip():
            m += 1
        if table is not None and m > k and m < n and _is_row(lines[m]):
            _, k = _collect_table(lines, m)
            table = _rebuild_use_case_table(lines[j:k])
        out.append(line)
        if table is None:
            i += 1
            continue
        out.extend(table)
        i = k
    return out


# ---- step 3: headings ----

def _normalize_headings(lines: List[str]) -> List[str]:
    out: List[str] = []
    in_fence = False
    for line in lines:
        if _is_fence(line):
            in_fence = not in_fence
            out.append(line)
            continue
        m = None if in_fence else _HEADING_MARKER_RE.match(line)
        if m is None:
            out.append(line)
            continue
        level = len(m.group(1)) + m.group(2).count("#")
        out.append("#" * min(level, MAX_HEADING_LEVEL) + " " + m.group(3).rstrip())
    return out


_STEPS: List[Step] = [_repair_tables, _repair_use_case_sections, _normalize_headings]


def _apply(step: Step, text: str) -> str:
    try:
        return "\n".join(step(text.split("\n")))
    except Exception:  # pragma: no cover - a failed step keeps its input
        logger.warning(
            "normalize.step_failed",
            exc_info=True,
            extra={"extra": {"step": step.__name__}},
        )
        return text


def normalize(text: str) -> str:
    """Repair tables and headings in a model reply; see module docstring."""

    if not isinstance(text, str):
        return ""
    text = text.replace("\r\n", "\n")
    for step in _STEPS:
        text = _apply(step, text)
    return text
