"""Answer extractor — separates prose from structured data in a final answer.

When a result carries rows, the answer text often repeats them as JSON.
Two embedded forms are removed:

- fenced blocks tagged ``json`` (or untagged blocks whose body starts
  with ``[`` / ``{``), delimiters included
- raw ``[...]`` array literals inside the prose, matched with
  :func:`match_bracket`

Cleaning runs to a fixed point, so ``clean_answer_text`` is idempotent.
It never raises: an unbalanced ``[`` stops the array pass and the rest of
the text is kept as is.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from models.chart import ChartData
from models.conversation import ResultShape

_FENCE_RE = re.compile(r"```(?P<lang>[A-Za-z0-9_+-]*)[ \t]*(?P<body>.*?)```", re.DOTALL)
_STRUCTURED_LANGS = frozenset({"json", "jsonc", "json5"})


@dataclass(frozen=True)
class ExtractedAnswer:
    text: str
    shape: ResultShape
    rows: list[dict[str, Any]] = field(default_factory=list)
    chart: ChartData | None = None

    @property
    def has_json_data(self) -> bool:
        return bool(self.rows)


def extract_answer(
    answer: str | None,
    rows: list[dict[str, Any]] | None,
    chart: ChartData | None = None,
) -> ExtractedAnswer:
    """Classify a final answer and clean its text when rows are present."""
    answer = answer or ""
    rows = rows or []
    chartable = chart is not None and chart.is_chartable

    if not rows:
        shape = ResultShape.CHART if chartable else ResultShape.TEXT
        return ExtractedAnswer(text=answer, shape=shape, chart=chart)

    shape = ResultShape.CHART if chartable else ResultShape.TABLE
    return ExtractedAnswer(
        text=clean_answer_text(answer), shape=shape, rows=rows, chart=chart
    )


def clean_answer_text(text: str) -> str:
    """Remove embedded structured-data fragments, then trim whitespace."""
    previous = None
    while text != previous:
        previous = text
        text = strip_inline_arrays(strip_fenced_blocks(text))
    return text.strip()


def strip_fenced_blocks(text: str) -> str:
    """Remove fenced code blocks holding structured data.  Others are kept."""

    def _replace(match: re.Match[str]) -> str:
        lang = match.group("lang").lower()
        body = match.group("body").strip()
        if lang in _STRUCTURED_LANGS or (not lang and body[:1] in ("[", "{")):
            return ""
        return match.group(0)

    return _FENCE_RE.sub(_replace, text)


def strip_inline_arrays(text: str) -> str:
    """Remove every balanced ``[...]`` literal, left to right.

    Stops at the first ``[`` that is never closed and keeps the remainder.
    """
    out: list[str] = []
    pos = 0
    while True:
        open_index = text.find("[", pos)
        if open_index < 0:
            out.append(text[pos:])
            break
        close_index = match_bracket(text, open_index)
        if close_index is None:
            out.append(text[pos:])
            break
        out.append(text[pos:open_index])
        pos = close_index + 1
    return "".join(out)


def match_bracket(text: str, open_index: int) -> int | None:
    """Return the index of the ``]`` closing the ``[`` at *open_index*.

    Brackets inside double-quoted strings are ignored and a backslash
    escapes the next character within a string.  Returns None when the
    bracket is never closed, or when *open_index* is not a ``[``.
    """
    if not 0 <= open_index < len(text) or text[open_index] != "[":
        return None

    depth = 0
    in_string = False
    escaped = False
    for index in range(open_index, len(text)):
        ch = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "[":
            depth += 1
        elif ch == "]":
            depth -= 1
            if depth == 0:
                return index
    return None
