"""
Villain highlighting — splits result text into plain and matched spans.

    spans = match_terms("Contains Maltodextrin and Corn Syrup", result.villains)
    [Plain("Contains "), Match("Maltodextrin", ...), Plain(" and "), Match("Corn Syrup", ...)]

Joining the span texts always gives back the input exactly. Matching is
case-insensitive and literal (a villain named "Red 40 (E129)" is not a
pattern). Longer names win over names they contain, so
"High Fructose Corn Syrup" is one match, not "High Fructose " + "Corn Syrup".
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable

from models import Villain


@dataclass(frozen=True)
class Plain:
    text: str


@dataclass(frozen=True)
class Match:
    text: str
    villain: Villain


Span = Plain | Match


class TermIndex:
    """
    Compiled lookup over a villain list. Build once per result, scan many
    fields with it. Holds no mutable state after construction.
    """

    def __init__(self, villains: Iterable[Villain]):
        villains = [v for v in villains if v.name]

        # First occurrence wins when the model repeats a name.
        self._by_key: dict[str, Villain] = {}
        for v in villains:
            self._by_key.setdefault(v.name.lower(), v)

        # sorted() is stable, so equal-length names keep their original order.
        # re tries alternatives left to right, so the longest name at a
        # position is the one that matches.
        names = sorted(self._by_key.values(), key=lambda v: len(v.name), reverse=True)
        self._ordered = names
        self._pattern = (
            re.compile("|".join(re.escape(v.name) for v in names), re.IGNORECASE)
            if names else None
        )

    def __bool__(self) -> bool:
        return self._pattern is not None

    def scan(self, text: str) -> list[Span]:
        if not text:
            return []
        if self._pattern is None:
            return [Plain(text)]

        spans: list[Span] = []
        pos = 0
        for m in self._pattern.finditer(text):
            if m.start() > pos:
                spans.append(Plain(text[pos:m.start()]))
            spans.append(Match(m.group(0), self._resolve(m.group(0))))
            pos = m.end()
        if pos < len(text):
            spans.append(Plain(text[pos:]))
        return spans

    def _resolve(self, matched: str) -> Villain:
        villain = self._by_key.get(matched.lower())
        if villain is not None:
            return villain
        # lower() and IGNORECASE disagree on a few non-ASCII letters
        for v in self._ordered:
            if re.fullmatch(re.escape(v.name), matched, re.IGNORECASE):
                return v
        raise LookupError(f"No villain for matched text {matched!r}")


def match_terms(text: str, villains: Iterable[Villain]) -> list[Span]:
    """Split `text` into Plain / Match spans for every villain name it contains."""
    return TermIndex(villains).scan(text)


def plain_text(spans: Iterable[Span]) -> str:
    """Drop the markup and return the original text."""
    return "".join(span.text for span in spans)


def matched_villains(spans: Iterable[Span]) -> list[Villain]:
    """Villains that actually appear in the spans, in order of first appearance."""
    seen = []
    for span in spans:
        if isinstance(span, Match) and span.villain not in seen:
            seen.append(span.villain)
    return seen


# ── Terminal rendering ────────────────────────────────────────────────────────

_ANSI_HIGHLIGHT = "\033[1;4;31m"  # bold, underlined, red
_ANSI_RESET = "\033[0m"


def render_ansi(spans: Iterable[Span], color: bool = True) -> str:
    """Render spans for a terminal. Without color, matches are wrapped in [brackets]."""
    parts = []
    for span in spans:
        if isinstance(span, Match):
            parts.append(f"{_ANSI_HIGHLIGHT}{span.text}{_ANSI_RESET}" if color else f"[{span.text}]")
        else:
            parts.append(span.text)
    return "".join(parts)
