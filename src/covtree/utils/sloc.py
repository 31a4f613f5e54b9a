"""Source line counting for the descriptive ``loc``/``ncloc`` report metrics."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class LineCount:
    """Line counts for one source file (or a sum of files)."""

    total: int = 0
    """Non-blank lines, code and comments together."""

    source: int = 0
    """Non-blank lines carrying code."""

    def __add__(self, other: LineCount) -> LineCount:
        return LineCount(total=self.total + other.total, source=self.source + other.source)


class LineCounter(Protocol):
    """Counts code and comment lines in source text."""

    def count(self, text: str) -> LineCount: ...


class CommentPrefixLineCounter:
    """Line counter driven by comment delimiters.

    A line counts as a comment when, after stripping whitespace, it starts
    with a line-comment prefix or lies inside a block comment. A line that
    opens or closes a block comment but also carries code counts as code.
    """

    def __init__(
        self,
        line_prefixes: tuple[str, ...],
        block_delimiters: tuple[str, str] | None = None,
    ) -> None:
        self._line_prefixes = line_prefixes
        self._block = block_delimiters

    def count(self, text: str) -> LineCount:
        total = 0
        source = 0
        in_block = False

        for line in text.splitlines():
            stripped = line.strip()
            if not stripped:
                continue
            total += 1

            has_code, in_block = self._scan(stripped, in_block=in_block)
            if has_code:
                source += 1

        return LineCount(total=total, source=source)

    def _scan(self, stripped: str, *, in_block: bool) -> tuple[bool, bool]:
        """Return ``(has_code, in_block_after)`` for one non-blank line."""
        if self._block is None:
            return not stripped.startswith(self._line_prefixes), False

        start, end = self._block
        rest = stripped
        has_code = False
        while rest:
            if in_block:
                idx = rest.find(end)
                if idx < 0:
                    return has_code, True
                rest = rest[idx + len(end) :].strip()
                in_block = False
                continue
            if rest.startswith(self._line_prefixes):
                break
            if rest.startswith(start):
                rest = rest[len(start) :]
                in_block = True
                continue
            has_code = True
            idx = rest.find(start)
            if idx < 0:
                break
            rest = rest[idx + len(start) :]
            in_block = True
        return has_code, in_block


_C_STYLE = CommentPrefixLineCounter(("//",), ("/*", "*/"))
_HASH_STYLE = CommentPrefixLineCounter(("#",))

_COUNTERS: dict[str, LineCounter] = {
    "javascript": _C_STYLE,
    "typescript": _C_STYLE,
    "java": _C_STYLE,
    "c": _C_STYLE,
    "cpp": _C_STYLE,
    "csharp": _C_STYLE,
    "go": _C_STYLE,
    "rust": _C_STYLE,
    "python": _HASH_STYLE,
    "ruby": _HASH_STYLE,
    "shell": _HASH_STYLE,
}

KNOWN_LANGUAGES = frozenset(_COUNTERS)


def line_counter_for(language: str) -> LineCounter:
    """Return the line counter for *language*.

    Raises:
        KeyError: When no counter is registered for *language*.
    """
    return _COUNTERS[language]
