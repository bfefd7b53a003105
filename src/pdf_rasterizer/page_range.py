"""Page selection expressions such as ``"1-3,5,8-8"``."""

from __future__ import annotations

import re

from .errors import InvalidRangeError

_NUMBER_RE = re.compile(r"^\d+$")


def _parse_number(text: str, token: str) -> int:
    text = text.strip()
    if not _NUMBER_RE.match(text):
        raise InvalidRangeError(f"Invalid page token: {token!r}")
    value = int(text)
    if value == 0:
        raise InvalidRangeError(f"Page numbers start at 1: {token!r}")
    return value


def _parse_tokens(expression: str) -> list[tuple[int, int]]:
    spans: list[tuple[int, int]] = []
    for raw in expression.split(","):
        token = raw.strip()
        if not token:
            raise InvalidRangeError(f"Empty page token in {expression!r}")
        if "-" in token:
            parts = token.split("-")
            if len(parts) != 2:
                raise InvalidRangeError(f"Invalid page token: {token!r}")
            start = _parse_number(parts[0], token)
            end = _parse_number(parts[1], token)
            if start > end:
                raise InvalidRangeError(f"Descending page range: {token!r}")
            spans.append((start, end))
        else:
            number = _parse_number(token, token)
            spans.append((number, number))
    return spans


def is_all_pages(expression: str | None) -> bool:
    return expression is None or not expression.strip()


def validate_page_range(expression: str | None) -> None:
    """Check the grammar of *expression* without a document at hand."""

    if not is_all_pages(expression):
        _parse_tokens(expression)  # type: ignore[arg-type]


def parse_page_range(expression: str | None, page_count: int) -> list[int]:
    """Resolve *expression* to ascending, unique 1-based page numbers.

    An empty or blank expression selects every page. Numbers beyond
    ``page_count`` are clipped away; an empty result is an error.
    """

    if is_all_pages(expression):
        pages = list(range(1, max(page_count, 0) + 1))
    else:
        selected: set[int] = set()
        for start, end in _parse_tokens(expression):  # type: ignore[arg-type]
            selected.update(range(start, min(end, page_count) + 1))
        pages = sorted(selected)
    if not pages:
        raise InvalidRangeError(
            f"No pages selected (expression {expression or '<all>'!r}, document has {page_count} pages)"
        )
    return pages


__all__ = ["parse_page_range", "validate_page_range", "is_all_pages"]
