"""Deterministic rule-based structuring of recognised page text.

Turns raw text into header-keyed rows using a task's rules: literal
find/replace corrections, case-insensitive junk-line eliminators, a
column separator and an ordered header list.
"""

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from docsheet.errors import RuleMismatchError
from docsheet.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_SEPARATOR = "\t"


def split_list(value: str) -> list[str]:
    """Split a comma-delimited rule string into trimmed items."""
    if not value:
        return []
    return [item.strip() for item in value.split(",")]


def parse_headers(value: str) -> list[str]:
    return [h for h in split_list(value) if h]


def parse_eliminators(value: str) -> list[str]:
    return [e.lower() for e in split_list(value) if e]


@dataclass(frozen=True)
class TaskRules:
    """Parsed structuring rules of one extraction task."""

    headers: tuple[str, ...]
    separator: str = DEFAULT_SEPARATOR
    eliminators: tuple[str, ...] = ()
    find_values: tuple[str, ...] = ()
    replace_values: tuple[str, ...] = ()

    @classmethod
    def from_strings(
        cls,
        headers: str,
        separator: str = DEFAULT_SEPARATOR,
        eliminators: str = "",
        find_values: str = "",
        replace_values: str = "",
    ) -> "TaskRules":
        """Parse the comma-delimited rule strings a user edits."""
        return cls(
            headers=tuple(parse_headers(headers)),
            separator=separator or DEFAULT_SEPARATOR,
            eliminators=tuple(parse_eliminators(eliminators)),
            find_values=tuple(split_list(find_values)),
            replace_values=tuple(split_list(replace_values)),
        )


def correction_pairs(
    find_values: Sequence[str], replace_values: Sequence[str]
) -> list[tuple[str, str]]:
    """Pair up find and replace values.

    Raises:
        RuleMismatchError: If exactly one list is empty or their lengths
            differ.
    """
    if not find_values and not replace_values:
        return []
    if len(find_values) != len(replace_values) or not find_values:
        raise RuleMismatchError(
            f"{len(find_values)} find values but {len(replace_values)} "
            "replace values"
        )
    return list(zip(find_values, replace_values, strict=True))


def apply_corrections(text: str, pairs: Sequence[tuple[str, str]]) -> str:
    """Apply literal global substitutions in order.

    Each pair sees the output of the previous ones. Neither side is
    interpreted as a pattern; empty find values are skipped.
    """
    for find, replace in pairs:
        if not find:
            continue
        text = re.sub(re.escape(find), lambda _m, r=replace: r, text)
    return text


def drop_eliminated_lines(text: str, eliminators: Sequence[str]) -> str:
    """Remove lines containing any eliminator, ignoring case."""
    if not eliminators:
        return text
    keywords = [e.lower() for e in eliminators if e]
    kept = [
        line
        for line in text.split("\n")
        if not any(keyword in line.lower() for keyword in keywords)
    ]
    return "\n".join(kept)


def split_rows(
    text: str, headers: Sequence[str], separator: str = DEFAULT_SEPARATOR
) -> list[dict[str, str]]:
    """Split lines into header-keyed rows.

    Missing trailing fields become empty strings, surplus fields are
    dropped and rows whose fields are all blank are discarded.
    """
    separator = separator or DEFAULT_SEPARATOR
    rows: list[dict[str, str]] = []
    for line in text.split("\n"):
        if not line.strip():
            continue
        values = line.split(separator)
        row = {
            header: values[i].strip() if i < len(values) else ""
            for i, header in enumerate(headers)
        }
        if any(row.values()):
            rows.append(row)
    return rows


def structure(
    raw_text: str,
    headers: Sequence[str],
    separator: str = DEFAULT_SEPARATOR,
    eliminators: Sequence[str] = (),
    find_values: Sequence[str] = (),
    replace_values: Sequence[str] = (),
) -> list[dict[str, str]]:
    """Structure one page of text into rows.

    Args:
        raw_text: Recognised or manually edited page text.
        headers: Ordered column headers.
        separator: Column separator token.
        eliminators: Keywords whose lines are dropped.
        find_values: Literal strings to replace.
        replace_values: Replacements, parallel to ``find_values``.

    Returns:
        Rows keyed by header, in line order. Empty when no headers are
        given or nothing survives filtering.
    """
    if not headers:
        return []

    try:
        pairs = correction_pairs(find_values, replace_values)
    except RuleMismatchError as exc:
        logger.warning("Corrections disabled: %s", exc)
        pairs = []

    text = apply_corrections(raw_text, pairs)
    text = drop_eliminated_lines(text, eliminators)
    if not text.strip():
        return []

    return split_rows(text, headers, separator)


def structure_pages(
    pages: Iterable[tuple[int, str]], rules: TaskRules
) -> list[dict[str, str]]:
    """Structure several pages and concatenate their rows by page number."""
    rows: list[dict[str, str]] = []
    for page, text in sorted(pages, key=lambda item: item[0]):
        page_rows = structure(
            text,
            rules.headers,
            rules.separator,
            rules.eliminators,
            rules.find_values,
            rules.replace_values,
        )
        logger.debug("Page %d produced %d rows", page, len(page_rows))
        rows.extend(page_rows)
    return rows
