"""Tests for applying suggested structuring rules."""

import pytest

from docsheet.errors import DocumentStateError
from docsheet.extraction.suggestions import (
    RuleSuggestion,
    SuggestionProvider,
    suggest_rules,
)
from docsheet.ocr.document import Document, PageText


class _FixedProvider(SuggestionProvider):
    def __init__(self, suggestion: RuleSuggestion) -> None:
        self.suggestion = suggestion
        self.seen: list[str] = []

    def suggest(self, raw_text: str) -> RuleSuggestion:
        self.seen.append(raw_text)
        return self.suggestion


def _document(*texts: str) -> Document:
    document = Document(filename="scan.pdf", data=b"")
    document.results = [PageText(i, t) for i, t in enumerate(texts, start=1)]
    return document


class TestRuleSuggestion:
    """Tests for rendering suggestions as task fields."""

    def test_as_task_fields(self) -> None:
        suggestion = RuleSuggestion(
            headers=["Name", "Age"],
            eliminators=["page no."],
            find_values=["O"],
            replace_values=["0"],
        )
        assert suggestion.as_task_fields() == {
            "column_headers": "Name, Age",
            "eliminators": "page no.",
            "find_values": "O",
            "replace_values": "0",
        }


class TestSuggestRules:
    """Tests for suggest_rules."""

    def test_overwrites_rules(self) -> None:
        document = _document("John 25", "Jane 30")
        task = document.add_task("People", column_separator=" ", eliminators="old")
        task.preview = []
        provider = _FixedProvider(
            RuleSuggestion(headers=["Name", "Age"], analysis="Two columns found.")
        )

        suggest_rules(document, task.id, provider)

        assert provider.seen == ["John 25\n\nJane 30"]
        assert task.name == "People"
        assert task.column_separator == " "
        assert task.column_headers == "Name, Age"
        assert task.eliminators == ""
        assert task.preview is None
        assert document.analysis == "Two columns found."
        assert document.task_rows(task) == [
            {"Name": "John", "Age": "25"},
            {"Name": "Jane", "Age": "30"},
        ]

    def test_uses_edited_text(self) -> None:
        document = _document("raw")
        document.set_page_text(1, "edited")
        task = document.add_task()
        provider = _FixedProvider(RuleSuggestion())
        suggest_rules(document, task.id, provider)
        assert provider.seen == ["edited"]

    def test_empty_text_rejected(self) -> None:
        document = _document("  ")
        task = document.add_task()
        provider = _FixedProvider(RuleSuggestion())
        with pytest.raises(DocumentStateError):
            suggest_rules(document, task.id, provider)
        assert provider.seen == []

    def test_unknown_task(self) -> None:
        with pytest.raises(KeyError):
            suggest_rules(_document("x"), "task-missing", _FixedProvider(RuleSuggestion()))
