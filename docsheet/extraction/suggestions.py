"""Rule suggestions for extraction tasks.

A :class:`SuggestionProvider` looks at recognised text and proposes
structuring rules. Providers are opaque to the pipeline; applying a
suggestion simply overwrites a task's rules.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from docsheet.errors import DocumentStateError
from docsheet.ocr.document import Document, ExtractionTask
from docsheet.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class RuleSuggestion:
    """Candidate rules for one extraction task."""

    headers: list[str] = field(default_factory=list)
    eliminators: list[str] = field(default_factory=list)
    find_values: list[str] = field(default_factory=list)
    replace_values: list[str] = field(default_factory=list)
    analysis: str = ""

    def as_task_fields(self) -> dict[str, str]:
        """Render the suggestion as the comma-delimited task rule strings."""
        return {
            "column_headers": ", ".join(self.headers),
            "eliminators": ", ".join(self.eliminators),
            "find_values": ", ".join(self.find_values),
            "replace_values": ", ".join(self.replace_values),
        }


class SuggestionProvider(ABC):
    """Source of candidate structuring rules."""

    @abstractmethod
    def suggest(self, raw_text: str) -> RuleSuggestion:
        """Propose rules for ``raw_text``."""


def suggest_rules(
    document: Document, task_id: str, provider: SuggestionProvider
) -> ExtractionTask:
    """Ask ``provider`` for rules and apply them to a task.

    The task's headers, eliminators and corrections are overwritten; its
    name and separator are kept. The provider's analysis becomes the
    document's analysis.

    Args:
        document: Document whose recognised text is analysed.
        task_id: Task receiving the suggested rules.
        provider: Rule suggestion source.

    Returns:
        The updated task.

    Raises:
        KeyError: If the task does not exist.
        DocumentStateError: If the document has no recognised text.
    """
    task = document.get_task(task_id)
    raw_text = "\n\n".join(text for _, text in document.effective_texts())
    if not raw_text.strip():
        logger.warning("No text to analyse for %s", document.filename)
        raise DocumentStateError("There is no text to analyze.")

    suggestion = provider.suggest(raw_text)
    document.update_task(task.id, **suggestion.as_task_fields())
    document.analysis = suggestion.analysis
    logger.info(
        "Applied suggested rules to %s: %d headers", task.name, len(suggestion.headers)
    )
    return task
