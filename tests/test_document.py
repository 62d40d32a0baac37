"""Tests for the document state model."""

import pytest

from docsheet.errors import DocumentBusyError, DocumentStateError
from docsheet.ocr.document import Document, DocumentStatus, PageText
from docsheet.ocr.geometry import Rect


def _document(total_pages: int = 3) -> Document:
    document = Document(filename="scan.pdf", data=b"%PDF")
    document.total_pages = total_pages
    return document


def _completed_document() -> Document:
    document = _document()
    document.results = [PageText(1, "a\t1"), PageText(2, "b\t2")]
    task = document.add_task(column_headers="K,V")
    task.preview = [{"K": "cached", "V": ""}]
    return document


class TestTransitions:
    """Tests for the lifecycle state machine."""

    def test_happy_path(self) -> None:
        document = _document()
        for status in (
            DocumentStatus.AWAITING_SELECTION,
            DocumentStatus.PROCESSING,
            DocumentStatus.COMPLETED,
            DocumentStatus.PROCESSING,
            DocumentStatus.ERROR,
            DocumentStatus.PENDING,
        ):
            document.transition(status)
        assert document.status is DocumentStatus.PENDING

    @pytest.mark.parametrize(
        "target", [DocumentStatus.PROCESSING, DocumentStatus.COMPLETED]
    )
    def test_pending_cannot_skip_selection(self, target: DocumentStatus) -> None:
        with pytest.raises(DocumentStateError):
            _document().transition(target)

    def test_progress_monotonic(self) -> None:
        document = _document()
        document.set_progress(40)
        document.set_progress(20)
        assert document.progress == 40
        document.set_progress(150)
        assert document.progress == 100


class TestBusyGuard:
    """Tests for the single-run guard."""

    def test_second_acquire_rejected(self) -> None:
        document = _document()
        document.acquire()
        assert document.is_busy
        with pytest.raises(DocumentBusyError):
            document.acquire()
        document.release()
        assert not document.is_busy


class TestSelection:
    """Tests for page selection helpers."""

    def test_select_and_deselect(self) -> None:
        document = _document()
        document.select_page(2)
        document.select_page(3)
        document.select_page(2, selected=False)
        assert document.selected_pages == {3}

    def test_select_all_and_clear(self) -> None:
        document = _document()
        document.select_all()
        assert document.selected_pages == {1, 2, 3}
        document.select_all(False)
        assert document.selected_pages == set()

    @pytest.mark.parametrize("page", [0, 4])
    def test_out_of_range(self, page: int) -> None:
        with pytest.raises(ValueError):
            _document().select_page(page)

    def test_set_selection_validates_all(self) -> None:
        document = _document()
        with pytest.raises(ValueError):
            document.set_selection([1, 9])
        assert document.selected_pages == set()


class TestInvalidation:
    """Tests for clearing cached task previews."""

    def test_region_change_clears_previews(self) -> None:
        document = _completed_document()
        document.add_region(Rect(0, 0, 10, 10))
        assert document.tasks[0].preview is None

    def test_clear_regions_clears_previews(self) -> None:
        document = _completed_document()
        document.clear_regions()
        assert document.regions == []
        assert document.tasks[0].preview is None

    def test_text_edit_clears_previews(self) -> None:
        document = _completed_document()
        document.set_page_text(1, "edited")
        assert document.tasks[0].preview is None

    def test_rule_edit_clears_every_preview(self) -> None:
        document = _completed_document()
        other = document.add_task()
        other.preview = []
        document.update_task(document.tasks[0].id, eliminators="x")
        assert all(task.preview is None for task in document.tasks)


class TestText:
    """Tests for recognised and edited page text."""

    def test_edit_overrides(self) -> None:
        document = _completed_document()
        document.set_page_text(2, "B\t2")
        assert document.page_text(2) == "B\t2"
        assert document.page_text(1) == "a\t1"
        assert document.effective_texts() == [(1, "a\t1"), (2, "B\t2")]

    def test_edit_unknown_page(self) -> None:
        with pytest.raises(DocumentStateError):
            _completed_document().set_page_text(3, "x")

    def test_sort_results(self) -> None:
        document = _document()
        document.results = [PageText(3, "c"), PageText(1, "a")]
        document.sort_results()
        assert [r.page for r in document.results] == [1, 3]


class TestTasks:
    """Tests for extraction task management."""

    def test_default_names(self) -> None:
        document = _document()
        assert document.add_task().name == "Sheet 1"
        assert document.add_task().name == "Sheet 2"

    def test_defaults(self) -> None:
        task = _document().add_task("Items")
        assert task.column_separator == "\t"
        assert task.column_headers == ""
        assert task.id.startswith("task-")

    def test_unknown_field_rejected(self) -> None:
        document = _document()
        task = document.add_task()
        with pytest.raises(ValueError):
            document.update_task(task.id, preview="x")

    def test_remove(self) -> None:
        document = _document()
        task = document.add_task()
        document.remove_task(task.id)
        assert document.tasks == []
        with pytest.raises(KeyError):
            document.get_task(task.id)

    def test_task_rows_uses_cache(self) -> None:
        document = _completed_document()
        assert document.task_rows(document.tasks[0]) == [{"K": "cached", "V": ""}]

    def test_task_rows_computed(self) -> None:
        document = _completed_document()
        document.invalidate_previews()
        assert document.task_rows(document.tasks[0]) == [
            {"K": "a", "V": "1"},
            {"K": "b", "V": "2"},
        ]

    def test_task_rows_without_headers(self) -> None:
        document = _completed_document()
        assert document.task_rows(document.add_task()) == []


class TestReprocess:
    """Tests for clearing a document for reprocessing."""

    def test_clear_keeps_tasks(self) -> None:
        document = _completed_document()
        document.select_all()
        document.add_region(Rect(0, 0, 9, 9))
        document.set_page_text(1, "x")
        document.engine = "tesseract"
        document.error = "old"

        document.clear_for_reprocess()

        assert document.selected_pages == set()
        assert document.regions == []
        assert document.edited_pages == {}
        assert document.results == []
        assert document.engine is None
        assert document.error is None
        assert len(document.tasks) == 1
        assert document.tasks[0].preview is None


class TestOutputFilename:
    """Tests for the export filename."""

    @pytest.mark.parametrize(
        ("name", "expected"),
        [("scan.pdf", "scan.xlsx"), ("scan.PDF", "scan.xlsx"), ("page.png", "page.xlsx")],
    )
    def test_suffix_replaced(self, name: str, expected: str) -> None:
        assert Document(filename=name, data=b"").output_filename == expected
