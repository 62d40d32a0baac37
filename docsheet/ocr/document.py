"""Document state for the recognition and structuring pipeline.

A :class:`Document` owns everything produced for one source file: page
previews and sizes, the page selection, regions of interest, recognised
page texts, manual text overrides and its extraction tasks. Status changes
go through :meth:`Document.transition`, which enforces the lifecycle.
"""

import copy
import threading
import uuid
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import PurePath

import numpy as np

from docsheet.errors import DocumentBusyError, DocumentStateError
from docsheet.extraction.structurer import DEFAULT_SEPARATOR, TaskRules, structure_pages
from docsheet.utils.config import RunSettings
from docsheet.utils.logger import get_logger

from .geometry import Rect, Size

logger = get_logger(__name__)


class DocumentStatus(StrEnum):
    """Lifecycle states of a document."""

    PENDING = "pending"
    AWAITING_SELECTION = "awaiting-selection"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


_TRANSITIONS: dict[DocumentStatus, frozenset[DocumentStatus]] = {
    DocumentStatus.PENDING: frozenset(
        {DocumentStatus.AWAITING_SELECTION, DocumentStatus.ERROR}
    ),
    DocumentStatus.AWAITING_SELECTION: frozenset(
        {DocumentStatus.PROCESSING, DocumentStatus.PENDING}
    ),
    DocumentStatus.PROCESSING: frozenset(
        {DocumentStatus.COMPLETED, DocumentStatus.ERROR}
    ),
    DocumentStatus.COMPLETED: frozenset(
        {DocumentStatus.PENDING, DocumentStatus.PROCESSING}
    ),
    DocumentStatus.ERROR: frozenset({DocumentStatus.PENDING, DocumentStatus.PROCESSING}),
}


@dataclass
class PageText:
    """Recognised text of one page."""

    page: int
    text: str


@dataclass
class PagePreview:
    """Downscaled rendering of a page shown for selection and ROI drawing."""

    page: int
    image: np.ndarray = field(repr=False)


@dataclass
class ExtractionTask:
    """A named rule set producing one output sheet.

    Rules are kept as the comma-delimited strings a user edits and parsed
    on use. ``preview`` caches the last structured result and is cleared
    whenever any input it depends on changes.
    """

    id: str
    name: str
    column_headers: str = ""
    column_separator: str = DEFAULT_SEPARATOR
    eliminators: str = ""
    find_values: str = ""
    replace_values: str = ""
    preview: list[dict[str, str]] | None = None

    @property
    def has_headers(self) -> bool:
        return bool(self.column_headers.strip())

    def rules(self) -> TaskRules:
        return TaskRules.from_strings(
            self.column_headers,
            self.column_separator,
            self.eliminators,
            self.find_values,
            self.replace_values,
        )


EDITABLE_TASK_FIELDS = frozenset(
    {
        "name",
        "column_headers",
        "column_separator",
        "eliminators",
        "find_values",
        "replace_values",
    }
)


def new_task_id() -> str:
    return f"task-{uuid.uuid4().hex[:12]}"


@dataclass
class RunSnapshot:
    """Recognition output saved before a re-recognition run."""

    results: list[PageText]
    structured_rows: list[dict[str, str]] | None
    edited_pages: dict[int, str]
    tasks: list[ExtractionTask]
    analysis: str | None
    page_sizes: dict[int, Size]


@dataclass
class Document:
    """One source file under processing."""

    filename: str
    data: bytes = field(repr=False)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    status: DocumentStatus = DocumentStatus.PENDING
    progress: int = 0
    engine: str | None = None
    languages: list[str] | None = None
    settings: RunSettings | None = None
    error: str | None = None
    analysis: str | None = None
    total_pages: int = 0
    previews: list[PagePreview] = field(default_factory=list, repr=False)
    page_images: dict[int, np.ndarray] = field(default_factory=dict, repr=False)
    page_sizes: dict[int, Size] = field(default_factory=dict)
    selected_pages: set[int] = field(default_factory=set)
    regions: list[Rect] = field(default_factory=list)
    edited_pages: dict[int, str] = field(default_factory=dict)
    results: list[PageText] = field(default_factory=list)
    structured_rows: list[dict[str, str]] | None = None
    tasks: list[ExtractionTask] = field(default_factory=list)
    _lock: threading.Lock = field(
        default_factory=threading.Lock, repr=False, compare=False
    )

    # --- lifecycle -----------------------------------------------------

    def transition(self, status: DocumentStatus) -> None:
        """Move to ``status`` if the lifecycle allows it.

        Raises:
            DocumentStateError: For a transition the lifecycle forbids.
        """
        if status not in _TRANSITIONS[self.status]:
            raise DocumentStateError(
                f"Cannot move document {self.filename} from {self.status} to {status}"
            )
        logger.info("Document %s: %s -> %s", self.filename, self.status, status)
        self.status = status

    def set_progress(self, value: int) -> None:
        """Raise progress, never lowering it within a phase."""
        self.progress = max(self.progress, min(100, value))

    @property
    def is_busy(self) -> bool:
        return self._lock.locked()

    def acquire(self) -> None:
        """Claim the document for a run without waiting.

        Raises:
            DocumentBusyError: If a run is already in flight.
        """
        if not self._lock.acquire(blocking=False):
            raise DocumentBusyError(f"Document {self.filename} is already being processed")

    def release(self) -> None:
        self._lock.release()

    def snapshot(self) -> RunSnapshot:
        return RunSnapshot(
            results=list(self.results),
            structured_rows=copy.deepcopy(self.structured_rows),
            edited_pages=dict(self.edited_pages),
            tasks=copy.deepcopy(self.tasks),
            analysis=self.analysis,
            page_sizes=dict(self.page_sizes),
        )

    def restore(self, snapshot: RunSnapshot) -> None:
        """Put back the output saved before a failed run.

        The current task list is kept, so tasks added or edited while the
        run was in flight survive. A task gets its saved preview back only
        when its rules are unchanged since the snapshot.
        """
        self.results = snapshot.results
        self.structured_rows = snapshot.structured_rows
        self.edited_pages = snapshot.edited_pages
        saved = {task.id: task for task in snapshot.tasks}
        for task in self.tasks:
            before = saved.get(task.id)
            if before is not None and before.rules() == task.rules():
                task.preview = before.preview
        self.analysis = snapshot.analysis
        self.page_sizes = snapshot.page_sizes

    def clear_for_reprocess(self) -> None:
        """Drop every processing artifact, keeping tasks without previews."""
        self.progress = 0
        self.selected_pages = set()
        self.previews = []
        self.page_images = {}
        self.page_sizes = {}
        self.total_pages = 0
        self.regions = []
        self.edited_pages = {}
        self.results = []
        self.structured_rows = None
        self.analysis = None
        self.error = None
        self.engine = None
        self.languages = None
        self.settings = None
        self.invalidate_previews()

    # --- page selection ------------------------------------------------

    def _check_page(self, page: int) -> None:
        if not 1 <= page <= self.total_pages:
            raise ValueError(f"Page {page} is out of range 1..{self.total_pages}")

    def select_page(self, page: int, selected: bool = True) -> None:
        self._check_page(page)
        if selected:
            self.selected_pages.add(page)
        else:
            self.selected_pages.discard(page)

    def select_all(self, selected: bool = True) -> None:
        self.selected_pages = set(range(1, self.total_pages + 1)) if selected else set()

    def set_selection(self, pages: set[int] | list[int]) -> None:
        """Replace the selection, validating every page number."""
        pages = set(pages)
        for page in pages:
            self._check_page(page)
        self.selected_pages = pages

    # --- regions of interest -------------------------------------------

    def add_region(self, rect: Rect) -> None:
        self.regions.append(rect)
        self.invalidate_previews()

    def clear_regions(self) -> None:
        self.regions = []
        self.invalidate_previews()

    # --- recognised text -----------------------------------------------

    def sort_results(self) -> None:
        self.results.sort(key=lambda r: r.page)

    def recognized_text(self, page: int) -> str | None:
        for result in self.results:
            if result.page == page:
                return result.text
        return None

    def set_page_text(self, page: int, text: str) -> None:
        """Override the recognised text of a page with an edited version.

        Raises:
            DocumentStateError: If the page has no recognised text.
        """
        if self.recognized_text(page) is None:
            raise DocumentStateError(f"Page {page} has no recognised text to edit")
        self.edited_pages[page] = text
        self.invalidate_previews()

    def page_text(self, page: int) -> str | None:
        """Edited text of a page if present, otherwise the recognised text."""
        if page in self.edited_pages:
            return self.edited_pages[page]
        return self.recognized_text(page)

    def effective_texts(self) -> list[tuple[int, str]]:
        """``(page, text)`` for every recognised page, ascending by page."""
        return [
            (r.page, self.edited_pages.get(r.page, r.text))
            for r in sorted(self.results, key=lambda r: r.page)
        ]

    # --- extraction tasks ----------------------------------------------

    def invalidate_previews(self) -> None:
        for task in self.tasks:
            task.preview = None

    def get_task(self, task_id: str) -> ExtractionTask:
        for task in self.tasks:
            if task.id == task_id:
                return task
        raise KeyError(task_id)

    def add_task(self, name: str | None = None, **rules: str) -> ExtractionTask:
        task = ExtractionTask(
            id=new_task_id(), name=name or f"Sheet {len(self.tasks) + 1}"
        )
        self.tasks.append(task)
        if rules:
            self.update_task(task.id, **rules)
        return task

    def update_task(self, task_id: str, **changes: str) -> ExtractionTask:
        """Edit a task's name or rules and invalidate cached previews.

        Raises:
            KeyError: If the task does not exist.
            ValueError: If an unknown field is given.
        """
        unknown = set(changes) - EDITABLE_TASK_FIELDS
        if unknown:
            raise ValueError(f"Unknown task fields: {', '.join(sorted(unknown))}")
        task = self.get_task(task_id)
        for name, value in changes.items():
            setattr(task, name, value)
        self.invalidate_previews()
        return task

    def remove_task(self, task_id: str) -> None:
        task = self.get_task(task_id)
        self.tasks.remove(task)

    def task_rows(self, task: ExtractionTask) -> list[dict[str, str]]:
        """Cached preview of a task, or a freshly structured result."""
        if task.preview is not None:
            return task.preview
        if not task.has_headers:
            return []
        return structure_pages(self.effective_texts(), task.rules())

    # --- naming --------------------------------------------------------

    @property
    def output_filename(self) -> str:
        return PurePath(self.filename).with_suffix(".xlsx").name
