"""Document processing pipeline.

Drives a :class:`Document` through its lifecycle: page preview generation,
page selection, sequential per-page recognition with progress reporting,
and on-demand structuring of the recognised text into task previews.

Every run is guarded so that a document is never processed by two runs at
once. Failures inside a run are recorded on the document instead of being
raised to the caller.
"""

from collections.abc import Callable

import numpy as np

from docsheet.errors import DocumentStateError, SetupError
from docsheet.extraction.structurer import structure_pages
from docsheet.preprocessing.pipeline import PreprocessingPipeline
from docsheet.utils.config import AppConfig, RunSettings
from docsheet.utils.logger import get_logger, log_elapsed

from .backend import RecognitionBackend, create_backend
from .document import Document, DocumentStatus, PagePreview, PageText, RunSnapshot
from .geometry import Size, round_half_up
from .pdf_handler import PageRenderer, downscale

logger = get_logger(__name__)

SETUP_PROGRESS = 5

BackendFactory = Callable[[RunSettings], RecognitionBackend]
PreprocessingFactory = Callable[[RunSettings], PreprocessingPipeline]


def run_progress(done: int, total: int) -> int:
    """Progress after ``done`` of ``total`` pages, with 5% kept for setup."""
    share = done / total * (100 - SETUP_PROGRESS)
    return min(100, round_half_up(SETUP_PROGRESS + share))


class DocumentProcessor:
    """Orchestrates preview generation, recognition and structuring.

    The processor holds no per-document state, so one instance may serve
    many documents concurrently.

    Args:
        config: Application configuration.
        backend_factory: Builds the recognition backend for a run.
        preprocessing_factory: Builds the page pre-processing for a run.
    """

    def __init__(
        self,
        config: AppConfig,
        backend_factory: BackendFactory = create_backend,
        preprocessing_factory: PreprocessingFactory = PreprocessingPipeline.from_settings,
    ) -> None:
        self.config = config
        self.backend_factory = backend_factory
        self.preprocessing_factory = preprocessing_factory

    def settings(
        self,
        engine: str | None = None,
        languages: list[str] | None = None,
        char_whitelist: str | None = None,
    ) -> RunSettings:
        """Freeze the configuration plus per-run choices for one run."""
        return RunSettings.from_config(self.config, engine, languages, char_whitelist)

    def _renderer(self, document: Document) -> PageRenderer:
        return PageRenderer(document.data, self.config.rendering.processing_dpi)

    # --- previews ------------------------------------------------------

    def load(self, data: bytes, filename: str = "document") -> Document:
        """Create a document and generate its page previews."""
        document = Document(filename=filename, data=data)
        logger.info("Loaded document %s (%d bytes)", filename, len(data))
        return self.generate_previews(document)

    def generate_previews(self, document: Document) -> Document:
        """Render page previews and record full-resolution page sizes.

        Moves a pending document to ``awaiting-selection``, or to ``error``
        when the document cannot be rendered.
        """
        document.acquire()
        try:
            if document.status is not DocumentStatus.PENDING:
                raise DocumentStateError(
                    f"Previews can only be generated for pending documents, "
                    f"not {document.status}"
                )
            self._generate_previews(document)
        finally:
            document.release()
        return document

    def _generate_previews(self, document: Document) -> None:
        rendering = self.config.rendering
        factor = rendering.preview_dpi / rendering.processing_dpi
        renderer = self._renderer(document)
        previews: list[PagePreview] = []
        sizes: dict[int, Size] = {}

        try:
            total = renderer.page_count()
            for page in range(1, total + 1):
                full = renderer.render_page(page, rendering.processing_dpi)
                sizes[page] = Size(width=full.shape[1], height=full.shape[0])
                previews.append(PagePreview(page=page, image=downscale(full, factor)))
                document.set_progress(round_half_up(page / total * 100))
        except SetupError as exc:
            logger.error("Preview generation failed for %s: %s", document.filename, exc)
            document.error = str(exc)
            document.progress = 0
            document.transition(DocumentStatus.ERROR)
            return

        document.total_pages = total
        document.previews = previews
        document.page_sizes = sizes
        document.progress = 0
        document.transition(DocumentStatus.AWAITING_SELECTION)
        logger.info("Generated %d previews for %s", total, document.filename)

    def reset(self, document: Document) -> Document:
        """Discard all processing artifacts and start again from previews.

        Extraction tasks are kept with their previews cleared.
        """
        document.acquire()
        try:
            document.transition(DocumentStatus.PENDING)
            document.clear_for_reprocess()
        finally:
            document.release()
        return self.generate_previews(document)

    # --- recognition ---------------------------------------------------

    def start_processing(self, document: Document, settings: RunSettings) -> Document:
        """Recognise the selected pages of a document awaiting selection.

        Raises:
            DocumentStateError: If the document is not awaiting selection or
                no page is selected. The document is left unchanged.
            DocumentBusyError: If a run is already in flight.
        """
        if document.status is not DocumentStatus.AWAITING_SELECTION:
            raise DocumentStateError(
                f"Document {document.filename} is {document.status}, not "
                "awaiting selection"
            )
        if not document.selected_pages:
            logger.warning("No pages selected for %s", document.filename)
            raise DocumentStateError("Please select at least one page to process.")
        return self._run(document, settings, rerun=False)

    def re_recognize(
        self, document: Document, settings: RunSettings | None = None
    ) -> Document:
        """Run recognition again with the stored engine and languages.

        All previously recognised text is cleared before the run; manual
        edits and tasks are kept. If the run fails, the previous results
        are restored and the document is left in ``error``.

        Args:
            document: A completed or failed document.
            settings: Settings for the non-engine options. Defaults to the
                settings of the previous run.

        Raises:
            DocumentStateError: If the document has never been processed or
                is not completed/failed.
            DocumentBusyError: If a run is already in flight.
        """
        if document.status not in (DocumentStatus.COMPLETED, DocumentStatus.ERROR):
            raise DocumentStateError(
                f"Document {document.filename} is {document.status}; only "
                "completed or failed documents can be re-recognised"
            )
        base = settings or document.settings
        if not document.engine or not document.languages or base is None:
            raise DocumentStateError(
                "Could not find the necessary information to re-run OCR."
            )
        if not document.selected_pages:
            raise DocumentStateError("Please select at least one page to process.")

        run_settings = base.with_overrides(
            engine=document.engine, languages=tuple(document.languages)
        )
        return self._run(document, run_settings, rerun=True)

    def _run(self, document: Document, settings: RunSettings, rerun: bool) -> Document:
        document.acquire()
        try:
            snapshot = document.snapshot() if rerun else None
            self._begin_run(document, settings, rerun)
            try:
                with log_elapsed(logger, f"Recognition of {document.filename}"):
                    results, rows, fallback_pages = self._recognize_pages(
                        document, settings
                    )
            except Exception as exc:
                self._fail_run(document, exc, snapshot)
                return document
            self._complete_run(document, results, rows, fallback_pages)
        finally:
            document.release()
        return document

    def _begin_run(self, document: Document, settings: RunSettings, rerun: bool) -> None:
        document.transition(DocumentStatus.PROCESSING)
        document.progress = 0
        document.error = None
        document.engine = settings.engine
        document.languages = list(settings.languages)
        document.settings = settings
        document.results = []
        document.structured_rows = None
        if not rerun:
            document.edited_pages = {}
            document.analysis = "Processing..."
        document.invalidate_previews()
        logger.info(
            "Starting %s run on %s with %s (%s), pages %s",
            "re-recognition" if rerun else "recognition",
            document.filename,
            settings.engine,
            "+".join(settings.languages),
            sorted(document.selected_pages),
        )

    def _recognize_pages(
        self, document: Document, settings: RunSettings
    ) -> tuple[list[PageText], list[dict[str, str]] | None, list[int]]:
        pages = sorted(document.selected_pages)
        dpi = self.config.rendering.processing_dpi
        renderer = self._renderer(document)
        backend = self.backend_factory(settings)
        preprocessing = (
            self.preprocessing_factory(settings)
            if backend.uses_preprocessing
            else PreprocessingPipeline()
        )
        regions = list(document.regions) or None

        results: list[PageText] = []
        rows: list[dict[str, str]] | None = [] if backend.returns_rows else None
        fallback_pages: list[int] = []

        try:
            with backend:
                document.set_progress(SETUP_PROGRESS)
                for done, page in enumerate(pages, start=1):
                    image = self._page_image(document, renderer, page, dpi)
                    prepared, report = preprocessing.process(image.copy(), page)
                    if report.remote_error is not None:
                        fallback_pages.append(page)
                    outcome = backend.recognize(prepared, regions)

                    if outcome.is_structured and rows is not None:
                        rows.extend(outcome.structured_rows or [])
                    else:
                        results.append(PageText(page=page, text=outcome.raw_text or ""))

                    document.set_progress(run_progress(done, len(pages)))
                    logger.debug(
                        "Page %d done (%d/%d, %d%%)",
                        page,
                        done,
                        len(pages),
                        document.progress,
                    )
        finally:
            preprocessing.close()

        return results, rows, fallback_pages

    def _page_image(
        self, document: Document, renderer: PageRenderer, page: int, dpi: int
    ) -> np.ndarray:
        image = document.page_images.get(page)
        if image is None:
            image = renderer.render_page(page, dpi)
            document.page_images[page] = image
        document.page_sizes[page] = Size(width=image.shape[1], height=image.shape[0])
        return image

    def _complete_run(
        self,
        document: Document,
        results: list[PageText],
        rows: list[dict[str, str]] | None,
        fallback_pages: list[int],
    ) -> None:
        if rows is not None:
            document.structured_rows = rows
            document.analysis = (
                f"Extracted {len(rows)} rows using Amazon Textract's table analysis."
            )
        else:
            document.results = results
            document.sort_results()
            if document.tasks:
                document.invalidate_previews()
            else:
                document.add_task("Sheet 1")
            document.analysis = (
                "Processing complete. Review extracted text and define extraction "
                "rules."
            )
        if fallback_pages:
            pages = ", ".join(str(page) for page in fallback_pages)
            document.analysis += (
                f" Pre-processing failed for page(s) {pages}; the original "
                "images were used."
            )

        document.progress = 100
        document.transition(DocumentStatus.COMPLETED)
        logger.info("Finished %s", document.filename)

    def _fail_run(
        self, document: Document, exc: Exception, snapshot: RunSnapshot | None
    ) -> None:
        logger.error("Processing %s failed: %s", document.filename, exc)
        if snapshot is not None:
            document.restore(snapshot)
        else:
            document.results = []
            document.structured_rows = None
            document.analysis = None
        document.error = str(exc) or exc.__class__.__name__
        document.progress = 0
        document.transition(DocumentStatus.ERROR)

    # --- structuring ---------------------------------------------------

    def preview_task(self, document: Document, task_id: str) -> list[dict[str, str]]:
        """Structure the document's text with one task and cache the result.

        Raises:
            KeyError: If the task does not exist.
            DocumentStateError: If the task has no headers.
        """
        task = document.get_task(task_id)
        if not task.has_headers:
            logger.warning("Task %s has no headers", task.name)
            raise DocumentStateError(
                "Please provide the data keys (headers) for this task before "
                "generating a preview."
            )
        rows = structure_pages(document.effective_texts(), task.rules())
        task.preview = rows
        logger.info("Preview for %s: %d rows", task.name, len(rows))
        return rows
