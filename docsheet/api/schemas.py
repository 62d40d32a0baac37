"""Pydantic request/response schemas for the FastAPI endpoints."""

from pydantic import BaseModel, Field

from docsheet.ocr.backend import BackendKind
from docsheet.ocr.document import Document, DocumentStatus, ExtractionTask
from docsheet.ocr.geometry import Rect


class RegionSchema(BaseModel):
    """A rectangle in full-resolution page coordinates."""

    left: int
    top: int
    width: int
    height: int

    @classmethod
    def from_rect(cls, rect: Rect) -> "RegionSchema":
        return cls(**rect.as_dict())


class PageTextResponse(BaseModel):
    """Text of one recognised page."""

    page: int
    text: str
    edited: bool = False


class TaskResponse(BaseModel):
    """Response schema for an extraction task."""

    id: str
    name: str
    column_headers: str
    column_separator: str
    eliminators: str
    find_values: str
    replace_values: str
    preview: list[dict[str, str]] | None = None

    @classmethod
    def from_task(cls, task: ExtractionTask) -> "TaskResponse":
        return cls(
            id=task.id,
            name=task.name,
            column_headers=task.column_headers,
            column_separator=task.column_separator,
            eliminators=task.eliminators,
            find_values=task.find_values,
            replace_values=task.replace_values,
            preview=task.preview,
        )


class PageSizeResponse(BaseModel):
    """Full-resolution and preview dimensions of a page."""

    page: int
    width: int
    height: int
    preview_width: int
    preview_height: int


class DocumentResponse(BaseModel):
    """Response schema describing a document and its results."""

    id: str
    filename: str
    status: DocumentStatus
    progress: int
    engine: str | None = None
    languages: list[str] | None = None
    total_pages: int
    pages: list[PageSizeResponse] = Field(default_factory=list)
    selected_pages: list[int] = Field(default_factory=list)
    regions: list[RegionSchema] = Field(default_factory=list)
    results: list[PageTextResponse] = Field(default_factory=list)
    structured_rows: list[dict[str, str]] | None = None
    tasks: list[TaskResponse] = Field(default_factory=list)
    error: str | None = None
    analysis: str | None = None

    @classmethod
    def from_document(cls, document: Document) -> "DocumentResponse":
        """Summarise a document for the API."""
        pages = [
            PageSizeResponse(
                page=preview.page,
                width=document.page_sizes[preview.page].width,
                height=document.page_sizes[preview.page].height,
                preview_width=preview.image.shape[1],
                preview_height=preview.image.shape[0],
            )
            for preview in document.previews
            if preview.page in document.page_sizes
        ]
        results = [
            PageTextResponse(
                page=page, text=text, edited=page in document.edited_pages
            )
            for page, text in document.effective_texts()
        ]
        return cls(
            id=document.id,
            filename=document.filename,
            status=document.status,
            progress=document.progress,
            engine=document.engine,
            languages=document.languages,
            total_pages=document.total_pages,
            pages=pages,
            selected_pages=sorted(document.selected_pages),
            regions=[RegionSchema.from_rect(r) for r in document.regions],
            results=results,
            structured_rows=document.structured_rows,
            tasks=[TaskResponse.from_task(t) for t in document.tasks],
            error=document.error,
            analysis=document.analysis,
        )


class SelectionRequest(BaseModel):
    """Replace the set of pages to process."""

    pages: list[int]


class ProcessRequest(BaseModel):
    """Options for a first recognition run.

    Omitted fields fall back to the configured defaults.
    """

    engine: BackendKind | None = None
    languages: list[str] | None = None
    char_whitelist: str | None = None


class RegionRequest(BaseModel):
    """A rectangle drawn on a page preview.

    ``display_width``/``display_height`` give the on-screen size of the
    preview the rectangle was drawn on; they default to the stored preview
    size of ``page``.
    """

    page: int
    left: int
    top: int
    width: int
    height: int
    display_width: int | None = None
    display_height: int | None = None


class RegionResponse(BaseModel):
    """Outcome of adding a region of interest."""

    added: bool
    region: RegionSchema | None = None
    regions: list[RegionSchema]


class PageTextRequest(BaseModel):
    """Manually corrected text for one page."""

    text: str


class TaskCreateRequest(BaseModel):
    """Create an extraction task."""

    name: str | None = None
    column_headers: str = ""
    column_separator: str = "\t"
    eliminators: str = ""
    find_values: str = ""
    replace_values: str = ""


class TaskUpdateRequest(BaseModel):
    """Partial update of an extraction task."""

    name: str | None = None
    column_headers: str | None = None
    column_separator: str | None = None
    eliminators: str | None = None
    find_values: str | None = None
    replace_values: str | None = None


class PreviewResponse(BaseModel):
    """Structured rows produced by one task."""

    task_id: str
    rows: list[dict[str, str]]


class HealthResponse(BaseModel):
    """Response schema for the health check endpoint."""

    status: str
    version: str
    tesseract_available: bool
