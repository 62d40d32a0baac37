"""FastAPI application for the docsheet OCR service.

Exposes the document lifecycle over REST: upload and preview, page
selection, regions of interest, recognition runs, manual text edits,
extraction tasks and spreadsheet export. Documents live in an in-memory
store for the lifetime of the process.
"""

import shutil
import threading
from pathlib import PurePath
from typing import Annotated
from urllib.parse import quote

from fastapi import FastAPI, File, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from docsheet.errors import (
    ConfigurationError,
    DocumentBusyError,
    DocumentStateError,
    ExportError,
)
from docsheet.export.workbook import workbook_bytes
from docsheet.ocr.document import Document, ExtractionTask
from docsheet.ocr.document_processor import DocumentProcessor
from docsheet.ocr.geometry import Rect, Size, map_selection
from docsheet.utils.config import load_config
from docsheet.utils.images import encode_png
from docsheet.utils.logger import get_logger

from .schemas import (
    DocumentResponse,
    HealthResponse,
    PageTextRequest,
    PreviewResponse,
    ProcessRequest,
    RegionRequest,
    RegionResponse,
    RegionSchema,
    SelectionRequest,
    TaskCreateRequest,
    TaskResponse,
    TaskUpdateRequest,
)

logger = get_logger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

app = FastAPI(
    title="Docsheet OCR API",
    description="Recognise scanned pages and structure their text into spreadsheets",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class DocumentStore:
    """Thread-safe in-memory registry of documents."""

    def __init__(self) -> None:
        self._documents: dict[str, Document] = {}
        self._lock = threading.Lock()

    def add(self, document: Document) -> None:
        with self._lock:
            self._documents[document.id] = document

    def get(self, document_id: str) -> Document:
        with self._lock:
            return self._documents[document_id]

    def remove(self, document_id: str) -> None:
        with self._lock:
            self._documents.pop(document_id, None)

    def clear(self) -> None:
        with self._lock:
            self._documents.clear()


store = DocumentStore()


def _get_processor() -> DocumentProcessor:
    """Build the document processor from the current configuration."""
    return DocumentProcessor(load_config())


_ALLOWED_CONTENT_TYPES = {
    "image/png",
    "image/jpeg",
    "image/tiff",
    "application/pdf",
    "application/octet-stream",
}


@app.exception_handler(DocumentBusyError)
async def _busy_handler(request: Request, exc: DocumentBusyError) -> JSONResponse:
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(DocumentStateError)
async def _state_handler(request: Request, exc: DocumentStateError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(ExportError)
async def _export_handler(request: Request, exc: ExportError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(ConfigurationError)
async def _config_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc)})


def _get_document(document_id: str) -> Document:
    try:
        return store.get(document_id)
    except KeyError as exc:
        raise HTTPException(
            status_code=404, detail=f"Document not found: {document_id}"
        ) from exc


def _get_task(document: Document, task_id: str) -> ExtractionTask:
    try:
        return document.get_task(task_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=f"Task not found: {task_id}") from exc


def _require_idle(document: Document) -> None:
    if document.is_busy:
        raise DocumentBusyError(f"Document {document.filename} is already being processed")


def _attachment(filename: str) -> str:
    """Content-Disposition value for ``filename``, safe for any script.

    Header values are Latin-1 on the wire, so the name is sent percent-encoded
    in ``filename*`` with an ASCII-only ``filename`` for older clients.
    """
    fallback = filename.encode("ascii", "ignore").decode("ascii").replace('"', "")
    if not fallback.rsplit(".", 1)[0].strip(" ."):
        fallback = "document" + PurePath(filename).suffix
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename)}"


@app.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Return system health status."""
    return HealthResponse(
        status="healthy",
        version="1.0.0",
        tesseract_available=shutil.which("tesseract") is not None,
    )


# --- documents -------------------------------------------------------------


@app.post("/documents", response_model=DocumentResponse, status_code=201)
async def upload_document(
    file: Annotated[UploadFile, File(...)],
) -> DocumentResponse:
    """Upload a PDF or image and render its page previews.

    A document that cannot be rendered is still stored, in ``error``.
    """
    if file.content_type and file.content_type not in _ALLOWED_CONTENT_TYPES:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported file type: {file.content_type}",
        )

    content = await file.read()
    document = _get_processor().load(content, file.filename or "document")
    store.add(document)
    return DocumentResponse.from_document(document)


@app.get("/documents/{document_id}", response_model=DocumentResponse)
async def get_document(document_id: str) -> DocumentResponse:
    return DocumentResponse.from_document(_get_document(document_id))


@app.delete("/documents/{document_id}", status_code=204)
async def delete_document(document_id: str) -> Response:
    document = _get_document(document_id)
    _require_idle(document)
    store.remove(document_id)
    return Response(status_code=204)


@app.get("/documents/{document_id}/pages/{page}/preview")
async def get_page_preview(document_id: str, page: int) -> Response:
    """Return the preview image of a page as PNG."""
    document = _get_document(document_id)
    for preview in document.previews:
        if preview.page == page:
            return Response(content=encode_png(preview.image), media_type="image/png")
    raise HTTPException(status_code=404, detail=f"No preview for page {page}")


@app.put("/documents/{document_id}/selection", response_model=DocumentResponse)
async def set_selection(
    document_id: str, request: SelectionRequest
) -> DocumentResponse:
    """Replace the set of pages selected for processing."""
    document = _get_document(document_id)
    _require_idle(document)
    try:
        document.set_selection(request.pages)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return DocumentResponse.from_document(document)


# --- recognition -----------------------------------------------------------


@app.post("/documents/{document_id}/process", response_model=DocumentResponse)
def process_document(
    document_id: str, request: ProcessRequest | None = None
) -> DocumentResponse:
    """Recognise the selected pages.

    Runs to completion before responding. A failed run is reported through
    the document's ``status`` and ``error``, not as an HTTP error.
    """
    document = _get_document(document_id)
    request = request or ProcessRequest()
    processor = _get_processor()
    settings = processor.settings(
        request.engine, request.languages, request.char_whitelist
    )
    processor.start_processing(document, settings)
    return DocumentResponse.from_document(document)


@app.post("/documents/{document_id}/recognize", response_model=DocumentResponse)
def re_recognize_document(document_id: str) -> DocumentResponse:
    """Re-run recognition with the stored engine, languages and regions."""
    document = _get_document(document_id)
    _get_processor().re_recognize(document)
    return DocumentResponse.from_document(document)


@app.post("/documents/{document_id}/reset", response_model=DocumentResponse)
def reset_document(document_id: str) -> DocumentResponse:
    """Discard all results and return to page selection."""
    document = _get_document(document_id)
    _get_processor().reset(document)
    return DocumentResponse.from_document(document)


# --- regions of interest ---------------------------------------------------


@app.post("/documents/{document_id}/regions", response_model=RegionResponse)
async def add_region(document_id: str, request: RegionRequest) -> RegionResponse:
    """Map a rectangle drawn on a preview and add it as a region."""
    document = _get_document(document_id)
    _require_idle(document)

    original = document.page_sizes.get(request.page)
    preview = next((p for p in document.previews if p.page == request.page), None)
    if original is None or preview is None:
        raise HTTPException(status_code=404, detail=f"No page {request.page}")

    display = Size(
        width=request.display_width or preview.image.shape[1],
        height=request.display_height or preview.image.shape[0],
    )
    if display.width <= 0 or display.height <= 0:
        raise HTTPException(status_code=400, detail="Display size must be positive")

    drawn = Rect(request.left, request.top, request.width, request.height)
    mapped = map_selection(drawn, display, original)
    if mapped is not None:
        document.add_region(mapped)
        logger.info("Added region %s to %s", mapped, document.filename)

    return RegionResponse(
        added=mapped is not None,
        region=RegionSchema.from_rect(mapped) if mapped is not None else None,
        regions=[RegionSchema.from_rect(r) for r in document.regions],
    )


@app.delete("/documents/{document_id}/regions", response_model=DocumentResponse)
async def clear_regions(document_id: str) -> DocumentResponse:
    document = _get_document(document_id)
    _require_idle(document)
    document.clear_regions()
    return DocumentResponse.from_document(document)


# --- text edits ------------------------------------------------------------


@app.put("/documents/{document_id}/pages/{page}/text", response_model=DocumentResponse)
async def edit_page_text(
    document_id: str, page: int, request: PageTextRequest
) -> DocumentResponse:
    """Override the recognised text of a page."""
    document = _get_document(document_id)
    _require_idle(document)
    document.set_page_text(page, request.text)
    return DocumentResponse.from_document(document)


# --- extraction tasks ------------------------------------------------------


@app.post(
    "/documents/{document_id}/tasks", response_model=TaskResponse, status_code=201
)
async def create_task(document_id: str, request: TaskCreateRequest) -> TaskResponse:
    document = _get_document(document_id)
    _require_idle(document)
    fields = request.model_dump(exclude={"name"})
    task = document.add_task(request.name, **fields)
    return TaskResponse.from_task(task)


@app.patch("/documents/{document_id}/tasks/{task_id}", response_model=TaskResponse)
async def update_task(
    document_id: str, task_id: str, request: TaskUpdateRequest
) -> TaskResponse:
    document = _get_document(document_id)
    _require_idle(document)
    _get_task(document, task_id)
    task = document.update_task(task_id, **request.model_dump(exclude_none=True))
    return TaskResponse.from_task(task)


@app.delete("/documents/{document_id}/tasks/{task_id}", status_code=204)
async def delete_task(document_id: str, task_id: str) -> Response:
    document = _get_document(document_id)
    _require_idle(document)
    _get_task(document, task_id)
    document.remove_task(task_id)
    return Response(status_code=204)


@app.post(
    "/documents/{document_id}/tasks/{task_id}/preview", response_model=PreviewResponse
)
async def preview_task(document_id: str, task_id: str) -> PreviewResponse:
    """Structure the document's text with one task's rules."""
    document = _get_document(document_id)
    _require_idle(document)
    _get_task(document, task_id)
    rows = _get_processor().preview_task(document, task_id)
    return PreviewResponse(task_id=task_id, rows=rows)


# --- export ----------------------------------------------------------------


@app.get("/documents/{document_id}/export")
async def export_document(document_id: str) -> Response:
    """Download the structured results as an ``.xlsx`` workbook."""
    document = _get_document(document_id)
    _require_idle(document)
    content = workbook_bytes(document)
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": _attachment(document.output_filename)},
    )
