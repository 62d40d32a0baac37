"""Command-line interface for one-shot document runs.

Loads a PDF or image, recognises the chosen pages with the chosen engine
and writes either an ``.xlsx`` workbook structured by the given rules or
the recognised page texts as JSON.
"""

import argparse
import json
import sys
from pathlib import Path

from docsheet.errors import DocsheetError
from docsheet.export.workbook import build_sheets, write_workbook
from docsheet.ocr.backend import BackendKind
from docsheet.ocr.document import Document, DocumentStatus
from docsheet.ocr.document_processor import DocumentProcessor
from docsheet.ocr.geometry import Rect
from docsheet.utils.config import AppConfig, load_config
from docsheet.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)


def parse_pages(spec: str, total: int) -> set[int]:
    """Parse a page list such as ``"1,3-5"``; ``"all"`` selects every page.

    Raises:
        ValueError: If the list is malformed or names a page out of range.
    """
    if spec.strip().lower() == "all":
        return set(range(1, total + 1))

    pages: set[int] = set()
    for part in spec.split(","):
        part = part.strip()
        if not part:
            continue
        if "-" in part:
            start, end = (int(p) for p in part.split("-", 1))
            pages.update(range(start, end + 1))
        else:
            pages.add(int(part))

    out_of_range = sorted(p for p in pages if not 1 <= p <= total)
    if out_of_range:
        raise ValueError(f"Pages out of range 1..{total}: {out_of_range}")
    return pages


def parse_region(spec: str) -> Rect:
    """Parse ``LEFT,TOP,WIDTH,HEIGHT`` in full-resolution pixels."""
    try:
        left, top, width, height = (int(v) for v in spec.split(","))
    except ValueError as exc:
        raise argparse.ArgumentTypeError(
            f"Region must be LEFT,TOP,WIDTH,HEIGHT, got {spec!r}"
        ) from exc
    return Rect(left, top, width, height)


def run_document(
    file_path: Path,
    config: AppConfig,
    engine: str | None = None,
    languages: list[str] | None = None,
    char_whitelist: str | None = None,
    pages: str = "all",
    regions: list[Rect] | None = None,
    rules: dict[str, str] | None = None,
) -> Document:
    """Recognise a document and attach a single extraction task.

    Args:
        file_path: PDF or image to process.
        config: Application configuration.
        engine: Backend kind, defaults to the configured one.
        languages: Recognition languages, defaults to the configured ones.
        char_whitelist: Explicit character whitelist.
        pages: Page list for :func:`parse_pages`.
        regions: Regions of interest in full-resolution pixels.
        rules: Task rule strings keyed by task field name.

    Returns:
        The processed document, completed or in ``error``.

    Raises:
        DocsheetError: If the document cannot be rendered or run.
        ValueError: If the page list is invalid.
    """
    processor = DocumentProcessor(config)
    settings = processor.settings(engine, languages, char_whitelist)
    document = processor.load(file_path.read_bytes(), file_path.name)
    if document.status is DocumentStatus.ERROR:
        raise DocsheetError(document.error or f"Could not read {file_path}")

    document.set_selection(parse_pages(pages, document.total_pages))
    for rect in regions or []:
        document.add_region(rect)

    processor.start_processing(document, settings)
    if document.status is DocumentStatus.COMPLETED and rules and document.tasks:
        document.update_task(document.tasks[0].id, **rules)
    return document


def _page_texts(document: Document) -> dict[str, object]:
    return {
        "filename": document.filename,
        "engine": document.engine,
        "pages": [
            {"page": page, "text": text} for page, text in document.effective_texts()
        ],
        "structured_rows": document.structured_rows,
    }


def main(argv: list[str] | None = None) -> None:
    """Parse CLI arguments and dispatch to the appropriate command.

    Args:
        argv: Command-line arguments (defaults to sys.argv).
    """
    parser = argparse.ArgumentParser(
        description="Docsheet: OCR scanned pages into spreadsheets",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-c", "--config", type=Path, default=None, help="YAML configuration file"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    run_parser = subparsers.add_parser("run", help="Process a single document")
    run_parser.add_argument("file", type=Path, help="PDF or image to process")
    run_parser.add_argument(
        "-e",
        "--engine",
        choices=[kind.value for kind in BackendKind],
        default=None,
        help="Recognition engine (default: from config)",
    )
    run_parser.add_argument(
        "-l",
        "--lang",
        action="append",
        dest="languages",
        help="Recognition language, repeatable (eng, hin, hinglish)",
    )
    run_parser.add_argument("--whitelist", help="Override the character whitelist")
    run_parser.add_argument(
        "-p", "--pages", default="all", help="Pages to process, e.g. 1,3-5 (default: all)"
    )
    run_parser.add_argument(
        "--region",
        action="append",
        type=parse_region,
        dest="regions",
        help="Region of interest LEFT,TOP,WIDTH,HEIGHT, repeatable",
    )
    run_parser.add_argument("--headers", default="", help="Comma-separated headers")
    run_parser.add_argument(
        "--separator", default="\t", help="Column separator (default: tab)"
    )
    run_parser.add_argument(
        "--eliminators", default="", help="Comma-separated junk-line keywords"
    )
    run_parser.add_argument("--find", default="", help="Comma-separated find values")
    run_parser.add_argument(
        "--replace", default="", help="Comma-separated replacement values"
    )
    run_parser.add_argument(
        "--binarize", action="store_true", help="Binarize pages before recognition"
    )
    run_parser.add_argument(
        "--preprocess-url", help="External image pre-processing service URL"
    )
    run_parser.add_argument(
        "-o", "--output", type=Path, help="Output file (default: <name>.xlsx)"
    )
    run_parser.add_argument(
        "--text", action="store_true", help="Write recognised page texts as JSON"
    )

    args = parser.parse_args(argv)

    config = load_config(args.config)
    setup_logging(config.log_level)

    if args.command != "run":
        parser.print_help()
        sys.exit(0)

    if not args.file.exists():
        print(f"Error: {args.file} does not exist", file=sys.stderr)
        sys.exit(1)

    if args.binarize:
        config.preprocessing.binarize_enabled = True
    if args.preprocess_url:
        config.preprocessing.service_url = args.preprocess_url

    rules = {
        "column_headers": args.headers,
        "column_separator": args.separator,
        "eliminators": args.eliminators,
        "find_values": args.find,
        "replace_values": args.replace,
    }

    try:
        document = run_document(
            args.file,
            config,
            engine=args.engine,
            languages=args.languages,
            char_whitelist=args.whitelist,
            pages=args.pages,
            regions=args.regions,
            rules=rules,
        )
    except (DocsheetError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)

    if document.status is not DocumentStatus.COMPLETED:
        print(f"Error: {document.error}", file=sys.stderr)
        sys.exit(1)

    if args.text:
        output_str = json.dumps(_page_texts(document), indent=2, ensure_ascii=False)
        if args.output:
            args.output.parent.mkdir(parents=True, exist_ok=True)
            args.output.write_text(output_str, encoding="utf-8")
            print(f"Output written to {args.output}")
        else:
            print(output_str)
        return

    output = args.output or args.file.with_name(document.output_filename)
    try:
        sheets = build_sheets(document)
    except DocsheetError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(1)
    output.parent.mkdir(parents=True, exist_ok=True)
    write_workbook(sheets, output)
    print(f"Workbook written to {output} ({len(sheets)} sheets)")


if __name__ == "__main__":
    main()
