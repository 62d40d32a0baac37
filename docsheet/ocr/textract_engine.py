"""Amazon Textract table analysis backend.

Sends each page to ``AnalyzeDocument`` with the TABLES feature and turns the
first detected table into header-keyed rows, so no rule-based structuring
pass is needed for this backend.
"""

from typing import Any

import boto3
import numpy as np
from botocore.exceptions import BotoCoreError, ClientError

from docsheet.errors import BackendAuthError, BackendError, ConfigurationError
from docsheet.utils.images import encode_png
from docsheet.utils.logger import get_logger

from .backend import BackendKind, RecognitionBackend, RecognitionOutcome
from .geometry import Rect

logger = get_logger(__name__)

_AUTH_ERROR_CODES = {
    "AccessDeniedException",
    "InvalidSignatureException",
    "UnrecognizedClientException",
    "ExpiredTokenException",
}


def _child_ids(block: dict[str, Any]) -> list[str]:
    ids: list[str] = []
    for rel in block.get("Relationships") or []:
        if rel.get("Type") == "CHILD":
            ids.extend(rel.get("Ids") or [])
    return ids


def table_rows(blocks: list[dict[str, Any]]) -> list[dict[str, str]]:
    """Convert Textract blocks into rows of the first table.

    The table grid is rebuilt from cell row/column indices; missing cells
    become empty strings. With more than one row the first row supplies
    the headers, otherwise positional ``Column N`` headers are used.

    Args:
        blocks: The ``Blocks`` list of an ``AnalyzeDocument`` response.

    Returns:
        Rows keyed by header. Empty when no table was detected.
    """
    tables = [b for b in blocks if b.get("BlockType") == "TABLE"]
    if not tables:
        return []

    by_id = {b["Id"]: b for b in blocks if "Id" in b}
    words = {
        block_id: b.get("Text", "")
        for block_id, b in by_id.items()
        if b.get("BlockType") == "WORD"
    }

    grid: dict[int, dict[int, str]] = {}
    max_row = max_col = 0
    for cell_id in _child_ids(tables[0]):
        cell = by_id.get(cell_id)
        if not cell or cell.get("BlockType") != "CELL":
            continue
        row, col = cell.get("RowIndex"), cell.get("ColumnIndex")
        if not row or not col:
            continue
        text = " ".join(words[i] for i in _child_ids(cell) if words.get(i))
        grid.setdefault(row, {})[col] = text.strip()
        max_row = max(max_row, row)
        max_col = max(max_col, col)

    matrix = [
        [grid.get(r, {}).get(c, "") for c in range(1, max_col + 1)]
        for r in range(1, max_row + 1)
    ]
    if not matrix:
        return []

    if len(matrix) > 1:
        headers, data = matrix[0], matrix[1:]
    else:
        headers, data = [f"Column {i + 1}" for i in range(max_col)], matrix

    return [dict(zip(headers, row, strict=True)) for row in data]


class TextractEngine(RecognitionBackend):
    """Remote table-structuring backend backed by Amazon Textract.

    Args:
        region: AWS region for the Textract client.
    """

    kind = BackendKind.TEXTRACT
    returns_rows = True

    def __init__(self, region: str | None = None) -> None:
        self.region = region
        self._client: Any = None

    def open(self) -> None:
        if not self.region:
            raise ConfigurationError(
                "AWS region is not configured. Set AWS_DEFAULT_REGION or "
                "services.aws_region."
            )
        session = boto3.session.Session(region_name=self.region)
        if session.get_credentials() is None:
            raise ConfigurationError(
                "AWS credentials are not configured. Set AWS_ACCESS_KEY_ID and "
                "AWS_SECRET_ACCESS_KEY."
            )
        self._client = session.client("textract")
        logger.info("Textract client ready in %s", self.region)

    def close(self) -> None:
        self._client = None

    def recognize(
        self, image: np.ndarray, regions: list[Rect] | None = None
    ) -> RecognitionOutcome:
        if self._client is None:
            raise BackendError("Textract client used outside of an open run")
        if regions:
            logger.debug("Textract ignores %d regions of interest", len(regions))

        try:
            response = self._client.analyze_document(
                Document={"Bytes": encode_png(image)},
                FeatureTypes=["TABLES"],
            )
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code", "")
            if code in _AUTH_ERROR_CODES:
                raise BackendAuthError(
                    "Amazon Textract authentication failed. Please verify your "
                    "AWS credentials.",
                    exc,
                ) from exc
            raise BackendError(f"Amazon Textract request failed: {exc}", exc) from exc
        except BotoCoreError as exc:
            raise BackendError(f"Amazon Textract request failed: {exc}", exc) from exc

        blocks = response.get("Blocks") or []
        if not isinstance(blocks, list):
            raise BackendError("Malformed Textract response: Blocks is not a list")

        rows = table_rows(blocks)
        logger.info("Textract returned %d table rows", len(rows))
        return RecognitionOutcome(structured_rows=rows)
