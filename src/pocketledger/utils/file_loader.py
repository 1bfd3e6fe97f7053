"""Read statement files into the shapes the statement parser understands."""

import csv
import logging
import mimetypes
from pathlib import Path

import pandas as pd
import pdfplumber

from pocketledger.domain.errors import ImportError_, ValidationError
from pocketledger.domain.statement_parser import SourceKind, StatementSource

logger = logging.getLogger(__name__)

SUPPORTED_SUFFIXES = (".txt", ".csv", ".xlsx", ".pdf")


def _read_csv_rows(path: Path) -> list[list[str]]:
    with open(path, "r", encoding="utf-8-sig", newline="") as f:
        sample = f.read(1024)
        f.seek(0)
        try:
            delimiter = csv.Sniffer().sniff(sample).delimiter
        except csv.Error:
            delimiter = ","
        return [row for row in csv.reader(f, delimiter=delimiter)]


def _read_excel_rows(path: Path) -> list[list]:
    # First sheet only, no header row: the parser skips rows that are not transactions
    df = pd.read_excel(path, header=None, engine="openpyxl")
    return df.fillna("").values.tolist()


def _read_pdf_pages(path: Path) -> list[str]:
    pages = []
    with pdfplumber.open(path) as pdf:
        for page in pdf.pages:
            text = page.extract_text()
            if text:
                pages.append(text)
    return pages


def load_statement(file_path: str) -> StatementSource:
    """Load a statement file.

    ``.txt`` is read as text, ``.csv`` and ``.xlsx`` files as rows, and ``.pdf``
    as page text. Any failure of the underlying reader (a corrupt workbook or
    PDF, bad encoding) is reported as ImportError_.

    Args:
        file_path: Path to the statement file

    Returns:
        StatementSource for parse_statement

    Raises:
        FileNotFoundError: If the file does not exist
        ValidationError: If the file type is not supported
        ImportError_: If the file cannot be read
    """
    path = Path(file_path)
    if not path.exists():
        raise FileNotFoundError(f"Statement file not found: {file_path}")

    suffix = path.suffix.lower()
    if suffix not in SUPPORTED_SUFFIXES:
        raise ValidationError(
            f"Unsupported statement type '{suffix}'. Supported: {', '.join(SUPPORTED_SUFFIXES)}"
        )

    try:
        if suffix == ".csv":
            source = StatementSource(SourceKind.TABULAR, _read_csv_rows(path))
        elif suffix == ".xlsx":
            source = StatementSource(SourceKind.TABULAR, _read_excel_rows(path))
        elif suffix == ".pdf":
            source = StatementSource(SourceKind.PAGINATED_TEXT, _read_pdf_pages(path))
        else:
            source = StatementSource(SourceKind.TEXT, path.read_text(encoding="utf-8"))
    except Exception as e:
        logger.error(f"Could not read statement {path}: {e}")
        raise ImportError_(f"Could not read statement '{file_path}': {e}", cause=e)

    logger.info(f"Loaded {path.name} as {source.kind.value}")
    return source


def mime_type_for(file_path: str) -> str:
    """Best-guess MIME type for sending a statement file to the oracle."""
    mime_type, _ = mimetypes.guess_type(file_path)
    return mime_type or "application/octet-stream"
