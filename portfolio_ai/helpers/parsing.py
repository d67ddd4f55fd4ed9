import hashlib
import io
import logging
import re
from pathlib import Path
from typing import Union

from docx import Document
from pdfminer.high_level import extract_text as pdf_extract

from portfolio_ai.utils.exceptions import MalformedInputError

logging.getLogger("pdfminer").setLevel(logging.ERROR)

SUPPORTED_EXTENSIONS = {".pdf", ".docx", ".txt", ".md", ".markdown"}

Source = Union[Path, bytes]


def _as_stream(src: Source):
    if isinstance(src, (bytes, bytearray)):
        return io.BytesIO(src)
    return str(src)


def read_txt(src: Source) -> str:
    if isinstance(src, (bytes, bytearray)):
        return bytes(src).decode("utf-8", errors="ignore")
    return src.read_text(errors="ignore")


def read_docx(src: Source) -> str:
    doc = Document(_as_stream(src))
    # blank line between paragraphs keeps the chunker paragraph-aware
    return "\n\n".join([p.text for p in doc.paragraphs if p.text.strip()])


def read_pdf(src: Source) -> str:
    return pdf_extract(_as_stream(src)) or ""


def clean_text(x: str) -> str:
    """Collapse runs of spaces and tabs, keep paragraph breaks."""
    x = str(x or "").replace("\r\n", "\n").replace("\r", "\n")
    x = re.sub(r"[ \t\f\v]+", " ", x)
    x = re.sub(r" *\n *", "\n", x)
    x = re.sub(r"\n{3,}", "\n\n", x)
    return x.strip()


def content_hash(data: Union[str, bytes]) -> str:
    """Stable source id for uploaded documents."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()[:16]


def extract_upload_text(filename: str, data: bytes) -> str:
    ext = Path(filename or "").suffix.lower()
    if ext not in SUPPORTED_EXTENSIONS:
        raise MalformedInputError(f"Unsupported file type: {ext or 'unknown'}", field="file", value=filename)

    try:
        if ext == ".pdf":
            text = read_pdf(data)
        elif ext == ".docx":
            text = read_docx(data)
        else:
            text = read_txt(data)
    except Exception as e:
        raise MalformedInputError(f"Failed to parse {ext} file", field="file", value=filename, cause=e) from e

    text = clean_text(text)
    if len(text) < 10:
        raise MalformedInputError("File appears to be empty or unreadable", field="file", value=filename)
    return text
