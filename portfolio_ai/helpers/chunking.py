import re
from typing import List

from portfolio_ai.utils.config import CHUNK_MAX_SIZE, MIN_CHUNK_LENGTH


def normalize_newlines(text: str) -> str:
    return str(text or "").replace("\r\n", "\n").replace("\r", "\n").strip()


def _units(normalized: str) -> List[str]:
    paragraphs = [p.strip() for p in re.split(r"\n{2,}", normalized) if p.strip()]
    if len(paragraphs) > 1:
        return paragraphs
    # single block: fall back to line units
    return [line.strip() for line in re.split(r"\n+", normalized) if line.strip()]


def chunk_text(text: str, max_size: int = CHUNK_MAX_SIZE, min_length: int = MIN_CHUNK_LENGTH) -> List[str]:
    """
    Split text into paragraph-aligned chunks of at most `max_size` characters.

    Paragraphs (blank-line separated) are packed greedily and joined with a blank
    line. A single unit longer than `max_size` flushes the pending chunk and is
    hard-split at `max_size` boundaries. Pieces shorter than `min_length` are
    dropped as noise.
    """
    normalized = normalize_newlines(text)
    if not normalized:
        return []

    chunks: List[str] = []
    current = ""

    def flush():
        nonlocal current
        trimmed = current.strip()
        if len(trimmed) >= min_length:
            chunks.append(trimmed)
        current = ""

    for unit in _units(normalized):
        if len(unit) > max_size:
            if current:
                flush()
            for i in range(0, len(unit), max_size):
                piece = unit[i:i + max_size].strip()
                if len(piece) >= min_length:
                    chunks.append(piece)
            continue

        if current and len(current) + len(unit) + 2 > max_size:
            flush()

        current = f"{current}\n\n{unit}" if current else unit

    if current:
        flush()

    return chunks
