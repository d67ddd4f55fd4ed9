import pytest

from portfolio_ai.helpers.chunking import chunk_text
from portfolio_ai.helpers.parsing import clean_text, content_hash, extract_upload_text
from portfolio_ai.utils.exceptions import MalformedInputError


class TestChunkText:
    """Paragraph-aware chunking"""

    def test_empty_input_yields_no_chunks(self):
        assert chunk_text("") == []
        assert chunk_text("   \n\n  \t") == []
        assert chunk_text(None) == []

    def test_paragraphs_are_packed_up_to_max_size(self):
        para = "Built a retrieval pipeline with hybrid search and rank fusion. " * 3
        text = "\n\n".join([para.strip()] * 6)

        chunks = chunk_text(text, max_size=500)

        assert len(chunks) > 1
        assert all(50 <= len(c) <= 500 for c in chunks)
        # nothing but separators is lost
        joined = "".join(c.replace("\n\n", "") for c in chunks)
        assert joined == text.replace("\n\n", "")

    def test_oversize_paragraph_is_hard_split(self):
        text = "x" * 2500
        chunks = chunk_text(text, max_size=1000)
        assert [len(c) for c in chunks] == [1000, 1000, 500]

    def test_short_fragments_are_dropped(self):
        text = "Too short.\n\n" + "A paragraph that is comfortably longer than fifty characters in total."
        chunks = chunk_text(text)
        assert chunks == ["Too short.\n\nA paragraph that is comfortably longer than fifty characters in total."]

        assert chunk_text("tiny") == []

    def test_single_block_falls_back_to_lines(self):
        lines = [f"Line {i}: " + "detail " * 20 for i in range(10)]
        chunks = chunk_text("\n".join(lines), max_size=400)
        assert len(chunks) > 1
        assert all(len(c) <= 400 for c in chunks)

    def test_deterministic(self):
        text = "\n\n".join(f"Paragraph {i} " + "words " * 40 for i in range(8))
        assert chunk_text(text, 300) == chunk_text(text, 300)


class TestUploadParsing:
    """Uploaded file extraction"""

    def test_plain_text_upload(self):
        data = b"Title line\r\n\r\n\r\nSome   body    text with   spaces."
        text = extract_upload_text("notes.md", data)
        assert text == "Title line\n\nSome body text with spaces."

    def test_unsupported_extension_rejected(self):
        with pytest.raises(MalformedInputError) as exc:
            extract_upload_text("image.png", b"\x89PNG")
        assert exc.value.error_code == "MALFORMED_INPUT"

    def test_empty_file_rejected(self):
        with pytest.raises(MalformedInputError):
            extract_upload_text("empty.txt", b"   ")

    def test_content_hash_is_stable(self):
        assert content_hash(b"abc") == content_hash("abc")
        assert len(content_hash(b"abc")) == 16

    def test_clean_text_keeps_paragraphs(self):
        assert clean_text("a  b\n\n\n\nc") == "a b\n\nc"
