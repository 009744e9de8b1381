"""
Unit tests for the document text extractor.
"""

import zipfile

import pytest

from cruise_quotes.services.exceptions import (
    CorruptContainerError,
    DecodeError,
    EmptyDocumentError,
    MissingPartError,
    UnsupportedKindError,
)
from cruise_quotes.services.text_extraction import DocumentKind, detect_kind, extract_text


@pytest.mark.unit
class TestDetectKind:

    @pytest.mark.parametrize("name,expected", [
        ("quote.pdf", DocumentKind.PDF),
        ("QUOTE.PDF", DocumentKind.PDF),
        ("quote.docx", DocumentKind.OFFICE),
        ("Quote.DocX", DocumentKind.OFFICE),
        ("legacy.doc", DocumentKind.OFFICE),
    ])
    def test_supported(self, name, expected):
        assert detect_kind(name) == expected

    @pytest.mark.parametrize("name", ["quote.xlsx", "quote.txt", "quote", "pdf"])
    def test_unsupported(self, name):
        with pytest.raises(UnsupportedKindError):
            detect_kind(name)


@pytest.mark.unit
class TestOfficeExtraction:

    def test_paragraphs_joined_with_newline(self, docx_factory):
        path = docx_factory([
            "QN20260515 Quantum of the Seas",
            ["Balcony ", "4200", " CNY"],
            "   ",
            "per person",
        ])
        text = extract_text(str(path), DocumentKind.OFFICE)
        # run 은 구분자 없이, 문단은 개행 하나로 연결. 공백 문단은 제외
        assert text == "QN20260515 Quantum of the Seas\nBalcony 4200 CNY\nper person"

    def test_prologue_charset_ignored(self, docx_factory):
        path = docx_factory(["阳台房 4200元/人"], encoding="GBK")
        assert extract_text(str(path), DocumentKind.OFFICE) == "阳台房 4200元/人"

    def test_missing_document_part(self, tmp_path):
        path = tmp_path / "empty.docx"
        with zipfile.ZipFile(path, "w") as zf:
            zf.writestr("[Content_Types].xml", "<Types/>")
        with pytest.raises(MissingPartError):
            extract_text(str(path), DocumentKind.OFFICE)

    def test_corrupt_container(self, tmp_path):
        path = tmp_path / "broken.docx"
        path.write_bytes(b"this is not a zip file")
        with pytest.raises(CorruptContainerError):
            extract_text(str(path), DocumentKind.OFFICE)

    def test_invalid_xml(self, tmp_path):
        path = tmp_path / "bad.docx"
        with zipfile.ZipFile(path, "w") as zf:
            zf.writestr("word/document.xml", "<w:document><w:body>")
        with pytest.raises(DecodeError):
            extract_text(str(path), DocumentKind.OFFICE)

    def test_invalid_utf8(self, tmp_path):
        path = tmp_path / "latin.docx"
        with zipfile.ZipFile(path, "w") as zf:
            zf.writestr("word/document.xml", b"<doc>\xff\xfe\xfa</doc>")
        with pytest.raises(DecodeError):
            extract_text(str(path), DocumentKind.OFFICE)

    def test_no_text(self, docx_factory):
        path = docx_factory(["  ", ""])
        with pytest.raises(EmptyDocumentError):
            extract_text(str(path), DocumentKind.OFFICE)


@pytest.mark.unit
class TestPdfExtraction:

    def test_garbage_pdf_is_decode_error(self, tmp_path):
        path = tmp_path / "broken.pdf"
        path.write_bytes(b"%PDF-1.4 garbage without objects")
        with pytest.raises(DecodeError):
            extract_text(str(path), DocumentKind.PDF)
