"""
문서 텍스트 추출기

업로드된 견적 문서(PDF / Word)를 한 줄 문자열로 변환합니다.
문서 종류는 파일명 확장자로 판별하며, 잡의 type/file_name 과 함께 보관됩니다.
"""
import logging
import os
import re
import zipfile
import xml.etree.ElementTree as ET
from enum import Enum

import pdfplumber

from cruise_quotes.services.exceptions import (
    CorruptContainerError,
    DecodeError,
    EmptyDocumentError,
    MissingPartError,
    UnsupportedKindError,
)

logger = logging.getLogger(__name__)

DOCUMENT_PART = "word/document.xml"
WORD_NS = "http://schemas.openxmlformats.org/wordprocessingml/2006/main"

_P = f"{{{WORD_NS}}}p"
_R = f"{{{WORD_NS}}}r"
_T = f"{{{WORD_NS}}}t"

# <?xml version="1.0" encoding="..."?> 선언은 무시하고 UTF-8 로 취급
_XML_PROLOGUE = re.compile(r"^\s*<\?xml[^>]*\?>")


class DocumentKind(str, Enum):
    PDF = "pdf"
    OFFICE = "office"


_KIND_BY_SUFFIX = {
    ".pdf": DocumentKind.PDF,
    ".docx": DocumentKind.OFFICE,
    ".doc": DocumentKind.OFFICE,
}

SUPPORTED_SUFFIXES = tuple(_KIND_BY_SUFFIX)


def detect_kind(file_name: str) -> DocumentKind:
    """확장자(대소문자 무시)로 문서 종류 판별"""
    suffix = os.path.splitext(file_name)[1].lower()
    kind = _KIND_BY_SUFFIX.get(suffix)
    if kind is None:
        raise UnsupportedKindError(f"unsupported document type: {suffix or '(none)'}", path=file_name)
    return kind


def extract_text(path: str, kind: DocumentKind) -> str:
    if kind == DocumentKind.OFFICE:
        return extract_office_text(path)
    if kind == DocumentKind.PDF:
        return extract_pdf_text(path)
    raise UnsupportedKindError(f"unsupported document kind: {kind}", path=path)


def extract_office_text(path: str) -> str:
    """
    Word(OOXML) 문서에서 텍스트 추출.

    word/document.xml 의 각 문단(w:p) 안 run(w:r) 의 텍스트(w:t)를 구분자 없이 이어붙이고,
    문단끼리는 개행 하나로 연결합니다. 공백뿐인 문단은 버립니다.
    """
    try:
        with zipfile.ZipFile(path) as container:
            try:
                raw = container.read(DOCUMENT_PART)
            except KeyError as e:
                raise MissingPartError(f"{DOCUMENT_PART} not found in container", path=path) from e
    except zipfile.BadZipFile as e:
        raise CorruptContainerError(f"not a valid office document: {e}", path=path) from e

    try:
        xml_text = _XML_PROLOGUE.sub("", raw.decode("utf-8-sig"), count=1)
        root = ET.fromstring(xml_text)
    except (UnicodeDecodeError, ET.ParseError) as e:
        raise DecodeError(f"failed to parse {DOCUMENT_PART}: {e}", path=path) from e

    paragraphs = []
    for paragraph in root.iter(_P):
        text = "".join(
            node.text or ""
            for run in paragraph.findall(_R)
            for node in run.findall(_T)
        ).strip()
        if text:
            paragraphs.append(text)

    if not paragraphs:
        raise EmptyDocumentError("no text found in document", path=path)

    logger.debug(f"Extracted {len(paragraphs)} paragraphs from {path}")
    return "\n".join(paragraphs)


def extract_pdf_text(path: str) -> str:
    """pdfplumber 로 페이지별 텍스트를 읽어 줄 단위로 정리"""
    try:
        with pdfplumber.open(path) as pdf:
            pages = [page.extract_text() or "" for page in pdf.pages]
    except Exception as e:
        raise DecodeError(f"failed to read pdf: {e}", path=path) from e

    lines = []
    for page_text in pages:
        for line in page_text.splitlines():
            line = " ".join(line.split())
            if line:
                lines.append(line)

    if not lines:
        raise EmptyDocumentError("No text found in PDF", path=path)

    return "\n".join(lines)
