# backend/app/doc_engine.py
"""
Research document extraction.

Turns the uploaded research files into one text corpus for the model. Files are
processed in name order so the same upload always yields the same corpus. Each
file is wrapped in start/end markers so the model can cite the filename when
no inline source is available.
"""
import logging
from dataclasses import dataclass, field
from io import BytesIO
from typing import Iterable, List

from docx import Document

from backend.app.errors import UploadProcessingError

logger = logging.getLogger("uvicorn.error")

DOCX_MIME_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


@dataclass(frozen=True)
class UploadedDocument:
    name: str
    content: bytes
    mime_type: str = "text/plain"


@dataclass
class ResearchCorpus:
    text: str = ""
    file_names: List[str] = field(default_factory=list)


def _docx_to_text(content: bytes) -> str:
    """Raw text of a .docx: paragraphs first, then table cells row by row."""
    doc = Document(BytesIO(content))
    lines = [p.text for p in doc.paragraphs]
    for table in doc.tables:
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells]
            lines.append("\t".join(cells))
    return "\n".join(lines)


def extract_document_text(document: UploadedDocument) -> str:
    if document.mime_type == DOCX_MIME_TYPE:
        return _docx_to_text(document.content)
    return document.content.decode("utf-8", errors="replace")


def extract_research_text(documents: Iterable[UploadedDocument]) -> ResearchCorpus:
    """
    Concatenate the text of every document, sorted by name, with delimiter markers.

    Any failure aborts the whole extraction with UploadProcessingError; a corpus
    is never built from a subset of the files.
    """
    corpus = ResearchCorpus()
    parts: List[str] = []
    for document in sorted(documents, key=lambda d: d.name):
        try:
            text = extract_document_text(document)
        except Exception as e:
            logger.exception("File extraction error for %s: %s", document.name, e)
            raise UploadProcessingError("Error processing uploaded files.") from e
        parts.append(f"\n\n--- Start of file: {document.name} ---\n")
        parts.append(text)
        parts.append(f"\n--- End of file: {document.name} ---\n")
        corpus.file_names.append(document.name)

    corpus.text = "".join(parts)
    logger.info("Extracted %d research file(s), %d chars", len(corpus.file_names), len(corpus.text))
    return corpus
