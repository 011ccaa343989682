"""
PDF renderer tests (PyMuPDF).
"""

from unittest.mock import patch

import fitz
import pytest

from conftest import NOW, upload_data
from pipeline.config import PipelineConfig
from pipeline.document_model import build_document
from pipeline.errors import ArtifactGenerationError
from pipeline.pdf_renderer import AUTHOR, PdfReportRenderer, wrap_text
from pipeline.schema import ReportSection, UploadFields

CONFIG = PipelineConfig()


def _open(data: bytes) -> "fitz.Document":
    return fitz.open(stream=data, filetype="pdf")


def test_renders_letter_pdf_with_metadata(recovery_fields):
    document = build_document(recovery_fields, NOW, CONFIG)
    data = PdfReportRenderer().render(document)

    assert data.startswith(b"%PDF")
    pdf = _open(data)
    try:
        page = pdf[0]
        assert (round(page.rect.width), round(page.rect.height)) == (612, 792)
        assert pdf.metadata["author"] == AUTHOR
        assert pdf.metadata["title"] == "CCTV Recovery Request"
        text = page.get_text()
        assert "CCTV Recovery Request" in text
        assert "URGENT: DVR Retention" in text
        assert "PR240003" in text
    finally:
        pdf.close()


def test_long_content_adds_pages():
    fields = UploadFields(**upload_data(other_info="\n".join(f"Line {i} of notes" for i in range(200))))
    data = PdfReportRenderer().render(build_document(fields, NOW, CONFIG))
    pdf = _open(data)
    try:
        assert pdf.page_count > 1
        assert f"Page 1 of {pdf.page_count}" in pdf[0].get_text()
    finally:
        pdf.close()


def test_wrap_text_respects_width():
    text = "word " * 60
    lines = wrap_text(text, 200)
    assert len(lines) > 1
    for line in lines:
        assert fitz.get_text_length(line, fontname="helv", fontsize=11) <= 200


def test_wrap_text_splits_long_words_and_keeps_newlines():
    lines = wrap_text("a\n" + "x" * 300, 100)
    assert lines[0] == "a"
    assert "".join(lines[1:]) == "x" * 300


def test_renderer_failure_is_artifact_error(upload_fields):
    document = build_document(upload_fields, NOW, CONFIG)
    with patch("pipeline.pdf_renderer.fitz.open", side_effect=RuntimeError("no memory")):
        with pytest.raises(ArtifactGenerationError):
            PdfReportRenderer().render(document)


def test_banner_levels_render(upload_fields):
    document = build_document(upload_fields, NOW, CONFIG)
    document.sections.insert(0, ReportSection(title="Time Offset", kind="banner", text="Time Offset: x", level="warning"))
    data = PdfReportRenderer().render(document)
    pdf = _open(data)
    try:
        assert "Time Offset: x" in pdf[0].get_text()
    finally:
        pdf.close()
