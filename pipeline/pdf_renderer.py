"""
PDF rendering of a DocumentModel using PyMuPDF (fitz).

Layout: US Letter, label/value tables at 35%/65% width, coloured banners for
urgent retention and time-offset notices, page numbers in the footer.
"""

import logging
from typing import List, Optional, Protocol, Tuple

import fitz  # PyMuPDF

from pipeline.errors import ArtifactGenerationError
from pipeline.schema import DocumentModel, ReportSection
from utils.formatting import format_datetime

logger = logging.getLogger(__name__)

PAGE_WIDTH = 612
PAGE_HEIGHT = 792
MARGIN_LEFT = 40
MARGIN_TOP = 40
MARGIN_RIGHT = 40
MARGIN_BOTTOM = 60
LABEL_RATIO = 0.35

FONT_REGULAR = "helv"
FONT_BOLD = "hebo"
FONT_SIZE_TITLE = 18
FONT_SIZE_SECTION = 13
FONT_SIZE_LABEL = 10
FONT_SIZE_VALUE = 11
FONT_SIZE_BANNER = 12
FONT_SIZE_FOOTER = 8
LINE_GAP = 4

AUTHOR = "Peel Regional Police - Forensic Video Unit"


def _hex(color: str) -> Tuple[float, float, float]:
    color = color.lstrip("#")
    return tuple(int(color[i:i + 2], 16) / 255 for i in (0, 2, 4))


COLOR_TEXT = _hex("#212529")
COLOR_LABEL = _hex("#495057")
COLOR_HEADER = _hex("#1a365d")
COLOR_RULE = _hex("#dee2e6")
COLOR_URGENT_FILL = _hex("#dc3545")
COLOR_URGENT_TEXT = (1.0, 1.0, 1.0)
COLOR_WARNING_FILL = _hex("#fff3cd")
COLOR_WARNING_TEXT = _hex("#ff6600")


class ReportRenderer(Protocol):
    """Anything that turns a DocumentModel into report bytes."""

    def render(self, document: DocumentModel) -> bytes:
        ...


def wrap_text(text: str, width: float, fontname: str = FONT_REGULAR, fontsize: float = FONT_SIZE_VALUE) -> List[str]:
    """Greedy word wrap measured with the PDF font metrics. Newlines are kept."""
    lines: List[str] = []
    for paragraph in str(text).split("\n"):
        words = paragraph.split()
        if not words:
            lines.append("")
            continue
        current = ""
        for word in words:
            candidate = f"{current} {word}" if current else word
            if fitz.get_text_length(candidate, fontname=fontname, fontsize=fontsize) <= width:
                current = candidate
                continue
            if current:
                lines.append(current)
            # A single word wider than the column is split by character.
            while fitz.get_text_length(word, fontname=fontname, fontsize=fontsize) > width and len(word) > 1:
                cut = len(word)
                while cut > 1 and fitz.get_text_length(word[:cut], fontname=fontname, fontsize=fontsize) > width:
                    cut -= 1
                lines.append(word[:cut])
                word = word[cut:]
            current = word
        lines.append(current)
    return lines


class _PageWriter:
    """Tracks the current page and vertical position while laying out content."""

    def __init__(self, doc: "fitz.Document"):
        self.doc = doc
        self.page: Optional["fitz.Page"] = None
        self.y = 0.0
        self.new_page()

    @property
    def content_width(self) -> float:
        return PAGE_WIDTH - MARGIN_LEFT - MARGIN_RIGHT

    def new_page(self) -> None:
        self.page = self.doc.new_page(width=PAGE_WIDTH, height=PAGE_HEIGHT)
        self.y = MARGIN_TOP

    def ensure_space(self, height: float) -> None:
        if self.y + height > PAGE_HEIGHT - MARGIN_BOTTOM:
            self.new_page()

    def text(self, x: float, line: str, fontname: str, fontsize: float, color=COLOR_TEXT) -> None:
        # insert_text positions the baseline
        self.page.insert_text((x, self.y + fontsize), line, fontname=fontname, fontsize=fontsize, color=color)


class PdfReportRenderer:
    """Render a DocumentModel to PDF bytes."""

    def render(self, document: DocumentModel) -> bytes:
        try:
            doc = fitz.open()
            try:
                writer = _PageWriter(doc)
                self._title(writer, document)
                for section in document.sections:
                    if section.kind == "banner":
                        self._banner(writer, section)
                    elif section.kind == "text":
                        self._text_section(writer, section)
                    else:
                        self._table_section(writer, section)
                self._footers(doc, document)
                doc.set_metadata({
                    "title": document.title,
                    "author": AUTHOR,
                    "subject": f"{document.form_type.value} request",
                    "creator": "FVU Request System",
                })
                data = doc.tobytes()
            finally:
                doc.close()
        except ArtifactGenerationError:
            raise
        except Exception as e:
            logger.error(f"PDF generation failed for {document.form_type.value}: {e}")
            raise ArtifactGenerationError(f"PDF generation failed: {e}") from e

        logger.info(f"Rendered {document.form_type.value} report ({len(data)} bytes)")
        return data

    def _title(self, writer: _PageWriter, document: DocumentModel) -> None:
        writer.text(MARGIN_LEFT, document.title, FONT_BOLD, FONT_SIZE_TITLE, COLOR_HEADER)
        writer.y += FONT_SIZE_TITLE + LINE_GAP
        writer.text(MARGIN_LEFT, f"Generated: {format_datetime(document.generated_at)}",
                    FONT_REGULAR, FONT_SIZE_LABEL, COLOR_LABEL)
        writer.y += FONT_SIZE_LABEL + 2 * LINE_GAP
        writer.page.draw_line((MARGIN_LEFT, writer.y), (PAGE_WIDTH - MARGIN_RIGHT, writer.y), color=COLOR_HEADER, width=1.5)
        writer.y += 3 * LINE_GAP

    def _section_heading(self, writer: _PageWriter, title: str) -> None:
        writer.ensure_space(FONT_SIZE_SECTION + FONT_SIZE_VALUE + 3 * LINE_GAP)
        writer.text(MARGIN_LEFT, title, FONT_BOLD, FONT_SIZE_SECTION, COLOR_HEADER)
        writer.y += FONT_SIZE_SECTION + LINE_GAP
        writer.page.draw_line((MARGIN_LEFT, writer.y), (PAGE_WIDTH - MARGIN_RIGHT, writer.y), color=COLOR_RULE, width=0.5)
        writer.y += LINE_GAP

    def _table_section(self, writer: _PageWriter, section: ReportSection) -> None:
        self._section_heading(writer, section.title)
        label_width = writer.content_width * LABEL_RATIO
        value_width = writer.content_width - label_width
        value_x = MARGIN_LEFT + label_width

        for label, value in section.fields:
            label_lines = wrap_text(label, label_width - 6, FONT_BOLD, FONT_SIZE_LABEL)
            value_lines = wrap_text(value, value_width, FONT_REGULAR, FONT_SIZE_VALUE)
            row_height = max(len(label_lines) * (FONT_SIZE_LABEL + 2), len(value_lines) * (FONT_SIZE_VALUE + 2))
            writer.ensure_space(row_height)
            top = writer.y
            for line in label_lines:
                writer.text(MARGIN_LEFT, line, FONT_BOLD, FONT_SIZE_LABEL, COLOR_LABEL)
                writer.y += FONT_SIZE_LABEL + 2
            writer.y = top
            for line in value_lines:
                writer.text(value_x, line, FONT_REGULAR, FONT_SIZE_VALUE)
                writer.y += FONT_SIZE_VALUE + 2
            writer.y = top + row_height + LINE_GAP
        writer.y += 2 * LINE_GAP

    def _text_section(self, writer: _PageWriter, section: ReportSection) -> None:
        self._section_heading(writer, section.title)
        for line in wrap_text(section.text or "", writer.content_width, FONT_REGULAR, FONT_SIZE_VALUE):
            writer.ensure_space(FONT_SIZE_VALUE + 2)
            writer.text(MARGIN_LEFT, line, FONT_REGULAR, FONT_SIZE_VALUE)
            writer.y += FONT_SIZE_VALUE + 2
        writer.y += 3 * LINE_GAP

    def _banner(self, writer: _PageWriter, section: ReportSection) -> None:
        urgent = section.level == "urgent"
        fill = COLOR_URGENT_FILL if urgent else COLOR_WARNING_FILL
        color = COLOR_URGENT_TEXT if urgent else COLOR_WARNING_TEXT
        padding = 8
        inner_width = writer.content_width - 2 * padding
        lines = [section.title] + wrap_text(section.text or "", inner_width, FONT_REGULAR, FONT_SIZE_BANNER)
        height = len(lines) * (FONT_SIZE_BANNER + 3) + 2 * padding
        writer.ensure_space(height)

        rect = fitz.Rect(MARGIN_LEFT, writer.y, PAGE_WIDTH - MARGIN_RIGHT, writer.y + height)
        writer.page.draw_rect(rect, color=fill, fill=fill)
        writer.y += padding
        for index, line in enumerate(lines):
            fontname = FONT_BOLD if index == 0 else FONT_REGULAR
            writer.text(MARGIN_LEFT + padding, line, fontname, FONT_SIZE_BANNER, color)
            writer.y += FONT_SIZE_BANNER + 3
        writer.y = rect.y1 + 3 * LINE_GAP

    def _footers(self, doc: "fitz.Document", document: DocumentModel) -> None:
        total = doc.page_count
        baseline = PAGE_HEIGHT - MARGIN_BOTTOM / 2
        for number, page in enumerate(doc, start=1):
            page.insert_text((MARGIN_LEFT, baseline), f"{AUTHOR} - {document.title}",
                             fontname=FONT_REGULAR, fontsize=FONT_SIZE_FOOTER, color=COLOR_LABEL)
            label = f"Page {number} of {total}"
            width = fitz.get_text_length(label, fontname=FONT_REGULAR, fontsize=FONT_SIZE_FOOTER)
            page.insert_text((PAGE_WIDTH - MARGIN_RIGHT - width, baseline), label,
                             fontname=FONT_REGULAR, fontsize=FONT_SIZE_FOOTER, color=COLOR_LABEL)
