"""
PDF report rendering with reportlab.
"""

import io
from typing import Optional
from xml.sax.saxutils import escape

from reportlab.lib.colors import HexColor
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle
from reportlab.lib.units import mm
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.cidfonts import UnicodeCIDFont
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

# Built-in Japanese CID font, no font file needed
JAPANESE_FONT = "HeiseiKakuGo-W5"


class ReportError(Exception):
    """Raised when the PDF cannot be rendered."""


def _ensure_font() -> None:
    if JAPANESE_FONT not in pdfmetrics.getRegisteredFontNames():
        pdfmetrics.registerFont(UnicodeCIDFont(JAPANESE_FONT))


def _styles() -> dict[str, ParagraphStyle]:
    return {
        "title": ParagraphStyle(
            name="ReportTitle", fontName=JAPANESE_FONT, fontSize=18, leading=24,
            alignment=TA_CENTER, spaceAfter=12,
        ),
        "summary": ParagraphStyle(
            name="ReportSummary", fontName=JAPANESE_FONT, fontSize=10.5, leading=16,
            wordWrap="CJK",
        ),
        "body": ParagraphStyle(
            name="ReportBody", fontName=JAPANESE_FONT, fontSize=11, leading=18,
            spaceAfter=8, wordWrap="CJK",
        ),
    }


def _paragraph_markup(text: str) -> str:
    return escape(text).replace("\n", "<br/>")


def render_report_pdf(title: str, body: str, summary: Optional[str] = None) -> bytes:
    """
    Render a diagnosis report to PDF bytes.

    Args:
        title: Report title
        body: Diagnosis text (paragraphs separated by blank lines)
        summary: Optional summary block shown boxed above the body

    Raises:
        ReportError: if rendering fails
    """
    try:
        _ensure_font()
        styles = _styles()
        buffer = io.BytesIO()
        doc = SimpleDocTemplate(
            buffer, pagesize=A4, title=title,
            leftMargin=20 * mm, rightMargin=20 * mm, topMargin=20 * mm, bottomMargin=20 * mm,
        )

        story = [Paragraph(escape(title), styles["title"])]

        if summary:
            box = Table([[Paragraph(_paragraph_markup(summary), styles["summary"])]], colWidths=[doc.width])
            box.setStyle(TableStyle([
                ("BACKGROUND", (0, 0), (-1, -1), HexColor("#EEF5FB")),
                ("BOX", (0, 0), (-1, -1), 0.5, HexColor("#8DB3D9")),
                ("LEFTPADDING", (0, 0), (-1, -1), 8),
                ("RIGHTPADDING", (0, 0), (-1, -1), 8),
                ("TOPPADDING", (0, 0), (-1, -1), 6),
                ("BOTTOMPADDING", (0, 0), (-1, -1), 6),
            ]))
            story.extend([box, Spacer(1, 8 * mm)])

        for block in body.split("\n\n"):
            if block.strip():
                story.append(Paragraph(_paragraph_markup(block.strip()), styles["body"]))

        doc.build(story)
        return buffer.getvalue()

    except Exception as e:
        raise ReportError(f"Failed to render PDF report: {e}") from e
