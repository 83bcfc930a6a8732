"""
report_export.py — The Print Shop
=================================
Turns a finished analysis into downloadable files for the results page.
- Markdown export (the raw report with a short banner)
- PDF export with the inspector styling

Both work from the text the gateway returned. The PDF goes through
parse_report, so it carries the same block structure as the HTML cards and
none of the model's URLs.
"""

import io
import re
import logging
from datetime import datetime

from reportlab.lib.colors import HexColor
from reportlab.lib.pagesizes import letter
from reportlab.lib.styles import ParagraphStyle
from reportlab.lib.units import inch
from reportlab.platypus import HRFlowable, Paragraph, SimpleDocTemplate, Spacer

from report_formatter import (
    AMAZON_SEARCH,
    FOOTER_TEXT,
    RAW_URL_RE,
    MD_LINK_RE,
    YOUTUBE_SEARCH,
    BlockKind,
    apply_emphasis,
    parse_report,
    search_url,
)

log = logging.getLogger("export")

MAX_EXPORT_CHARS = 100000

BRAND      = HexColor("#667eea")
BRAND_DEEP = HexColor("#4c51bf")
INK        = HexColor("#2d3748")
INK_DIM    = HexColor("#718096")


class ExportTooLarge(ValueError):
    pass


def _check_size(analysis: str):
    if len(analysis or "") > MAX_EXPORT_CHARS:
        raise ExportTooLarge("Analysis too large to export (max 100,000 chars).")


def export_filename(extension: str, when: datetime = None) -> str:
    when = when or datetime.now()
    return f"appliance_analysis_{when.strftime('%b%d_%H%M')}.{extension}"


# ── Markdown ──────────────────────────────────────────────────────────────────
def export_markdown(analysis: str, when: datetime = None) -> str:
    _check_size(analysis)
    when = when or datetime.now()
    return (
        "# Appliance Inspector Report\n"
        f"*Generated {when.strftime('%B %d, %Y at %H:%M')}*\n\n"
        "---\n\n"
        f"{analysis.strip()}\n"
    )


# ── PDF ───────────────────────────────────────────────────────────────────────
def _pdf_safe(text: str) -> str:
    """Base-14 fonts have no emoji; keep latin-1 only."""
    return text.encode("latin-1", "ignore").decode("latin-1").strip()


def _pdf_inline(text: str) -> str:
    text = MD_LINK_RE.sub(r"\1", text)
    text = RAW_URL_RE.sub("", text)
    text = _pdf_safe(text)
    text = text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")
    text = apply_emphasis(text, bold="b", italic="i")
    return re.sub(r"\s{2,}", " ", text)


def _pdf_link(url: str, label: str) -> str:
    safe_url = url.replace("&", "&amp;")
    label = _pdf_safe(label).replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")
    return f'<link href="{safe_url}" color="#4c51bf"><u>{label}</u></link>'


def _paragraph(markup: str, style) -> Paragraph:
    try:
        return Paragraph(markup, style)
    except ValueError:
        # markup reportlab still refuses; fall back to plain text
        return Paragraph(re.sub(r"<[^>]+>", "", markup), style)


def _styles():
    return {
        "title": ParagraphStyle(
            "InspectorTitle", fontName="Helvetica-Bold", fontSize=24,
            textColor=INK, leading=28, spaceAfter=4,
        ),
        "subtitle": ParagraphStyle(
            "InspectorSubtitle", fontName="Helvetica", fontSize=10,
            textColor=INK_DIM, spaceAfter=16,
        ),
        "heading": ParagraphStyle(
            "InspectorHeading", fontName="Helvetica-Bold", fontSize=14,
            textColor=BRAND_DEEP, spaceBefore=14, spaceAfter=6,
        ),
        "subheading": ParagraphStyle(
            "InspectorSubheading", fontName="Helvetica-Bold", fontSize=11,
            textColor=BRAND, spaceBefore=8, spaceAfter=4,
        ),
        "body": ParagraphStyle(
            "InspectorBody", fontName="Helvetica", fontSize=10,
            textColor=INK, leading=15, spaceAfter=6,
        ),
        "bullet": ParagraphStyle(
            "InspectorBullet", fontName="Helvetica", fontSize=10,
            textColor=INK, leading=15, leftIndent=20, bulletIndent=8,
            spaceBefore=2, spaceAfter=2,
        ),
        "meta": ParagraphStyle(
            "InspectorMeta", fontName="Helvetica", fontSize=8, textColor=INK_DIM,
        ),
    }


def export_pdf(analysis: str, when: datetime = None) -> bytes:
    _check_size(analysis)
    when = when or datetime.now()
    styles = _styles()

    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer, pagesize=letter,
        topMargin=0.75 * inch, bottomMargin=0.75 * inch,
        leftMargin=0.75 * inch, rightMargin=0.75 * inch,
        title="Appliance Inspector Report",
    )

    story = [
        Paragraph("APPLIANCE INSPECTOR", styles["title"]),
        Paragraph(f"AI appliance assessment · {when.strftime('%B %d, %Y %H:%M')}", styles["subtitle"]),
        HRFlowable(width="100%", thickness=2, color=BRAND),
        Spacer(1, 10),
    ]

    for block in parse_report(analysis):
        kind = block.kind
        if kind == BlockKind.HEADING:
            story.append(_paragraph(_pdf_inline(block.text), styles["heading"]))
        elif kind == BlockKind.SUBHEADING:
            story.append(_paragraph(_pdf_inline(block.text), styles["subheading"]))
        elif kind == BlockKind.DIVIDER:
            story.append(Spacer(1, 4))
            story.append(HRFlowable(width="100%", thickness=0.5, color=INK_DIM))
            story.append(Spacer(1, 4))
        elif kind in (BlockKind.WARRANTY_LINE, BlockKind.AGE_LINE):
            story.append(_paragraph(
                f"<b>{_pdf_inline(block.label)}:</b> {_pdf_inline(block.text)}", styles["body"],
            ))
        elif kind == BlockKind.NUMBERED_ITEM:
            story.append(_paragraph(f"{block.number}. {_pdf_inline(block.text)}", styles["bullet"]))
        elif kind == BlockKind.PART_LINE:
            link = _pdf_link(search_url(AMAZON_SEARCH, block.part_number), "search part")
            story.append(_paragraph(f"• {_pdf_inline(block.text)} ({link})", styles["bullet"]))
        elif kind == BlockKind.VIDEO_LINE:
            link = _pdf_link(search_url(YOUTUBE_SEARCH, block.search_term), block.search_term)
            story.append(_paragraph(f"• {_pdf_inline(block.text)} ({link})", styles["bullet"]))
        elif kind == BlockKind.BULLET:
            story.append(_paragraph(f"• {_pdf_inline(block.text)}", styles["bullet"]))
        elif not block.text:
            story.append(Spacer(1, 6))
        elif block.text.strip("*").strip() != FOOTER_TEXT:
            story.append(_paragraph(_pdf_inline(block.text), styles["body"]))

    story.append(Spacer(1, 18))
    story.append(HRFlowable(width="100%", thickness=1, color=BRAND))
    story.append(Spacer(1, 6))
    story.append(Paragraph(
        f"{FOOTER_TEXT}. Estimates only; verify part numbers before ordering.",
        styles["meta"],
    ))

    doc.build(story)
    pdf = buffer.getvalue()
    log.info(f"PDF export built: {len(pdf)} bytes")
    return pdf
