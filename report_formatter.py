"""
report_formatter.py — The Report Printer
========================================
Turns the model's markdown-ish answer into HTML cards for the results page.

Two steps:
  parse_report(text)    -> list of Block, one closed set of kinds (BlockKind)
  render_blocks(blocks) -> HTML string

Model text is never trusted as markup. Every piece is escaped, every URL the
model wrote is dropped, and the only links in the output are the ones built
here (store / video searches from part numbers and search terms, plus the two
promotional links appended by the gateway).
"""

import re
from enum import Enum
from html import escape
from typing import List, Optional
from urllib.parse import quote_plus

from pydantic import BaseModel

from config import PROMOTIONAL_LINKS
from prompt_builder import AGE_LABELS, PROBLEMS, SERVICES, WARRANTY_LABELS

AMAZON_SEARCH       = "https://www.amazon.com/s?k={q}"
REPAIR_CLINIC_SEARCH = "https://www.repairclinic.com/SearchResults?q={q}"
YOUTUBE_SEARCH      = "https://www.youtube.com/results?search_query={q}"

TRUSTED_LINKS = {url: label for label, url in PROMOTIONAL_LINKS}

FOOTER_TEXT = "Analysis provided by AI-powered appliance assessment technology"


class BlockKind(str, Enum):
    HEADING       = "heading"
    SUBHEADING    = "subheading"
    NUMBERED_ITEM = "numbered_item"
    WARRANTY_LINE = "warranty_line"
    AGE_LINE      = "age_line"
    PART_LINE     = "part_line"
    VIDEO_LINE    = "video_line"
    BULLET        = "bullet"
    DIVIDER       = "divider"
    PROSE         = "prose"


class Block(BaseModel):
    kind:        BlockKind
    text:        str = ""
    label:       str = ""
    number:      Optional[int] = None
    part_number: str = ""
    search_term: str = ""
    section:     str = ""


# ── Patterns ──────────────────────────────────────────────────────────────────
HEADING_RE   = re.compile(r"^(#{1,2})\s+(.+)$")
SUBHEAD_RE   = re.compile(r"^#{3,6}\s+(.+)$")
DIVIDER_RE   = re.compile(r"^(-{3,}|\*{3,}|_{3,})$")
NUMBERED_RE  = re.compile(r"^(\d{1,2})[.)]\s+(.+)$")
BULLET_RE    = re.compile(r"^[-*•]\s+(.+)$")
LABEL_RE     = re.compile(r"^\*\*([^*:]{1,60}):\*\*\s*(.*)$|^\*\*([^*]{1,60})\*\*:\s*(.*)$")
OEM_RE       = re.compile(r"(?:OEM\s*#|Part\s*(?:#|No\.?|Number)\s*:?)\s*([A-Za-z0-9][A-Za-z0-9\-]{2,})", re.I)
PRICE_RE     = re.compile(r"\$\s?\d[\d,]*(?:\.\d{2})?(?:\s?-\s?\$?\s?\d[\d,]*(?:\.\d{2})?)?")
YOUTUBE_RE   = re.compile(r"YouTube:\s*[\"“]?([^\"”]+)[\"”]?", re.I)
STORE_LINE_RE = re.compile(r"^(?:🛒\s*)?\**\s*(Amazon|eBay|RepairClinic|Repair Clinic|Home Depot|Lowe'?s)\s*:?\**\s*:?", re.I)
RAW_URL_RE   = re.compile(r"(?:https?://|www\.)\S*", re.I)
MD_LINK_RE   = re.compile(r"\[([^\]]+)\]\(([^)\s]+)\)")
BOLD_RE      = re.compile(r"\*\*(.+?)\*\*")
EMPHASIS_RE  = re.compile(r"(\*\*|\*)")


# ── Parsing ───────────────────────────────────────────────────────────────────
def _classify_label(label: str) -> Optional[BlockKind]:
    clean = label.strip()
    low = clean.lower()
    if clean in WARRANTY_LABELS or "warranty" in low:
        return BlockKind.WARRANTY_LINE
    if clean in AGE_LABELS or re.search(r"\bage\b", low) or "manufactur" in low:
        return BlockKind.AGE_LINE
    return None


def _label_block(body: str, section: str) -> Optional[Block]:
    m = LABEL_RE.match(body)
    if not m:
        return None
    label = m.group(1) or m.group(3)
    value = m.group(2) if m.group(1) else m.group(4)
    kind = _classify_label(label)
    if kind is None:
        return None
    return Block(kind=kind, label=label.strip(), text=(value or "").strip(), section=section)


def _part_block(body: str, section: str) -> Optional[Block]:
    oem = OEM_RE.search(body)
    if not oem:
        return None
    name_match = BOLD_RE.search(body)
    name = name_match.group(1).strip().rstrip(":") if name_match else ""
    return Block(
        kind=BlockKind.PART_LINE,
        text=body,
        label=name,
        part_number=oem.group(1).upper(),
        section=section,
    )


def _video_block(body: str, section: str) -> Optional[Block]:
    m = YOUTUBE_RE.search(body)
    if not m:
        return None
    term = RAW_URL_RE.sub("", m.group(1)).strip()
    if not term:
        return None
    return Block(kind=BlockKind.VIDEO_LINE, text=body, search_term=term, section=section)


def parse_report(text: str) -> List[Block]:
    """Split model text into blocks. Anything unrecognised becomes PROSE."""
    blocks: List[Block] = []
    section = ""

    for raw_line in (text or "").splitlines():
        line = raw_line.strip()
        if not line:
            # paragraph break: an empty PROSE block separates paragraphs
            if blocks and blocks[-1].kind == BlockKind.PROSE and blocks[-1].text:
                blocks.append(Block(kind=BlockKind.PROSE, text="", section=section))
            continue

        if DIVIDER_RE.match(line):
            blocks.append(Block(kind=BlockKind.DIVIDER, section=section))
            continue

        m = SUBHEAD_RE.match(line)
        if m:
            blocks.append(Block(kind=BlockKind.SUBHEADING, text=m.group(1).strip(), section=section))
            continue

        m = HEADING_RE.match(line)
        if m:
            section = m.group(2).strip()
            blocks.append(Block(kind=BlockKind.HEADING, text=section, section=section))
            continue

        m = NUMBERED_RE.match(line)
        if m:
            blocks.append(Block(
                kind=BlockKind.NUMBERED_ITEM, number=int(m.group(1)),
                text=m.group(2).strip(), section=section,
            ))
            continue

        bullet = BULLET_RE.match(line)
        body = bullet.group(1).strip() if bullet else line

        # Model-written store links: dropped, we build our own from the part number
        if STORE_LINE_RE.match(body) and (RAW_URL_RE.search(body) or body.strip("*: ").lower()
                                          in ("amazon", "ebay", "repairclinic", "repair clinic")):
            continue

        block = _label_block(body, section) or _part_block(body, section) or _video_block(body, section)
        if block is not None:
            blocks.append(block)
            continue

        if bullet:
            blocks.append(Block(kind=BlockKind.BULLET, text=body, section=section))
        else:
            blocks.append(Block(kind=BlockKind.PROSE, text=line, section=section))

    while blocks and blocks[-1].kind == BlockKind.PROSE and not blocks[-1].text:
        blocks.pop()
    return blocks


# ── Inline rendering ──────────────────────────────────────────────────────────
def _link(url: str, label: str, css: str = "") -> str:
    cls = f' class="{css}"' if css else ""
    return f'<a href="{escape(url)}"{cls} target="_blank" rel="noopener noreferrer">{escape(label)}</a>'


def apply_emphasis(text: str, bold: str = "strong", italic: str = "em") -> str:
    """Turn ** and * pairs into tags on already-escaped text.

    Markers pair up like brackets: a closer only matches the innermost open
    marker, so tags always nest. Stray or crossing markers stay literal.
    """
    tags = {"**": bold, "*": italic}
    out, stack = [], []
    for token in EMPHASIS_RE.split(text):
        if token not in tags:
            out.append(token)
        elif stack and stack[-1][0] == token:
            _, at = stack.pop()
            out[at] = f"<{tags[token]}>"
            out.append(f"</{tags[token]}>")
        elif any(marker == token for marker, _ in stack):
            out.append(token)
        else:
            stack.append((token, len(out)))
            out.append(token)
    return "".join(out)


def inline(text: str, highlight_prices: bool = True) -> str:
    """Escape one line of model text and apply bold/italic/price styling."""
    trusted = []

    def keep_trusted(m):
        url = m.group(2)
        if url in TRUSTED_LINKS:
            # the model's label is untrusted; always show our own
            trusted.append(_link(url, TRUSTED_LINKS[url]))
            return f"\x00{len(trusted) - 1}\x00"
        return m.group(1)

    text = MD_LINK_RE.sub(keep_trusted, text.replace("\x00", ""))
    text = RAW_URL_RE.sub("", text)
    out = apply_emphasis(escape(text, quote=False))
    if highlight_prices:
        out = PRICE_RE.sub(lambda m: f'<span class="price">{m.group(0)}</span>', out)

    for i, html_link in enumerate(trusted):
        out = out.replace(f"\x00{i}\x00", html_link)
    return re.sub(r"\s{2,}", " ", out).strip()


def search_url(template: str, *terms: str) -> str:
    query = " ".join(t.strip() for t in terms if t and t.strip())
    return template.format(q=quote_plus(query))


# ── Block rendering ───────────────────────────────────────────────────────────
def _render_heading(block: Block) -> str:
    css = "section-heading"
    if block.text == SERVICES:
        css += " services-heading"
    return f'<h2 class="{css}">{inline(block.text, highlight_prices=False)}</h2>'


def _render_problem(block: Block, appliance_type: str) -> str:
    body = inline(block.text)
    link = ""
    if block.section == PROBLEMS:
        title = BOLD_RE.search(block.text)
        topic = title.group(1) if title else block.text.split(" - ")[0]
        topic = RAW_URL_RE.sub("", topic).strip()
        if topic:
            url = search_url(YOUTUBE_SEARCH, appliance_type, topic, "repair")
            link = " " + _link(url, "▶ Find repair tutorials", "tutorial-link")
    return (
        '<div class="problem-card">'
        f'<div class="problem-number">{block.number}</div>'
        f'<div class="problem-body">{body}{link}</div>'
        '</div>'
    )


def _render_info_card(block: Block) -> str:
    css = "warranty-card" if block.kind == BlockKind.WARRANTY_LINE else "age-card"
    icon = "⚖️" if block.kind == BlockKind.WARRANTY_LINE else "📅"
    return (
        f'<div class="info-card {css}">'
        f'<div class="info-label">{icon} {escape(block.label)}</div>'
        f'<div class="info-value">{inline(block.text)}</div>'
        '</div>'
    )


def _render_part(block: Block, appliance_type: str) -> str:
    amazon = search_url(AMAZON_SEARCH, block.part_number, appliance_type)
    clinic = search_url(REPAIR_CLINIC_SEARCH, block.part_number)
    return (
        '<li class="part-item">'
        f'<div class="part-line">{inline(block.text)}</div>'
        '<div class="part-links">'
        f'<span class="part-number">{escape(block.part_number)}</span> '
        f'{_link(amazon, "🛒 Amazon", "shop-link")} '
        f'{_link(clinic, "🛒 RepairClinic", "shop-link")}'
        '</div>'
        '</li>'
    )


def _render_video(block: Block) -> str:
    url = search_url(YOUTUBE_SEARCH, block.search_term)
    text = YOUTUBE_RE.sub("", block.text).rstrip(" -–:")
    return (
        '<li class="video-item">'
        f'{inline(text)} {_link(url, "🎥 " + block.search_term, "video-link")}'
        '</li>'
    )


def render_blocks(blocks: List[Block]) -> str:
    """Render parsed blocks to HTML. Output is always balanced markup."""
    appliance_type = ""
    for b in blocks:
        if b.kind == BlockKind.PROSE and b.text.lower().startswith("**type:**"):
            appliance_type = RAW_URL_RE.sub("", b.text[len("**type:**"):]).strip()
            break

    html: List[str] = []
    open_group = ""          # "ul", "info" or "p"
    in_services = False

    def close_group():
        nonlocal open_group
        if open_group == "ul":
            html.append("</ul>")
        elif open_group == "info":
            html.append("</div>")
        elif open_group == "p":
            html.append("</p>")
        open_group = ""

    def ensure_group(group: str, opener: str):
        nonlocal open_group
        if open_group != group:
            close_group()
            html.append(opener)
            open_group = group

    for block in blocks:
        kind = block.kind

        if kind in (BlockKind.BULLET, BlockKind.PART_LINE, BlockKind.VIDEO_LINE):
            ensure_group("ul", '<ul class="analysis-list">')
            if kind == BlockKind.PART_LINE:
                html.append(_render_part(block, appliance_type))
            elif kind == BlockKind.VIDEO_LINE:
                html.append(_render_video(block))
            else:
                html.append(f"<li>{inline(block.text)}</li>")
            continue

        if kind in (BlockKind.WARRANTY_LINE, BlockKind.AGE_LINE):
            ensure_group("info", '<div class="info-grid">')
            html.append(_render_info_card(block))
            continue

        if kind == BlockKind.PROSE:
            if not block.text:
                close_group()
                continue
            if block.text.strip("*").strip() == FOOTER_TEXT:
                close_group()
                html.append(f'<div class="analysis-footer">{inline(block.text)}</div>')
                continue
            if open_group == "p":
                html.append("<br>")
            else:
                ensure_group("p", "<p>")
            html.append(inline(block.text))
            continue

        close_group()

        if kind == BlockKind.HEADING:
            if in_services:
                html.append("</div>")
                in_services = False
            if block.text == SERVICES:
                html.append('<div class="business-section">')
                in_services = True
            html.append(_render_heading(block))
        elif kind == BlockKind.SUBHEADING:
            html.append(f'<h3 class="sub-heading">{inline(block.text, highlight_prices=False)}</h3>')
        elif kind == BlockKind.NUMBERED_ITEM:
            html.append(_render_problem(block, appliance_type))
        elif kind == BlockKind.DIVIDER:
            if in_services:
                html.append("</div>")
                in_services = False
            html.append('<hr class="divider">')

    close_group()
    if in_services:
        html.append("</div>")
    return "\n".join(html)


def format_analysis(text: str) -> str:
    return render_blocks(parse_report(text))
