"""
Proposal PDF export (reportlab platypus).

Layout: cover block, line-item table, totals, terms. Every page carries the
company footer and a CONFIDENTIAL watermark.
"""
from __future__ import annotations

import html
import io
from typing import TYPE_CHECKING, Any

from reportlab.lib import colors
from reportlab.lib.enums import TA_RIGHT
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import PageBreak, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from app.pms.constants import DEFAULT_PROPOSAL_TITLE, DEFAULT_TERMS_CONDITIONS

if TYPE_CHECKING:
    from app.pms.modules.proposals.models import Proposal

DARK = colors.HexColor("#111827")
GRAY = colors.HexColor("#4B5563")
BORDER = colors.HexColor("#E5E7EB")
HEADER_BG = colors.HexColor("#F3F4F6")
ROW_ALT = colors.HexColor("#F9FAFB")
TOTAL_BG = colors.HexColor("#E6F4EA")
WATERMARK = colors.HexColor("#E5E7EB")


def format_money(amount: float | None, currency: str = "INR") -> str:
    return f"{currency} {float(amount or 0):,.2f}"


def _esc(value: Any) -> str:
    return html.escape(str(value)) if value is not None else ""


def _block(value: str | None) -> str:
    lines = [line.strip() for line in (value or "").splitlines() if line.strip()]
    return "<br/>".join(_esc(line) for line in lines)


def _styles() -> dict[str, Any]:
    base = getSampleStyleSheet()
    title = base["Title"].clone("CoverTitle")
    title.fontSize = 40
    title.leading = 46
    title.textColor = DARK
    title.alignment = 0
    subtitle = base["Heading2"].clone("CoverSubtitle")
    subtitle.textColor = DARK
    section = base["Heading2"].clone("Section")
    section.textColor = DARK
    meta = base["Normal"].clone("Meta")
    meta.fontSize = 9
    meta.textColor = GRAY
    meta.leading = 12
    meta_right = meta.clone("MetaRight")
    meta_right.alignment = TA_RIGHT
    cell = base["BodyText"].clone("Cell")
    cell.fontSize = 8.5
    cell.leading = 10.5
    body = base["BodyText"].clone("Body")
    body.fontSize = 9.5
    body.leading = 13
    prepared = base["Normal"].clone("Prepared")
    prepared.fontSize = 12
    prepared.leading = 15
    prepared.fontName = "Helvetica-Bold"
    return {
        "title": title,
        "subtitle": subtitle,
        "section": section,
        "meta": meta,
        "meta_right": meta_right,
        "cell": cell,
        "body": body,
        "prepared": prepared,
    }


def _page_decorations(company_address: str, company_contact: str):
    def draw(canvas_obj, document) -> None:
        page_width, page_height = document.pagesize
        canvas_obj.saveState()

        canvas_obj.setFillColor(WATERMARK)
        canvas_obj.setFont("Helvetica-Bold", 56)
        canvas_obj.translate(page_width / 2.0, page_height / 2.0)
        canvas_obj.rotate(35)
        canvas_obj.drawCentredString(0, 0, "CONFIDENTIAL")
        canvas_obj.restoreState()

        canvas_obj.saveState()
        left = document.leftMargin
        right = page_width - document.rightMargin
        canvas_obj.setStrokeColor(BORDER)
        canvas_obj.line(left, 20 * mm, right, 20 * mm)
        canvas_obj.setFillColor(GRAY)
        canvas_obj.setFont("Helvetica", 8)
        canvas_obj.drawString(left, 15 * mm, company_address)
        canvas_obj.drawString(left, 11 * mm, company_contact)
        canvas_obj.drawRightString(right, 11 * mm, f"Page {document.page}")
        canvas_obj.restoreState()

    return draw


def _items_table(proposal: "Proposal", currency: str, st: dict[str, Any]) -> Table:
    rows: list[list[Any]] = [["#", "Item", "Make / Model", "Qty", "Unit Price", "Disc.", "Line Total"]]
    for idx, item in enumerate(proposal.items, start=1):
        make_model = " / ".join(p for p in (item.snapshot_make, item.snapshot_model) if p)
        rows.append(
            [
                str(idx),
                Paragraph(_esc(item.snapshot_name or make_model or "Item"), st["cell"]),
                Paragraph(_esc(make_model), st["cell"]),
                str(item.quantity),
                format_money(item.snapshot_price, currency),
                f"{item.discount:g}%",
                format_money(item.line_total, currency),
            ]
        )
    table = Table(
        rows,
        colWidths=[8 * mm, 52 * mm, 36 * mm, 12 * mm, 26 * mm, 14 * mm, 28 * mm],
        repeatRows=1,
    )
    style = [
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 8.5),
        ("TEXTCOLOR", (0, 0), (-1, -1), DARK),
        ("BACKGROUND", (0, 0), (-1, 0), HEADER_BG),
        ("GRID", (0, 0), (-1, -1), 0.5, BORDER),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("ALIGN", (0, 0), (0, -1), "CENTER"),
        ("ALIGN", (3, 0), (3, -1), "CENTER"),
        ("ALIGN", (4, 0), (-1, -1), "RIGHT"),
    ]
    for row in range(1, len(rows)):
        if row % 2 == 1:
            style.append(("BACKGROUND", (0, row), (-1, row), ROW_ALT))
    table.setStyle(TableStyle(style))
    return table


def _summary_table(proposal: "Proposal", currency: str) -> Table:
    rows = [
        ["Subtotal", format_money(proposal.subtotal, currency)],
        [f"Tax ({proposal.tax_rate:g}%)", format_money(proposal.tax_amount, currency)],
        ["Total", format_money(proposal.total_amount, currency)],
    ]
    table = Table(rows, colWidths=[40 * mm, 45 * mm], hAlign="RIGHT")
    table.setStyle(
        TableStyle(
            [
                ("FONTSIZE", (0, 0), (-1, -1), 9),
                ("ALIGN", (1, 0), (1, -1), "RIGHT"),
                ("LINEBELOW", (0, 0), (-1, -2), 0.5, BORDER),
                ("BOX", (0, 0), (-1, -1), 0.5, BORDER),
                ("BACKGROUND", (0, -1), (-1, -1), TOTAL_BG),
                ("FONTNAME", (0, -1), (-1, -1), "Helvetica-Bold"),
            ]
        )
    )
    return table


def render_proposal_pdf(
    proposal: "Proposal",
    *,
    company_name: str,
    company_address: str,
    company_contact: str,
) -> bytes:
    """Build the proposal PDF and return its bytes."""
    st = _styles()
    client = proposal.client
    currency = (client.default_currency if client else None) or "INR"
    created = proposal.created_at

    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        leftMargin=16 * mm,
        rightMargin=16 * mm,
        topMargin=18 * mm,
        bottomMargin=28 * mm,
        title=f"{proposal.proposal_number} {proposal.proposal_title or ''}".strip(),
        author=company_name,
    )

    elements: list[Any] = []

    # Cover
    header = Table(
        [
            [
                Paragraph(f"<b>{_esc(company_name)}</b>", st["body"]),
                Paragraph(
                    f"{created.strftime('%B').upper()}<br/>{created.strftime('%d %b %Y')}" if created else "",
                    st["meta_right"],
                ),
            ]
        ],
        colWidths=[90 * mm, 88 * mm],
    )
    elements.append(header)
    elements.append(Spacer(1, 30 * mm))
    elements.append(Paragraph("PROPOSAL", st["title"]))
    elements.append(Paragraph(_esc(proposal.proposal_title or DEFAULT_PROPOSAL_TITLE), st["subtitle"]))
    elements.append(Paragraph(f"Proposal No: {_esc(proposal.proposal_number)}", st["meta"]))
    if proposal.valid_until:
        elements.append(Paragraph(f"Valid until: {proposal.valid_until.strftime('%d %b %Y')}", st["meta"]))
    elements.append(Spacer(1, 30 * mm))

    elements.append(Paragraph("Prepared For:", st["meta"]))
    elements.append(Paragraph(_esc(client.company_name if client else "Client"), st["prepared"]))
    if client is not None:
        if client.contact_name:
            elements.append(Paragraph(f"Attn: {_esc(client.contact_name)}", st["meta"]))
        if client.contact_email:
            elements.append(Paragraph(_esc(client.contact_email), st["meta"]))
        if client.billing_address:
            elements.append(Paragraph(_block(client.billing_address), st["meta"]))
    if proposal.created_by is not None:
        elements.append(Spacer(1, 4 * mm))
        elements.append(Paragraph(f"Created / Managed by: {_esc(proposal.created_by.display_name)}", st["meta"]))
    elements.append(PageBreak())

    # Items
    elements.append(Paragraph("SERVICE", st["section"]))
    elements.append(_items_table(proposal, currency, st))
    elements.append(Spacer(1, 6 * mm))
    elements.append(_summary_table(proposal, currency))

    if proposal.notes:
        elements.append(Spacer(1, 6 * mm))
        elements.append(Paragraph("Notes", st["section"]))
        elements.append(Paragraph(_block(proposal.notes), st["body"]))

    # Terms
    elements.append(Spacer(1, 8 * mm))
    terms = (proposal.terms_conditions or "").strip() or DEFAULT_TERMS_CONDITIONS
    elements.append(Paragraph("TERMS &amp; CONDITIONS", st["section"]))
    elements.append(Paragraph(_block(terms), st["body"]))

    decorate = _page_decorations(company_address, company_contact)
    doc.build(elements, onFirstPage=decorate, onLaterPages=decorate)
    buffer.seek(0)
    return buffer.getvalue()
