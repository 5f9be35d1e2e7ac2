# invoice_doc.py
# Invoice document: one view model per bill, rendered as the on-screen HTML
# preview and as the A4 PDF that printing and downloading share.

import html
import io
import os
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from xml.sax.saxutils import escape

from PIL import Image as PILImage
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Image, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

import config
from billing import bill_totals, fmt_money, mode_from_rates, tax_lines
from words import round_rupees

NOT_PROVIDED = "Not provided"
TITLE = "TAX INVOICE"


class DocumentMode(Enum):
    EDIT = "edit"        # bill editor, before saving
    PREVIEW = "preview"  # read-only preview opened from the editor
    VIEW = "view"        # opened from the bill list


_ACTIONS = {
    DocumentMode.EDIT: ("preview", "save"),
    DocumentMode.PREVIEW: ("back_to_editor", "save", "print", "download", "toggle_watermark"),
    DocumentMode.VIEW: ("back_to_list", "edit", "print", "download"),
}


def available_actions(mode):
    """Controls offered around the document; the document itself never depends on the mode."""
    return _ACTIONS[DocumentMode(mode)]


@dataclass(frozen=True)
class LineRow:
    sno: str
    description: str
    hsn: str
    qty: str
    rate: str
    amount: str


@dataclass(frozen=True)
class InvoiceDocument:
    bill_number: str
    business_name: str
    business_lines: tuple
    meta: tuple
    client_name: str
    client_lines: tuple
    rows: tuple
    total_qty: str
    sub_total: str
    tax_lines: tuple
    round_off: str
    grand_total: str
    amount_in_words: str
    notes: tuple
    bank_lines: tuple
    signature_for: str
    watermark: str


def _present(pairs):
    """Drop (label, value) pairs whose value is blank."""
    return tuple((label, str(value).strip()) for label, value in pairs if value and str(value).strip())


def build_document(bill, client=None, profile=None):
    """
    Resolve every string the invoice shows, once. Missing client and
    business fields are left out; missing bank fields read "Not provided".
    """
    totals = bill_totals(bill)
    business_name = (profile.business_name if profile else "") or ""

    business_lines = _present([
        ("", profile.address if profile else ""),
        ("GSTIN", profile.gstin if profile else ""),
        ("FSSAI", profile.fssai_no if profile else ""),
        ("Phone", profile.phone if profile else ""),
        ("Email", profile.email if profile else ""),
    ])
    meta = _present([
        ("Invoice No", bill.bill_number),
        ("Place", bill.place),
        ("Date", bill.date.strftime("%d-%m-%Y")),
        ("Due Date", bill.due_date.strftime("%d-%m-%Y") if bill.due_date else ""),
    ])
    client_lines = _present([
        ("GSTIN", client.gstin if client else ""),
        ("FSSAI", client.fssai if client else ""),
        ("Phone", client.phone if client else ""),
        ("Email", client.email if client else ""),
        ("", client.address if client else ""),
    ])

    rows = tuple(
        LineRow(str(n), item.name, config.HSN_CODE, str(item.quantity), fmt_money(item.price), fmt_money(item.amount))
        for n, item in enumerate(bill.items, start=1)
    )

    mode = mode_from_rates(bill.cgst_rate, bill.sgst_rate, bill.igst_rate)
    taxes = [(label, fmt_money(amount)) for label, amount in tax_lines(mode, totals)]

    rounded = round_rupees(totals.grand_total)
    diff = Decimal(rounded) - totals.grand_total
    round_off = fmt_money(diff) if fmt_money(diff) not in ("0.00", "-0.00") else ""

    bank_lines = tuple(
        (label, (getattr(profile, attr, "") if profile else "") or NOT_PROVIDED)
        for label, attr in (("Bank", "bank_name"), ("A/C No", "account_number"), ("IFSC", "ifsc_code"),
                            ("Branch", "branch_name"), ("PAN", "pan_no"))
    )

    return InvoiceDocument(
        bill_number=bill.bill_number,
        business_name=business_name,
        business_lines=business_lines,
        meta=meta,
        client_name=(client.name if client else "") or bill.client_name,
        client_lines=client_lines,
        rows=rows,
        total_qty=str(sum(i.quantity for i in bill.items)),
        sub_total=fmt_money(totals.sub_total),
        tax_lines=tuple(taxes),
        round_off=round_off,
        grand_total=f"{rounded:,}.00",
        amount_in_words=totals.in_words,
        notes=tuple(config.LEGAL_NOTES),
        bank_lines=bank_lines,
        signature_for=f"For {business_name}" if business_name else "",
        watermark=business_name if (bill.watermark and business_name) else "",
    )


def _label(label, value):
    return f"{label}: {value}" if label else value


# ---------------- HTML (on-screen preview) ----------------
_CELL = "border:1px solid #ccc;padding:6px 8px"


def render_html(doc):
    """Inline-styled HTML of the invoice for st.markdown(..., unsafe_allow_html=True)."""
    e = html.escape
    out = [
        "<div style='position:relative;max-width:794px;margin:0 auto;background:#fff;color:#111;"
        "border:1px solid #ccc;padding:24px;font-family:Arial,Helvetica,sans-serif;font-size:13px;overflow:hidden'>"
    ]
    if doc.watermark:
        out.append(
            "<div style='position:absolute;top:40%;left:0;right:0;text-align:center;font-size:64px;"
            "font-weight:800;color:rgba(0,0,0,0.06);transform:rotate(-30deg);pointer-events:none'>"
            f"{e(doc.watermark)}</div>"
        )
    out.append(f"<div style='text-align:center;font-weight:700;font-size:18px;border-bottom:2px solid #333;"
               f"padding-bottom:6px;margin-bottom:10px'>{TITLE}</div>")

    # business | invoice meta
    out.append("<div style='display:flex;gap:16px;margin-bottom:10px'>")
    out.append("<div style='flex:3'>")
    if doc.business_name:
        out.append(f"<div style='font-weight:700;font-size:16px'>{e(doc.business_name)}</div>")
    for label, value in doc.business_lines:
        out.append(f"<div>{e(_label(label, value))}</div>")
    out.append("</div><div style='flex:2;text-align:right'>")
    for label, value in doc.meta:
        out.append(f"<div><b>{e(label)}:</b> {e(value)}</div>")
    out.append("</div></div>")

    out.append("<div style='border:1px solid #ccc;padding:8px;margin-bottom:10px'>"
               "<div style='font-weight:700;color:#555'>Billed To</div>")
    out.append(f"<div style='font-weight:700'>{e(doc.client_name)}</div>")
    for label, value in doc.client_lines:
        out.append(f"<div>{e(_label(label, value))}</div>")
    out.append("</div>")

    out.append("<table style='width:100%;border-collapse:collapse'><thead><tr style='background:#f5f5f5'>")
    for h, align in (("S.No", "center"), ("Description", "left"), ("HSN Code", "center"),
                     ("Qty", "right"), ("Rate", "right"), ("Amount", "right")):
        out.append(f"<th style='{_CELL};text-align:{align}'>{h}</th>")
    out.append("</tr></thead><tbody>")
    for r in doc.rows:
        out.append(
            f"<tr><td style='{_CELL};text-align:center'>{e(r.sno)}</td><td style='{_CELL}'>{e(r.description)}</td>"
            f"<td style='{_CELL};text-align:center'>{e(r.hsn)}</td><td style='{_CELL};text-align:right'>{e(r.qty)}</td>"
            f"<td style='{_CELL};text-align:right'>{e(r.rate)}</td><td style='{_CELL};text-align:right'>{e(r.amount)}</td></tr>"
        )
    out.append(
        f"<tr style='font-weight:700;background:#f5f5f5'><td style='{_CELL}' colspan='3'>Total</td>"
        f"<td style='{_CELL};text-align:right'>{e(doc.total_qty)}</td><td style='{_CELL}'></td>"
        f"<td style='{_CELL};text-align:right'>{e(doc.sub_total)}</td></tr>"
    )
    out.append("</tbody></table>")

    out.append("<table style='width:50%;margin-left:auto;border-collapse:collapse;margin-top:8px'>")
    lines = [("Sub Total", doc.sub_total)] + list(doc.tax_lines)
    if doc.round_off:
        lines.append(("Round Off", doc.round_off))
    for label, value in lines:
        out.append(f"<tr><td style='{_CELL}'>{e(label)}</td><td style='{_CELL};text-align:right'>{e(value)}</td></tr>")
    out.append(f"<tr style='font-weight:700;background:#eee;font-size:15px'><td style='{_CELL}'>GRAND TOTAL</td>"
               f"<td style='{_CELL};text-align:right'>Rs. {e(doc.grand_total)}</td></tr></table>")

    out.append(f"<div style='margin-top:8px;padding:8px;background:#fafafa;border:1px solid #eee'>"
               f"<b>Amount in Words:</b> {e(doc.amount_in_words)}</div>")

    out.append("<div style='display:flex;gap:16px;margin-top:16px'><div style='flex:3;font-size:12px'>"
               "<div style='font-weight:700'>Bank Details</div>")
    for label, value in doc.bank_lines:
        out.append(f"<div>{e(label)}: {e(value)}</div>")
    out.append("<div style='font-weight:700;margin-top:8px'>Notes</div>")
    for note in doc.notes:
        out.append(f"<div style='font-style:italic;color:#555'>* {e(note)}</div>")
    out.append("</div><div style='flex:2;text-align:center;align-self:flex-end'>")
    out.append(f"<div style='font-weight:700'>{e(doc.signature_for)}</div>")
    out.append("<div style='height:56px'></div><div style='border-top:1px solid #999'>Authorised Signatory</div>")
    out.append("</div></div></div>")
    return "".join(out)


# ---------------- PDF (print + download) ----------------
FONT_NAME = "Helvetica"
FONT_BOLD = "Helvetica-Bold"

base_styles = getSampleStyleSheet()
BODY_STYLE = ParagraphStyle("body", parent=base_styles["Normal"], fontName=FONT_NAME, fontSize=8.5, leading=10.5)
BOLD_STYLE = ParagraphStyle("bold", parent=BODY_STYLE, fontName=FONT_BOLD)
RIGHT_STYLE = ParagraphStyle("right", parent=BODY_STYLE, alignment=2)
CENTER_STYLE = ParagraphStyle("center", parent=BODY_STYLE, alignment=1)
HEADER_STYLE = ParagraphStyle("header", parent=BODY_STYLE, fontName=FONT_BOLD, alignment=1)
TITLE_STYLE = ParagraphStyle("title", parent=base_styles["Heading1"], fontName=FONT_BOLD, fontSize=14, leading=16, alignment=1)
NAME_STYLE = ParagraphStyle("name", parent=BODY_STYLE, fontName=FONT_BOLD, fontSize=13, leading=15)
TOTAL_STYLE = ParagraphStyle("total", parent=BODY_STYLE, fontName=FONT_BOLD, fontSize=11, leading=13)
TOTAL_VALUE_STYLE = ParagraphStyle("total_val", parent=TOTAL_STYLE, alignment=2)
NOTE_STYLE = ParagraphStyle("note", parent=BODY_STYLE, fontName="Helvetica-Oblique", fontSize=7.5, leading=9,
                            textColor=colors.HexColor("#555555"))

MARGIN = 12 * mm
PAGE_WIDTH = A4[0] - 2 * MARGIN


def _p(text, style=BODY_STYLE):
    return Paragraph(escape(str(text)), style)


def _scaled_image(path, max_w, max_h):
    # a broken or unreadable asset raises here; no blank placeholder is drawn
    with PILImage.open(path) as img:
        w, h = img.size
    scale = min(max_w / w, max_h / h)
    return Image(path, width=w * scale, height=h * scale)


def _watermark(text):
    def draw(canv, doc):
        canv.saveState()
        canv.setFont(FONT_BOLD, 60)
        canv.setFillColor(colors.Color(0, 0, 0, alpha=0.06))
        canv.translate(A4[0] / 2, A4[1] / 2)
        canv.rotate(35)
        canv.drawCentredString(0, 0, text)
        canv.restoreState()
    return draw


def _boxed(table, extra=()):
    table.setStyle(TableStyle([
        ("BOX", (0, 0), (-1, -1), 0.8, colors.black),
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
        ("TOPPADDING", (0, 0), (-1, -1), 3),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 3),
        ("LEFTPADDING", (0, 0), (-1, -1), 4),
        ("RIGHTPADDING", (0, 0), (-1, -1), 4),
    ] + list(extra)))
    return table


def build_story(doc, logo_path=None, signature_path=None):
    story = []

    title = Table([[Paragraph(TITLE, TITLE_STYLE)]], colWidths=[PAGE_WIDTH])
    story.append(_boxed(title, [("VALIGN", (0, 0), (-1, -1), "MIDDLE")]))

    # 1. business header | invoice meta
    business = []
    if logo_path:
        business.append(_scaled_image(logo_path, 40 * mm, 16 * mm))
    if doc.business_name:
        business.append(_p(doc.business_name, NAME_STYLE))
    business += [_p(_label(label, value)) for label, value in doc.business_lines]
    meta = [Paragraph(f"<b>{escape(label)}:</b> {escape(value)}", RIGHT_STYLE) for label, value in doc.meta]
    header = Table([[business or [_p("")], meta or [_p("")]]], colWidths=[PAGE_WIDTH * 0.6, PAGE_WIDTH * 0.4])
    story.append(_boxed(header, [("LINEAFTER", (0, 0), (0, -1), 0.8, colors.black)]))

    # 2. client
    client = [_p("Billed To", BOLD_STYLE), _p(doc.client_name, NAME_STYLE)]
    client += [_p(_label(label, value)) for label, value in doc.client_lines]
    story.append(_boxed(Table([[client]], colWidths=[PAGE_WIDTH])))
    story.append(Spacer(1, 4))

    # 3. line items
    headers = ["S.No", "Description", "HSN Code", "Qty", "Rate", "Amount"]
    col_w = [12 * mm, PAGE_WIDTH - (12 + 22 + 16 + 26 + 30) * mm, 22 * mm, 16 * mm, 26 * mm, 30 * mm]
    data = [[_p(h, HEADER_STYLE) for h in headers]]
    for r in doc.rows:
        data.append([_p(r.sno, CENTER_STYLE), _p(r.description), _p(r.hsn, CENTER_STYLE),
                     _p(r.qty, RIGHT_STYLE), _p(r.rate, RIGHT_STYLE), _p(r.amount, RIGHT_STYLE)])
    data.append([_p(""), _p("Total", BOLD_STYLE), _p(""), Paragraph(f"<b>{doc.total_qty}</b>", RIGHT_STYLE),
                 _p(""), Paragraph(f"<b>{escape(doc.sub_total)}</b>", RIGHT_STYLE)])
    items = Table(data, colWidths=col_w, repeatRows=1)
    items.setStyle(TableStyle([
        ("GRID", (0, 0), (-1, -1), 0.5, colors.black),
        ("BACKGROUND", (0, 0), (-1, 0), colors.whitesmoke),
        ("BACKGROUND", (0, -1), (-1, -1), colors.whitesmoke),
        ("VALIGN", (0, 0), (-1, -1), "MIDDLE"),
        ("TOPPADDING", (0, 0), (-1, -1), 3),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 3),
    ]))
    story.append(items)
    story.append(Spacer(1, 4))

    # 4. totals: only taxes actually charged
    lines = [("Sub Total", doc.sub_total)] + list(doc.tax_lines)
    if doc.round_off:
        lines.append(("Round Off", doc.round_off))
    totals_rows = [[_p(label), _p(value, RIGHT_STYLE)] for label, value in lines]
    totals_rows.append([_p("GRAND TOTAL", TOTAL_STYLE), _p(f"Rs. {doc.grand_total}", TOTAL_VALUE_STYLE)])
    tot = Table(totals_rows, colWidths=[PAGE_WIDTH * 0.25, PAGE_WIDTH * 0.2], hAlign="RIGHT")
    tot.setStyle(TableStyle([
        ("INNERGRID", (0, 0), (-1, -2), 0.25, colors.lightgrey),
        ("BOX", (0, 0), (-1, -1), 0.5, colors.black),
        ("LINEABOVE", (0, -1), (-1, -1), 0.8, colors.black),
        ("BACKGROUND", (0, -1), (-1, -1), colors.lightgrey),
        ("TOPPADDING", (0, 0), (-1, -1), 2),
        ("BOTTOMPADDING", (0, 0), (-1, -1), 2),
    ]))
    story.append(tot)
    story.append(Spacer(1, 4))

    words = Table([[Paragraph(f"<b>Amount in Words:</b> {escape(doc.amount_in_words)}", BODY_STYLE)]],
                  colWidths=[PAGE_WIDTH])
    story.append(_boxed(words))
    story.append(Spacer(1, 6))

    # 5. bank + notes | signature
    left = [_p("Bank Details", BOLD_STYLE)]
    left += [_p(f"{label}: {value}") for label, value in doc.bank_lines]
    left.append(Spacer(1, 4))
    left.append(_p("Notes", BOLD_STYLE))
    left += [_p(f"* {note}", NOTE_STYLE) for note in doc.notes]
    right = [_p(doc.signature_for, HEADER_STYLE)]
    if signature_path:
        sig = _scaled_image(signature_path, 44 * mm, 22 * mm)
        sig.hAlign = "CENTER"
        right.append(sig)
    else:
        right.append(Spacer(1, 22 * mm))
    right.append(_p("Authorised Signatory", CENTER_STYLE))
    footer = Table([[left, right]], colWidths=[PAGE_WIDTH * 0.6, PAGE_WIDTH * 0.4])
    story.append(_boxed(footer, [("LINEAFTER", (0, 0), (0, -1), 0.8, colors.black),
                                 ("VALIGN", (1, 0), (1, 0), "BOTTOM")]))
    return story


def _asset(name):
    path = config.ASSETS.get(name)
    return path if path and os.path.exists(path) else None


def render_pdf(doc, logo_path=None, signature_path=None):
    """
    A4 PDF bytes. ReportLab runs in invariant mode (fixed document id and
    timestamps) so the same document always produces the same bytes.
    """
    logo_path = logo_path or _asset("logo")
    signature_path = signature_path or _asset("signature")
    buf = io.BytesIO()
    pdf = SimpleDocTemplate(buf, pagesize=A4, leftMargin=MARGIN, rightMargin=MARGIN,
                            topMargin=MARGIN, bottomMargin=MARGIN, invariant=1,
                            title=f"Invoice {doc.bill_number}", author=doc.business_name, creator=config.APP_TITLE)
    on_page = _watermark(doc.watermark) if doc.watermark else (lambda canv, d: None)
    pdf.build(build_story(doc, logo_path, signature_path), onFirstPage=on_page, onLaterPages=on_page)
    return buf.getvalue()
