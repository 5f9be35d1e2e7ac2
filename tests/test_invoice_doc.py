from datetime import date
from decimal import Decimal

import pytest

from billing import BillDraft, TaxFields, draft_to_bill
from invoice_doc import (NOT_PROVIDED, DocumentMode, available_actions, build_document, render_html,
                         render_pdf)
from records import Client, Product

TEA = Product(id="p-tea", name="Green Tea", price=Decimal("400"))
ACME = Client(id="CL-001", name="Acme Traders", phone="9876543210")


def make_bill(tax=None, qty=2, product=TEA, watermark=True, number="INV-2026-0001"):
    d = BillDraft(bill_number=number, issue_date=date(2026, 3, 14), due_date=date(2026, 3, 29),
                  place="Bengaluru", tax=tax or TaxFields(cgst="2.5", sgst="2.5"), watermark=watermark)
    d.add_product(product, qty)
    return draft_to_bill(d, ACME)


def test_document_contents(profile):
    doc = build_document(make_bill(), ACME, profile)
    assert doc.business_name == "Sunrise Tea Co"
    assert ("GSTIN", "29AAACS1234A1Z1") in doc.business_lines
    assert doc.meta == (("Invoice No", "INV-2026-0001"), ("Place", "Bengaluru"),
                        ("Date", "14-03-2026"), ("Due Date", "29-03-2026"))
    assert doc.client_name == "Acme Traders"
    assert [(r.sno, r.description, r.hsn, r.qty, r.rate, r.amount) for r in doc.rows] == \
        [("1", "Green Tea", "0902", "2", "400.00", "800.00")]
    assert doc.total_qty == "2"
    assert doc.sub_total == "800.00"
    assert doc.tax_lines == (("CGST @ 2.5%", "20.00"), ("SGST @ 2.5%", "20.00"))
    assert doc.grand_total == "840.00"
    assert doc.round_off == ""
    assert doc.amount_in_words == "Eight Hundred Forty Rupees Only"
    assert doc.signature_for == "For Sunrise Tea Co"
    assert doc.watermark == "Sunrise Tea Co"


def test_only_nonzero_taxes_are_listed():
    assert build_document(make_bill(TaxFields(igst="18"))).tax_lines == (("IGST @ 18%", "144.00"),)
    assert build_document(make_bill(TaxFields(cgst="5"))).tax_lines == (("CGST @ 5%", "40.00"),)
    assert build_document(make_bill(TaxFields())).tax_lines == ()


def test_grand_total_is_rounded_with_round_off():
    odd = Product(id="p-odd", name="Honey", price=Decimal("100.50"))
    doc = build_document(make_bill(TaxFields(), qty=1, product=odd))
    assert doc.sub_total == "100.50"
    assert doc.grand_total == "101.00"
    assert doc.round_off == "0.50"
    assert doc.amount_in_words == "One Hundred One Rupees Only"


def test_missing_fields_are_omitted_not_invented():
    bare = Client(id="CL-009", name="Walk-in Customer")
    doc = build_document(make_bill(), bare, None)
    assert doc.client_lines == ()
    assert doc.business_name == "" and doc.business_lines == ()
    assert all(value == NOT_PROVIDED for _, value in doc.bank_lines)
    assert doc.signature_for == ""
    assert doc.watermark == ""


def test_partial_bank_details_fall_back_per_field(profile):
    doc = build_document(make_bill(), ACME, profile)
    bank = dict(doc.bank_lines)
    assert bank["Bank"] == "State Bank of India"
    assert bank["Branch"] == NOT_PROVIDED
    assert bank["PAN"] == NOT_PROVIDED


def test_watermark_can_be_switched_off(profile):
    assert build_document(make_bill(watermark=False), ACME, profile).watermark == ""


def test_deleted_client_keeps_name_from_bill():
    doc = build_document(make_bill(), None, None)
    assert doc.client_name == "Acme Traders"


def test_html_is_deterministic_and_escaped(profile):
    evil = Client(id="CL-002", name="<script>alert(1)</script>")
    bill = make_bill()
    first = render_html(build_document(bill, evil, profile))
    second = render_html(build_document(bill, evil, profile))
    assert first == second
    assert "<script>" not in first
    assert "&lt;script&gt;" in first
    assert "Eight Hundred Forty Rupees Only" in first
    assert "IGST" not in first


def test_pdf_is_deterministic(profile):
    doc = build_document(make_bill(), ACME, profile)
    first = render_pdf(doc)
    assert first.startswith(b"%PDF")
    assert render_pdf(doc) == first


def test_mode_only_changes_actions():
    assert available_actions(DocumentMode.EDIT) == ("preview", "save")
    assert "print" in available_actions(DocumentMode.PREVIEW)
    assert "toggle_watermark" in available_actions(DocumentMode.PREVIEW)
    assert available_actions("view") == ("back_to_list", "edit", "print", "download")
    with pytest.raises(ValueError):
        available_actions("archive")
