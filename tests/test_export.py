from datetime import date
from decimal import Decimal

import pytest

from billing import BillDraft, TaxFields, draft_to_bill
from export import BusyError, ExportError, busy, export_invoice, invoice_filename, print_page_html
from invoice_doc import build_document
from records import Client, Product


@pytest.fixture
def doc(profile):
    d = BillDraft(bill_number="INV-2026-0007", issue_date=date(2026, 3, 14), tax=TaxFields(igst="18"))
    d.add_product(Product(id="p-tea", name="Green Tea", price=Decimal("400")))
    client = Client(id="CL-001", name="Acme Traders")
    return build_document(draft_to_bill(d, client), client, profile)


@pytest.mark.parametrize("number, expected", [
    ("INV-2026-0007", "Invoice_INV-2026-0007.pdf"),
    ("INV 2026/07", "Invoice_INV_2026_07.pdf"),
    ("", "Invoice_draft.pdf"),
    (None, "Invoice_draft.pdf"),
])
def test_invoice_filename(number, expected):
    assert invoice_filename(number) == expected


def test_export_renders_once_for_both_paths(doc):
    result = export_invoice(doc)
    assert result.filename == "Invoice_INV-2026-0007.pdf"
    assert result.mime == "application/pdf"
    assert result.pdf.startswith(b"%PDF")
    page = print_page_html(result, auto_print=False)
    assert result.filename in page
    assert "if (false)" in page


def test_auto_print_waits_for_the_frame(doc):
    page = print_page_html(export_invoice(doc), auto_print=True, settle_ms=500)
    assert "if (true)" in page
    assert "setTimeout(doPrint, 500)" in page


def test_unreadable_asset_fails_loudly(doc, tmp_path):
    broken = tmp_path / "logo.png"
    broken.write_bytes(b"not an image")
    with pytest.raises(ExportError):
        export_invoice(doc, logo_path=str(broken))
    with pytest.raises(ExportError):
        export_invoice(doc, signature_path=str(tmp_path / "missing.png"))


def test_busy_flag_blocks_reentry_and_always_clears():
    state = {}
    with busy(state, "saving"):
        assert state["saving"] is True
        with pytest.raises(BusyError):
            with busy(state, "saving"):
                pass
    assert state["saving"] is False

    with pytest.raises(RuntimeError):
        with busy(state, "saving"):
            raise RuntimeError("render failed")
    assert state["saving"] is False
