from datetime import date, timedelta
from decimal import Decimal

import pytest

from billing import (BillDraft, Interstate, Intrastate, TaxFields, Untaxed, compute_totals, fmt_money,
                     fmt_rate, mode_from_rates, new_draft, parse_rate, suggest_tax_mode, tax_lines, tax_rates)
from records import BillItem, Product, ValidationError

TEA = Product(id="p-tea", name="Green Tea", price=Decimal("400"))
CHAI = Product(id="p-chai", name="Masala Chai", price=Decimal("250.50"))
HONEY = Product(id="p-honey", name="Honey", price=Decimal("99.99"))


def items(*pairs):
    return [BillItem(p.id, p.name, p.price, q) for p, q in pairs]


# ---------------- Tax fields ----------------
def test_igst_clears_cgst_and_sgst():
    tax = TaxFields(cgst="9", sgst="9").with_field("igst", "18")
    assert tax == TaxFields(igst="18")


@pytest.mark.parametrize("name", ["cgst", "sgst"])
def test_cgst_or_sgst_clears_igst(name):
    tax = TaxFields(igst="18").with_field(name, "2.5")
    assert tax.igst == ""
    assert getattr(tax, name) == "2.5"


def test_blank_clears_only_that_field():
    tax = TaxFields(cgst="9", sgst="9").with_field("cgst", "")
    assert tax == TaxFields(sgst="9")
    assert TaxFields(igst="18").with_field("igst", "  ") == TaxFields()


def test_both_families_never_coexist():
    with pytest.raises(ValidationError):
        TaxFields(cgst="9", igst="18")


@pytest.mark.parametrize("value", ["-1", "abc", "NaN"])
def test_bad_rates_are_rejected(value):
    with pytest.raises(ValidationError):
        TaxFields().with_field("cgst", value)


def test_parse_rate():
    assert parse_rate("") is None
    assert parse_rate(None) is None
    assert parse_rate("18%") == Decimal("18")
    assert parse_rate(" 2.5 ") == Decimal("2.5")


def test_percent_rates_are_stored_as_plain_numbers():
    d = BillDraft(items=items((TEA, 2)))
    d.set_tax("cgst", "5%")
    d.set_tax("sgst", " 2.50 ")
    assert d.tax == TaxFields(cgst="5", sgst="2.5")
    assert tax_lines(d.tax.mode(), d.totals()) == [("CGST @ 5%", Decimal("40")), ("SGST @ 2.5%", Decimal("20"))]


def test_tax_lines_skip_taxes_not_charged():
    totals = compute_totals(items((TEA, 1)), Intrastate(Decimal("9"), Decimal("0")))
    assert tax_lines(Intrastate(Decimal("9"), Decimal("0")), totals) == [("CGST @ 9%", Decimal("36"))]
    assert tax_lines(Untaxed(), compute_totals(items((TEA, 1)))) == []


def test_mode_mapping():
    assert TaxFields(cgst="2.5", sgst="2.5").mode() == Intrastate(Decimal("2.5"), Decimal("2.5"))
    assert TaxFields(cgst="9").mode() == Intrastate(Decimal("9"), Decimal("0"))
    assert TaxFields(igst="18").mode() == Interstate(Decimal("18"))
    assert TaxFields().mode() == Untaxed()
    assert TaxFields.from_mode(Interstate(Decimal("18.00"))) == TaxFields(igst="18")
    assert tax_rates(Untaxed()) == (None, None, None)
    assert mode_from_rates(igst=Decimal("12")) == Interstate(Decimal("12"))


def test_suggest_tax_mode_from_state_codes():
    assert suggest_tax_mode("29AAACS1234A1Z1", "27ABCDE1234F1Z5") == Interstate(Decimal("18"))
    assert suggest_tax_mode("29AAACS1234A1Z1", "29ABCDE1234F1Z5") == Intrastate(Decimal("9"), Decimal("9"))
    assert suggest_tax_mode("29AAACS1234A1Z1", "") == Intrastate(Decimal("9"), Decimal("9"))


# ---------------- Totals ----------------
def test_intrastate_totals():
    t = compute_totals(items((TEA, 2)), Intrastate(Decimal("2.5"), Decimal("2.5")))
    assert (t.sub_total, t.cgst, t.sgst, t.igst, t.grand_total) == (800, 20, 20, 0, 840)
    assert t.rounded_total == 840
    assert t.in_words == "Eight Hundred Forty Rupees Only"


def test_interstate_totals_only_igst():
    t = compute_totals(items((TEA, 1), (CHAI, 2)), Interstate(Decimal("18")))
    assert t.sub_total == Decimal("901.00")
    assert t.cgst == 0 and t.sgst == 0
    assert t.igst == Decimal("162.18")
    assert t.grand_total == Decimal("1063.18")


def test_subtotal_is_additive_and_order_independent():
    lines = items((TEA, 3), (CHAI, 1), (HONEY, 7))
    mode = Intrastate(Decimal("6"), Decimal("6"))
    forward = compute_totals(lines, mode)
    backward = compute_totals(list(reversed(lines)), mode)
    assert forward == backward
    assert forward.sub_total == sum(i.amount for i in lines)


@pytest.mark.parametrize("mode", [
    Untaxed(),
    Intrastate(Decimal("2.5"), Decimal("2.5")),
    Intrastate(Decimal("9"), Decimal("0")),
    Interstate(Decimal("28")),
])
def test_grand_total_identity(mode):
    t = compute_totals(items((HONEY, 3), (CHAI, 5)), mode)
    assert t.grand_total == t.sub_total + t.cgst + t.sgst + t.igst


def test_no_per_line_rounding():
    # two lines of 0.125: exact sum 0.25, rounding each line first would give 0.26
    a = Product(id="p-a", name="Sample A", price=Decimal("0.125"))
    b = Product(id="p-b", name="Sample B", price=Decimal("0.125"))
    t = compute_totals(items((a, 1), (b, 1)))
    assert t.sub_total == Decimal("0.250")
    assert fmt_money(t.sub_total) == "0.25"


def test_formatting():
    assert fmt_money(Decimal("1234.5")) == "1,234.50"
    assert fmt_money(Decimal("2.345")) == "2.35"
    assert fmt_rate(Decimal("2.50")) == "2.5"
    assert fmt_rate(Decimal("10")) == "10"


# ---------------- Draft line items ----------------
def test_adding_same_product_merges_lines():
    d = BillDraft()
    d.add_product(TEA)
    d.add_product(CHAI)
    d.add_product(TEA, 3)
    assert [(i.product_id, i.quantity) for i in d.items] == [("p-tea", 4), ("p-chai", 1)]
    assert d.items[0].amount == Decimal("1600")


@pytest.mark.parametrize("qty", [0, -5, "abc", None, ""])
def test_quantity_never_drops_below_one(qty):
    d = BillDraft()
    d.add_product(TEA, 2)
    item = d.set_quantity("p-tea", qty)
    assert item.quantity == 1
    assert item.amount == TEA.price


def test_increment_decrement_and_remove():
    d = BillDraft()
    d.add_product(TEA)
    d.add_product(CHAI)
    assert d.increment("p-tea").quantity == 2
    assert d.decrement("p-tea").quantity == 1
    assert d.decrement("p-tea").quantity == 1
    d.remove_item("p-tea")
    assert [i.product_id for i in d.items] == ["p-chai"]
    assert d.increment("missing") is None


def test_line_copies_catalog_price_by_value():
    product = Product(id="p-x", name="Oolong", price=Decimal("300"))
    d = BillDraft()
    d.add_product(product)
    product.price = Decimal("999")
    assert d.items[0].price == Decimal("300")


def test_draft_tax_edits_stay_exclusive():
    d = BillDraft(tax=TaxFields(cgst="9", sgst="9"))
    d.set_tax("igst", "18")
    assert d.tax == TaxFields(igst="18")
    d.add_product(TEA)
    assert d.totals().grand_total == Decimal("472")


def test_typing_a_number_marks_it_operator_edited():
    d = BillDraft(bill_number="INV-2026-0001", number_generated=True)
    d.set_bill_number("INV-2026-0001")
    assert d.number_generated
    d.set_bill_number("SPECIAL-1")
    assert not d.number_generated


def test_new_draft_defaults(store):
    today = date(2026, 3, 14)
    d = new_draft(store, today=today)
    assert d.bill_number == "INV-2026-0001"
    assert d.number_generated
    assert d.issue_date == today
    assert d.due_date == today + timedelta(days=15)
    assert d.tax == TaxFields(cgst="9", sgst="9")
    assert d.items == [] and d.bill_id is None
