# billing.py
# Invoice computation: tax modes, the bill draft being edited, totals, save/load

from dataclasses import dataclass, field, replace
from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

import config
from db import StoreError
from gst_lookup import gst_state_code
from loggers import get_logger
from numbering import invoice_numbers, next_invoice_number, resolve_invoice_number
from records import (Bill, BillItem, BillRepository, ClientRepository, ValidationError,
                     new_id, now_iso)
from words import round_rupees, rupees_in_words

log = get_logger("billing.engine")

ZERO = Decimal("0")


def money(v):
    return Decimal(str(v)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def fmt_money(v):
    return f"{money(v):,.2f}"


def fmt_rate(rate):
    """2.50 -> "2.5", 9 -> "9"."""
    return format(Decimal(rate).normalize(), "f")


# ---------------- Tax modes ----------------
# Intrastate supply pays CGST + SGST, interstate pays IGST; never both.
@dataclass(frozen=True)
class Intrastate:
    cgst_rate: Decimal = ZERO
    sgst_rate: Decimal = ZERO


@dataclass(frozen=True)
class Interstate:
    igst_rate: Decimal = ZERO


@dataclass(frozen=True)
class Untaxed:
    pass


def tax_rates(mode):
    """(cgst, sgst, igst) rates for storage; None for the inactive family."""
    if isinstance(mode, Intrastate):
        return mode.cgst_rate, mode.sgst_rate, None
    if isinstance(mode, Interstate):
        return None, None, mode.igst_rate
    return None, None, None


def mode_from_rates(cgst=None, sgst=None, igst=None):
    if igst is not None:
        return Interstate(Decimal(igst))
    if cgst is not None or sgst is not None:
        return Intrastate(Decimal(cgst or 0), Decimal(sgst or 0))
    return Untaxed()


def parse_rate(value, name="rate"):
    """'' / None -> None (unset); otherwise a non-negative Decimal percentage."""
    text = "" if value is None else str(value).strip().rstrip("%").strip()
    if not text:
        return None
    try:
        rate = Decimal(text)
    except InvalidOperation:
        raise ValidationError(f"{name.upper()} must be a number, got {value!r}")
    if not rate.is_finite() or rate < 0:
        raise ValidationError(f"{name.upper()} cannot be negative")
    return rate


@dataclass(frozen=True)
class TaxFields:
    """
    The three percentage inputs of the bill editor.

    Edits go through with_field(), which keeps the two tax families
    exclusive: a non-empty IGST clears CGST and SGST, a non-empty CGST or
    SGST clears IGST. Blank means unset.
    """

    cgst: str = ""
    sgst: str = ""
    igst: str = ""

    NAMES = ("cgst", "sgst", "igst")

    def __post_init__(self):
        for name in self.NAMES:
            parse_rate(getattr(self, name), name)
        if self.igst and (self.cgst or self.sgst):
            raise ValidationError("IGST cannot be combined with CGST/SGST")

    def with_field(self, name, value):
        if name not in self.NAMES:
            raise KeyError(name)
        rate = parse_rate(value, name)
        if rate is None:
            return replace(self, **{name: ""})
        text = fmt_rate(rate)
        if name == "igst":
            return TaxFields(igst=text)
        return replace(self, **{name: text, "igst": ""})

    def mode(self):
        return mode_from_rates(parse_rate(self.cgst), parse_rate(self.sgst), parse_rate(self.igst))

    @classmethod
    def from_mode(cls, mode):
        cgst, sgst, igst = tax_rates(mode)
        def text(r):
            return "" if r is None else fmt_rate(r)
        return cls(cgst=text(cgst), sgst=text(sgst), igst=text(igst))


def suggest_tax_mode(business_gstin, client_gstin):
    """Interstate (IGST 18%) when both GSTINs carry different state codes, else CGST/SGST 9% each."""
    ours = gst_state_code(business_gstin)
    theirs = gst_state_code(client_gstin)
    if ours and theirs and ours != theirs:
        return Interstate(Decimal("18"))
    return Intrastate(Decimal("9"), Decimal("9"))


# ---------------- Totals ----------------
@dataclass(frozen=True)
class Totals:
    sub_total: Decimal
    cgst: Decimal
    sgst: Decimal
    igst: Decimal
    grand_total: Decimal

    @property
    def rounded_total(self):
        return round_rupees(self.grand_total)

    @property
    def in_words(self):
        return rupees_in_words(self.rounded_total)


def compute_totals(items, mode=None):
    """
    Exact Decimal arithmetic, nothing rounded per line; rounding happens only
    when the numbers are displayed.
    """
    mode = mode or Untaxed()
    sub_total = sum((Decimal(i.price) * i.quantity for i in items), ZERO)
    cgst_rate, sgst_rate, igst_rate = tax_rates(mode)
    cgst = sub_total * (cgst_rate or ZERO) / 100
    sgst = sub_total * (sgst_rate or ZERO) / 100
    igst = sub_total * (igst_rate or ZERO) / 100
    return Totals(sub_total, cgst, sgst, igst, sub_total + cgst + sgst + igst)


def bill_totals(bill):
    """Recompute a stored bill from its frozen items and rates."""
    return compute_totals(bill.items, mode_from_rates(bill.cgst_rate, bill.sgst_rate, bill.igst_rate))


def tax_lines(mode, totals):
    """[("CGST @ 2.5%", amount), ...] for the taxes that actually apply."""
    cgst_rate, sgst_rate, igst_rate = tax_rates(mode)
    return [(f"{label} @ {fmt_rate(rate)}%", amount)
            for label, rate, amount in (("CGST", cgst_rate, totals.cgst),
                                        ("SGST", sgst_rate, totals.sgst),
                                        ("IGST", igst_rate, totals.igst))
            if amount]


# ---------------- Draft ----------------
@dataclass
class BillDraft:
    client_id: str = ""
    bill_number: str = ""
    number_generated: bool = True
    place: str = config.DEFAULT_PLACE
    issue_date: date = field(default_factory=date.today)
    due_date: date = None
    items: list = field(default_factory=list)
    tax: TaxFields = field(default_factory=TaxFields)
    watermark: bool = True
    bill_id: str = None
    created_at: str = ""

    def _index(self, product_id):
        for idx, item in enumerate(self.items):
            if item.product_id == product_id:
                return idx
        return None

    def add_product(self, product, quantity=1):
        """Add a catalog product by value; adding it again raises that line's quantity."""
        qty = max(1, int(quantity))
        idx = self._index(product.id)
        if idx is not None:
            self.items[idx] = self.items[idx].with_quantity(self.items[idx].quantity + qty)
            return self.items[idx]
        item = BillItem(product_id=product.id, name=product.name, price=Decimal(product.price), quantity=qty)
        self.items.append(item)
        return item

    def set_quantity(self, product_id, quantity):
        idx = self._index(product_id)
        if idx is None:
            return None
        try:
            qty = int(quantity)
        except (TypeError, ValueError):
            qty = 1
        self.items[idx] = self.items[idx].with_quantity(qty)
        return self.items[idx]

    def increment(self, product_id):
        idx = self._index(product_id)
        return None if idx is None else self.set_quantity(product_id, self.items[idx].quantity + 1)

    def decrement(self, product_id):
        idx = self._index(product_id)
        return None if idx is None else self.set_quantity(product_id, self.items[idx].quantity - 1)

    def remove_item(self, product_id):
        self.items = [i for i in self.items if i.product_id != product_id]

    def set_tax(self, name, value):
        self.tax = self.tax.with_field(name, value)

    def set_bill_number(self, number):
        if number != self.bill_number:
            self.bill_number = number
            self.number_generated = False

    def totals(self):
        return compute_totals(self.items, self.tax.mode())


def new_draft(store, today=None, tax_mode=None):
    today = today or date.today()
    return BillDraft(
        bill_number=next_invoice_number(invoice_numbers(store), today),
        number_generated=True,
        issue_date=today,
        due_date=today + timedelta(days=config.DEFAULT_DUE_DAYS),
        tax=TaxFields.from_mode(tax_mode or Intrastate(Decimal("9"), Decimal("9"))),
    )


def draft_from_bill(bill):
    return BillDraft(
        client_id=bill.client_id,
        bill_number=bill.bill_number,
        number_generated=False,
        place=bill.place,
        issue_date=bill.date,
        due_date=bill.due_date,
        items=list(bill.items),
        tax=TaxFields.from_mode(mode_from_rates(bill.cgst_rate, bill.sgst_rate, bill.igst_rate)),
        watermark=bill.watermark,
        bill_id=bill.id,
        created_at=bill.created_at,
    )


def load_draft(store, bill_id):
    bill = BillRepository(store).get(bill_id)
    if bill is None:
        raise StoreError(f"Bill {bill_id} not found")
    return draft_from_bill(bill)


def validate_draft(store, draft):
    """Returns the resolved client; raises ValidationError before anything is written."""
    client = ClientRepository(store).get(draft.client_id) if draft.client_id else None
    if client is None:
        raise ValidationError("Please select a client.")
    if not draft.items:
        raise ValidationError("Please add at least one product.")
    return client


def draft_to_bill(draft, client=None, number=None):
    """Snapshot of the draft as a Bill; used for the preview and by save_bill."""
    mode = draft.tax.mode()
    totals = compute_totals(draft.items, mode)
    cgst_rate, sgst_rate, igst_rate = tax_rates(mode)
    return Bill(
        id=draft.bill_id or new_id(),
        bill_number=number if number is not None else draft.bill_number,
        date=draft.issue_date,
        due_date=draft.due_date or draft.issue_date + timedelta(days=config.DEFAULT_DUE_DAYS),
        place=draft.place,
        client_id=client.id if client else draft.client_id,
        client_name=client.name if client else "",
        items=list(draft.items),
        cgst_rate=cgst_rate,
        sgst_rate=sgst_rate,
        igst_rate=igst_rate,
        sub_total=totals.sub_total,
        cgst=totals.cgst,
        sgst=totals.sgst,
        igst=totals.igst,
        total_amount=totals.grand_total,
        watermark=draft.watermark,
        created_at=draft.created_at or now_iso(),
    )


def save_bill(store, draft, today=None):
    """
    Validate, number, and persist the draft (insert, or overwrite in place
    when it was opened from a saved bill). The draft itself is left
    untouched so a failed save can simply be retried.

    Returns (bill, warning_or_None).
    """
    client = validate_draft(store, draft)
    number, warning = resolve_invoice_number(store, draft.bill_number, draft.number_generated,
                                             exclude_id=draft.bill_id, today=today)
    bill = draft_to_bill(draft, client, number)
    repo = BillRepository(store)
    if draft.bill_id:
        repo.save(bill)
        if repo.get(bill.id) is None:
            raise StoreError(f"Bill {draft.bill_id} no longer exists")
    else:
        repo.add(bill)
    log.info("Saved bill %s (%s) total %s", bill.bill_number, bill.id, fmt_money(bill.total_amount))
    return bill, warning
