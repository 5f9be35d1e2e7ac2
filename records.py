# records.py
# Entities (products, clients, business profile, bills) and the one generic
# repository every CRUD screen goes through.

import json
import os
import uuid
from dataclasses import asdict, dataclass, field, fields, replace
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

import config
from db import SchemaMismatchError
from loggers import get_logger
import numbering

log = get_logger("billing.records")


class ValidationError(Exception):
    """Input rejected before anything is written."""


def now_iso():
    return datetime.now().isoformat(timespec="seconds")


def new_id():
    return uuid.uuid4().hex[:12]


def to_decimal(value, name="value"):
    if isinstance(value, Decimal) and value.is_finite():
        return value
    try:
        number = Decimal(str(value).replace(",", "").strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{name} must be a number, got {value!r}")
    if not number.is_finite():
        raise ValidationError(f"{name} must be a finite number, got {value!r}")
    return number


def _text(value):
    return "" if value is None else str(value).strip()


# ---------------- Entities ----------------
@dataclass
class Product:
    id: str
    name: str
    price: Decimal
    date_added: str = ""

    @classmethod
    def from_row(cls, row):
        return cls(id=row["id"], name=row["name"], price=to_decimal(row["price"], "price"),
                   date_added=_text(row.get("date_added")))

    def to_row(self):
        return {"id": self.id, "name": self.name, "price": str(self.price), "date_added": self.date_added}


@dataclass
class Client:
    id: str
    name: str
    phone: str = ""
    email: str = ""
    address: str = ""
    gstin: str = ""
    fssai: str = ""
    bank_account: str = ""
    date_added: str = ""

    @classmethod
    def from_row(cls, row):
        names = {f.name for f in fields(cls)}
        return cls(**{k: _text(v) for k, v in row.items() if k in names})

    def to_row(self):
        return asdict(self)


@dataclass
class BusinessProfile:
    business_name: str = ""
    address: str = ""
    fssai_no: str = ""
    gstin: str = ""
    phone: str = ""
    email: str = ""
    bank_name: str = ""
    account_number: str = ""
    ifsc_code: str = ""
    branch_name: str = ""
    pan_no: str = ""

    @classmethod
    def from_row(cls, row):
        names = {f.name for f in fields(cls)}
        return cls(**{k: _text(v) for k, v in (row or {}).items() if k in names})

    def to_row(self):
        return asdict(self)


@dataclass(frozen=True)
class BillItem:
    """One invoice line, copied by value from the catalog. `amount` is always derived."""

    product_id: str
    name: str
    price: Decimal
    quantity: int = 1

    @property
    def amount(self):
        return self.price * self.quantity

    def with_quantity(self, quantity):
        return replace(self, quantity=max(1, int(quantity)))

    def to_dict(self):
        return {"productId": self.product_id, "name": self.name, "price": str(self.price),
                "quantity": self.quantity, "amount": str(self.amount)}

    @classmethod
    def from_dict(cls, d):
        return cls(product_id=str(d.get("productId", "")), name=str(d.get("name", "")),
                   price=to_decimal(d.get("price", "0"), "price"),
                   quantity=max(1, int(d.get("quantity", 1))))


def _rate(value):
    return None if value in (None, "") else Decimal(str(value))


@dataclass
class Bill:
    id: str
    bill_number: str
    date: date
    client_id: str
    client_name: str
    items: list = field(default_factory=list)
    due_date: date = None
    place: str = ""
    cgst_rate: Decimal = None
    sgst_rate: Decimal = None
    igst_rate: Decimal = None
    sub_total: Decimal = Decimal("0")
    cgst: Decimal = Decimal("0")
    sgst: Decimal = Decimal("0")
    igst: Decimal = Decimal("0")
    total_amount: Decimal = Decimal("0")
    watermark: bool = True
    created_at: str = ""

    @classmethod
    def from_row(cls, row):
        items = row.get("items") or "[]"
        if isinstance(items, str):
            items = json.loads(items)
        due = row.get("due_date")
        return cls(
            id=row["id"],
            bill_number=_text(row.get("bill_number")),
            date=date.fromisoformat(str(row["date"])[:10]),
            due_date=date.fromisoformat(str(due)[:10]) if due else None,
            place=_text(row.get("place")),
            client_id=_text(row.get("client_id")),
            client_name=_text(row.get("client_name")),
            items=[BillItem.from_dict(d) for d in items],
            cgst_rate=_rate(row.get("cgst_rate")),
            sgst_rate=_rate(row.get("sgst_rate")),
            igst_rate=_rate(row.get("igst_rate")),
            sub_total=Decimal(str(row.get("sub_total") or "0")),
            cgst=Decimal(str(row.get("cgst") or "0")),
            sgst=Decimal(str(row.get("sgst") or "0")),
            igst=Decimal(str(row.get("igst") or "0")),
            total_amount=Decimal(str(row.get("total_amount") or "0")),
            watermark=bool(int(row.get("watermark") if row.get("watermark") is not None else 1)),
            created_at=_text(row.get("created_at")),
        )

    def to_row(self):
        def opt(v):
            return None if v is None else str(v)
        return {
            "id": self.id,
            "bill_number": self.bill_number,
            "place": self.place,
            "date": self.date.isoformat(),
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "client_id": self.client_id,
            "client_name": self.client_name,
            "items": json.dumps([i.to_dict() for i in self.items]),
            "sub_total": str(self.sub_total),
            "cgst_rate": opt(self.cgst_rate),
            "sgst_rate": opt(self.sgst_rate),
            "igst_rate": opt(self.igst_rate),
            "cgst": str(self.cgst),
            "sgst": str(self.sgst),
            "igst": str(self.igst),
            "total_amount": str(self.total_amount),
            "watermark": 1 if self.watermark else 0,
            "created_at": self.created_at,
        }


# ---------------- Validators ----------------
def validate_product(p):
    if not _text(p.name):
        raise ValidationError("Product name required")
    if to_decimal(p.price, "price") < 0:
        raise ValidationError("Price cannot be negative")


def validate_client(c):
    if not _text(c.name):
        raise ValidationError("Client name required")


# ---------------- Generic repository ----------------
class Repository:
    """
    CRUD for one table. The entity class supplies from_row/to_row, the
    validator runs before every write.
    """

    def __init__(self, store, table, entity, validate=None, order="name"):
        self.store = store
        self.table = table
        self.entity = entity
        self.validate = validate
        self.order = order

    def list(self):
        return [self.entity.from_row(r) for r in self.store.select(self.table, order=self.order)]

    def get(self, record_id):
        rows = self.store.select(self.table, filters={"id": record_id}, limit=1)
        return self.entity.from_row(rows[0]) if rows else None

    def add(self, obj):
        if self.validate:
            self.validate(obj)
        self.store.insert(self.table, obj.to_row())
        return obj

    def save(self, obj):
        if self.validate:
            self.validate(obj)
        row = obj.to_row()
        self.store.update(self.table, row, {"id": row["id"]})
        return obj

    def remove(self, record_id):
        return self.store.delete(self.table, {"id": record_id})


class ProductRepository(Repository):
    def __init__(self, store):
        super().__init__(store, "products", Product, validate_product)

    def create(self, name, price):
        return self.add(Product(id=new_id(), name=_text(name), price=to_decimal(price, "price"),
                                date_added=now_iso()))


class ClientRepository(Repository):
    def __init__(self, store):
        super().__init__(store, "clients", Client, validate_client)

    def create(self, client):
        """
        Insert with the next CL-NNN id. Returns (client, warning); warning is
        set only when the timestamp fallback id had to be used.
        """
        self.validate(client)
        row = client.to_row()
        row.pop("id", None)
        row["date_added"] = row.get("date_added") or now_iso()
        saved, warning = numbering.create_client(self.store, row)
        return Client.from_row(saved), warning


class BillRepository(Repository):
    def __init__(self, store):
        super().__init__(store, "bills", Bill, order="date")

    def list(self):
        rows = self.store.select(self.table, order="date", desc=True)
        bills = [Bill.from_row(r) for r in rows]
        # same-day bills: newest first
        bills.sort(key=lambda b: (b.date, b.created_at), reverse=True)
        return bills


class BusinessProfileRepository:
    """
    The single business/bank profile row. Saving reads the current row and
    updates it, or inserts the first one. If the store rejects the write for
    a missing column, the profile goes to a local JSON cache instead.
    """

    table = "bank_details"
    default_id = "profile"

    def __init__(self, store, cache_path=None):
        self.store = store
        self.cache_path = cache_path or config.PROFILE_CACHE_PATH

    def _current_row(self):
        rows = self.store.select(self.table, limit=1)
        return rows[0] if rows else None

    def _read_cache(self):
        if not os.path.exists(self.cache_path):
            return {}
        with open(self.cache_path, "r", encoding="utf-8") as f:
            return json.load(f)

    def _clear_cache(self):
        if os.path.exists(self.cache_path):
            os.remove(self.cache_path)
            log.info("Profile written to the store, local cache %s removed", self.cache_path)

    def load(self):
        """
        Stored row overlaid with the pending local cache, if any; None if
        neither exists. The cache only lives until the next successful save.
        """
        row = self._current_row() or {}
        cached = self._read_cache()
        if not row and not cached:
            return None
        return BusinessProfile.from_row(dict(row, **cached))

    def save(self, profile):
        """Upsert the singleton. Returns a warning string when the local cache was used, else None."""
        payload = profile.to_row()
        try:
            existing = self._current_row()
            if existing:
                self.store.update(self.table, payload, {"id": existing["id"]})
            else:
                self.store.insert(self.table, dict(payload, id=self.default_id))
        except SchemaMismatchError as e:
            log.warning("bank_details schema mismatch, caching profile locally: %s", e)
            os.makedirs(os.path.dirname(os.path.abspath(self.cache_path)), exist_ok=True)
            with open(self.cache_path, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
            return ("Store schema mismatch: profile saved to the local cache instead. "
                    "Please add the missing columns to the bank_details table.")
        self._clear_cache()
        return None


# ---------------- List filters ----------------
def search_products(products, term):
    term = _text(term).lower()
    return [p for p in products if term in p.name.lower()]


def search_clients(clients, term):
    term = _text(term).lower()
    return [c for c in clients if term in (c.name or "").lower() or term in (c.email or "").lower()]


def filter_bills(bills, term="", on_date=None):
    """Match client name or invoice number (case-insensitive), optionally one issue date."""
    term = _text(term).lower()
    out = []
    for b in bills:
        if term and term not in b.client_name.lower() and term not in b.bill_number.lower():
            continue
        if on_date and b.date != on_date:
            continue
        out.append(b)
    return out


def dashboard_stats(store, recent=5):
    bills = BillRepository(store).list()
    return {
        "products": store.count("products"),
        "clients": store.count("clients"),
        "bills": len(bills),
        "revenue": sum((b.total_amount for b in bills), Decimal("0")),
        "recent": bills[:recent],
    }
