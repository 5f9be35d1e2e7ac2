# csv_io.py
# Bulk import/export of products and clients (CSV or XLSX) with an explicit schema

import re
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation

import pandas as pd

from loggers import get_logger
import numbering
from records import (Client, ClientRepository, Product, ProductRepository, ValidationError,
                     new_id, now_iso)

log = get_logger("billing.csv")


@dataclass(frozen=True)
class Schema:
    kind: str
    columns: tuple
    required: tuple
    aliases: dict


PRODUCTS = Schema(
    kind="products",
    columns=("id", "name", "price", "date_added"),
    required=("name", "price"),
    aliases={
        "id": ("id", "productid"),
        "name": ("name", "product", "productname"),
        "price": ("price", "unitprice", "rate"),
        "date_added": ("dateadded", "date", "createdat"),
    },
)

CLIENTS = Schema(
    kind="clients",
    columns=("id", "name", "email", "phone", "address", "gstin", "fssai", "bank_account", "date_added"),
    required=("name",),
    aliases={
        "id": ("id", "clientid"),
        "name": ("name", "clientname", "company", "companyname", "businessname"),
        "email": ("email", "mail"),
        "phone": ("phone", "mobile", "phoneno"),
        "address": ("address", "addr"),
        "gstin": ("gstin", "gst", "gstno", "gstnumber", "taxid"),
        "fssai": ("fssai", "fssaino", "foodlicenseno"),
        "bank_account": ("bankaccount", "accountnumber"),
        "date_added": ("dateadded", "createdat"),
    },
)


def _key(header):
    return re.sub(r"[^a-z0-9]", "", str(header).lower())


def read_table(uploaded, filename=None):
    """DataFrame of strings from an uploaded .csv or .xlsx (path or file-like)."""
    name = (filename or getattr(uploaded, "name", "") or str(uploaded)).lower()
    if name.endswith(".xlsx"):
        df = pd.read_excel(uploaded, dtype=str)
    else:
        df = pd.read_csv(uploaded, dtype=str, keep_default_na=False)
    return df.fillna("")


def normalize_columns(df, schema):
    """
    Rename recognised headers to schema column names and drop the rest.
    Raises ValidationError when a required header is missing.
    """
    lookup = {}
    for column, names in schema.aliases.items():
        for n in names:
            lookup[n] = column
    mapping = {}
    for header in df.columns:
        column = lookup.get(_key(header))
        if column and column not in mapping.values():
            mapping[header] = column
    missing = [c for c in schema.required if c not in mapping.values()]
    if missing:
        raise ValidationError(f"{schema.kind} file is missing required column(s): {', '.join(missing)}")
    return df[list(mapping)].rename(columns=mapping)


@dataclass
class ImportReport:
    inserted: int = 0
    updated: int = 0
    errors: list = field(default_factory=list)
    warnings: list = field(default_factory=list)


def _records(df, schema, report):
    for idx, row in normalize_columns(df, schema).iterrows():
        line = idx + 2  # header is line 1
        rec = {c: str(row.get(c, "")).strip() for c in schema.columns if c in row.index}
        blank = [c for c in schema.required if not rec.get(c)]
        if blank:
            report.errors.append((line, f"missing {', '.join(blank)}"))
            continue
        if "price" in rec:
            try:
                price = Decimal(rec["price"].replace(",", ""))
            except InvalidOperation:
                price = None
            if price is None or not price.is_finite():
                report.errors.append((line, f"price {rec['price']!r} is not a number"))
                continue
            if price < 0:
                report.errors.append((line, "price cannot be negative"))
                continue
            rec["price"] = price
        yield rec


def import_products(store, df):
    """Upsert products by id; rows without an id get a new id and timestamp."""
    repo = ProductRepository(store)
    report = ImportReport()
    for rec in _records(df, PRODUCTS, report):
        existing = repo.get(rec["id"]) if rec.get("id") else None
        if existing:
            existing.name = rec["name"]
            existing.price = rec["price"]
            repo.save(existing)
            report.updated += 1
        else:
            repo.add(Product(id=rec.get("id") or new_id(), name=rec["name"], price=rec["price"],
                             date_added=rec.get("date_added") or now_iso()))
            report.inserted += 1
    log.info("Imported products: %d new, %d updated, %d rejected",
             report.inserted, report.updated, len(report.errors))
    return report


def import_clients(store, df):
    """Upsert clients by id; rows without an id get the next CL-NNN id and a timestamp."""
    repo = ClientRepository(store)
    report = ImportReport()
    for rec in _records(df, CLIENTS, report):
        existing = repo.get(rec["id"]) if rec.get("id") else None
        if existing:
            merged = existing.to_row()
            merged.update({k: v for k, v in rec.items() if v and k != "date_added"})
            repo.save(Client.from_row(merged))
            report.updated += 1
            continue
        rec["date_added"] = rec.get("date_added") or now_iso()
        if rec.get("id"):
            repo.add(Client.from_row(rec))
        else:
            rec.pop("id", None)
            _, warning = numbering.create_client(store, rec)
            if warning:
                report.warnings.append(warning)
        report.inserted += 1
    log.info("Imported clients: %d new, %d updated, %d rejected",
             report.inserted, report.updated, len(report.errors))
    return report


def export_frame(store, schema):
    if schema is PRODUCTS:
        rows = [p.to_row() for p in ProductRepository(store).list()]
    else:
        rows = [c.to_row() for c in ClientRepository(store).list()]
    if not rows:
        raise ValidationError(f"No {schema.kind} found to export.")
    return pd.DataFrame(rows, columns=list(schema.columns))


def export_csv(store, schema):
    """(filename, csv bytes) for the download button."""
    df = export_frame(store, schema)
    filename = f"{schema.kind}_export_{date.today().isoformat()}.csv"
    return filename, df.to_csv(index=False).encode("utf-8")
