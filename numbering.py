# numbering.py
# Client ids (CL-NNN, strict) and invoice numbers (INV-YYYY-NNNN, operator-editable)

import re
import time
from datetime import date

from db import ConflictError
from loggers import get_logger

log = get_logger("billing.numbering")

CLIENT_PREFIX = "CL-"
_CLIENT_ID = re.compile(r"^CL-(\d+)$")
_INVOICE_NO = re.compile(r"^INV-(\d{4})-(\d+)$")


def next_client_id(existing_ids):
    """
    max(numeric suffix) + 1, zero-padded to three digits. Malformed ids are
    ignored; padding widens past CL-999 instead of wrapping.

    >>> next_client_id(["CL-001", "CL-003"])
    'CL-004'
    """
    highest = 0
    for cid in existing_ids:
        m = _CLIENT_ID.match(str(cid).strip())
        if m:
            highest = max(highest, int(m.group(1)))
    return f"{CLIENT_PREFIX}{highest + 1:03d}"


def fallback_client_id():
    return f"{CLIENT_PREFIX}T{int(time.time() * 1000)}"


def client_ids(store):
    rows = store.select("clients", columns=["id"], like={"id": CLIENT_PREFIX + "%"})
    return [r["id"] for r in rows]


def create_client(store, row, retries=1):
    """
    Insert a client row under the next CL-NNN id.

    A uniqueness conflict (another create won the race) recomputes the id
    and retries `retries` times; after that a timestamp id is used and a
    warning returned. Returns (saved_row, warning_or_None).
    """
    for attempt in range(retries + 1):
        cid = next_client_id(client_ids(store))
        try:
            return store.insert("clients", dict(row, id=cid)), None
        except ConflictError:
            log.warning("Client id %s already taken (attempt %d)", cid, attempt + 1)
    cid = fallback_client_id()
    saved = store.insert("clients", dict(row, id=cid))
    log.warning("Client saved under fallback id %s", cid)
    return saved, f"Could not allocate the next client number; saved as {cid}."


def next_invoice_number(existing, today=None):
    year = (today or date.today()).year
    highest = 0
    for number in existing:
        m = _INVOICE_NO.match(str(number).strip())
        if m and int(m.group(1)) == year:
            highest = max(highest, int(m.group(2)))
    return f"INV-{year}-{highest + 1:04d}"


def invoice_numbers(store, exclude_id=None):
    rows = store.select("bills", columns=["id", "bill_number"])
    return {r["bill_number"] for r in rows if r["id"] != exclude_id}


def resolve_invoice_number(store, number, generated, exclude_id=None, today=None):
    """
    Check an invoice number against the other saved bills.

    Never blocks the save. A generated number that collides is replaced by a
    fresh one; an operator-typed number that collides is kept with a warning.
    Returns (number, warning_or_None).
    """
    taken = invoice_numbers(store, exclude_id)
    number = (number or "").strip()
    if not number:
        return next_invoice_number(taken, today), None
    if number not in taken:
        return number, None
    if generated:
        fresh = next_invoice_number(taken, today)
        log.info("Generated invoice number %s collided, using %s", number, fresh)
        return fresh, f"Invoice number {number} was already used; saved as {fresh}."
    return number, f"Invoice number {number} is already used by another bill."
