# tests/conftest.py
# ---------------------------------------------------------------------
# Ground rules:
# - Every test gets its own SQLite file under tmp_path (schema via init_db)
# - The business-profile cache never touches the working directory
# - No secrets/env credentials leak in from the developer's shell
# - Network calls are monkeypatched in the tests that need them
# ---------------------------------------------------------------------

from datetime import date

import pytest

import config
from billing import new_draft
from db import SqliteStore
from records import BusinessProfile, Client, ClientRepository, ProductRepository

TODAY = date(2026, 3, 14)


@pytest.fixture(autouse=True)
def _isolated_config(tmp_path, monkeypatch):
    monkeypatch.setattr(config, "PROFILE_CACHE_PATH", str(tmp_path / "business_profile.local.json"))
    for var in ("APP_USERNAME", "APP_PASSWORD", "APPYFLOW_KEY_SECRET"):
        monkeypatch.delenv(var, raising=False)


# ---------- Store ----------
@pytest.fixture
def store(tmp_path):
    s = SqliteStore(str(tmp_path / "billing.db"))
    s.init_db()
    return s


# ---------- Sample records ----------
@pytest.fixture
def green_tea(store):
    return ProductRepository(store).create("Green Tea", "400")


@pytest.fixture
def masala_chai(store):
    return ProductRepository(store).create("Masala Chai", "250.50")


@pytest.fixture
def acme(store):
    client, warning = ClientRepository(store).create(
        Client(id="", name="Acme Traders", phone="9876543210", gstin="29ABCDE1234F1Z5")
    )
    assert warning is None
    return client


@pytest.fixture
def profile():
    return BusinessProfile(
        business_name="Sunrise Tea Co",
        address="12 MG Road, Bengaluru",
        gstin="29AAACS1234A1Z1",
        phone="080-40000000",
        email="accounts@sunrisetea.example",
        bank_name="State Bank of India",
        account_number="12345678901",
        ifsc_code="SBIN0000813",
    )


@pytest.fixture
def draft(store, acme, green_tea):
    """Acme Traders, 2 x Green Tea, CGST/SGST 2.5% each."""
    d = new_draft(store, today=TODAY)
    d.client_id = acme.id
    d.add_product(green_tea, 2)
    d.set_tax("cgst", "2.5")
    d.set_tax("sgst", "2.5")
    return d

