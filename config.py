# config.py
# Constants and secrets lookup for the billing panel

import os

import streamlit as st

# ---------------- Constants ----------------
APP_TITLE = "GST Billing Panel"
APP_TAGLINE = "Products, clients and GST tax invoices"
DATA_DIR = os.getenv("BILLING_DATA_DIR", "data")
DB_PATH = os.path.join(DATA_DIR, "billing.db")
ASSETS_DIR = "assets"
PROFILE_CACHE_PATH = os.path.join(DATA_DIR, "business_profile.local.json")

ASSETS = {
    "logo": os.path.join(ASSETS_DIR, "logo.png"),
    "signature": os.path.join(ASSETS_DIR, "signature.png"),
}

# HSN code printed against every line item (0902 = tea)
HSN_CODE = os.getenv("BILLING_HSN_CODE", "0902")
DEFAULT_DUE_DAYS = 15
IDLE_TIMEOUT_MINUTES = 30
DEFAULT_PLACE = ""

LEGAL_NOTES = (
    "This is a computer-generated invoice.",
    "Goods once sold will not be taken back.",
    "All disputes are subject to local jurisdiction only.",
)


def get_secret(section, key, env=None, default=None):
    """
    Read a value from st.secrets, falling back to an environment variable.

    Args:
        section: secrets.toml table name, e.g. "app"
        key: key inside the table
        env: environment variable consulted when the secret is missing
        default: value returned when neither is set
    """
    try:
        return st.secrets[section][key]
    except Exception:
        pass
    if env:
        value = os.getenv(env)
        if value is not None:
            return value
    return default


def get_section(section):
    """Return a whole secrets table as a plain dict, or None."""
    try:
        return dict(st.secrets[section])
    except Exception:
        return None
