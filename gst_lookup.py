# gst_lookup.py
# GSTIN helpers: state code, state label, and optional online detail lookup

import requests

import config
from loggers import get_logger

log = get_logger("billing.gst")

APPYFLOW_URL = "https://appyflow.in/api/verifyGST"

STATE_MAP = {
    "01": "JK", "02": "HP", "03": "PB", "04": "CH", "05": "UK", "06": "HR", "07": "DL", "08": "RJ",
    "09": "UP", "10": "BR", "11": "SK", "12": "AR", "13": "NL", "14": "MN", "15": "MZ", "16": "TR",
    "17": "ML", "18": "AS", "19": "WB", "20": "JH", "21": "OD", "22": "CG", "23": "MP", "24": "GJ",
    "26": "DNHDD", "27": "MH", "29": "KA", "30": "GA", "31": "LD", "32": "KL", "33": "TN", "34": "PY",
    "35": "AN", "36": "TS", "37": "AP", "38": "LA", "97": "OT",
}


def gst_state_code(gstin):
    """First two digits of a GSTIN, or '' when absent/malformed."""
    s = str(gstin or "").strip()
    if len(s) >= 2 and s[:2].isdigit():
        return s[:2]
    return ""


def state_label_from_gst(gstin):
    sc = gst_state_code(gstin)
    return STATE_MAP.get(sc, sc) if sc else ""


def pan_from_gstin(gstin):
    s = str(gstin or "").strip().upper()
    return s[2:12] if len(s) >= 12 else ""


def _address(info):
    pradr = info.get("pradr", {}) or {}
    a = pradr.get("addr", {}) or {}
    parts = []
    for k in ("bno", "bnm", "st", "loc", "city", "dst", "stcd", "pncd"):
        v = a.get(k)
        if v:
            parts.append(str(v))
    return ", ".join(parts)


def fetch_gst_details(gstin, timeout=8):
    """
    Look a GSTIN up to prefill the client form.

    Returns {"ok": True, "name", "address", "gstin", "pan", "state_code"} or
    {"ok": False, "error"}. Network and API failures are reported, not raised.
    """
    gstin = str(gstin or "").strip().upper()
    if not gstin:
        return {"ok": False, "error": "Empty GSTIN"}
    key = config.get_secret("appyflow", "key_secret", env="APPYFLOW_KEY_SECRET")
    if not key:
        return {"ok": False, "error": "API key missing in secrets or env var."}
    try:
        r = requests.get(APPYFLOW_URL, params={"key_secret": key, "gstNo": gstin}, timeout=timeout)
        r.raise_for_status()
        j = r.json()
    except (requests.RequestException, ValueError) as e:
        log.warning("GSTIN lookup failed for %s: %s", gstin, e)
        return {"ok": False, "error": f"Request failed: {e}"}
    if isinstance(j, dict) and ("taxpayerInfo" in j or j.get("error") is False):
        info = j.get("taxpayerInfo") or j
        return {
            "ok": True,
            "name": info.get("tradeNam") or info.get("lgnm") or "",
            "address": _address(info),
            "gstin": gstin,
            "pan": info.get("panNo") or pan_from_gstin(gstin),
            "state_code": gst_state_code(gstin),
        }
    msg = j.get("message") if isinstance(j, dict) else str(j)
    return {"ok": False, "error": msg or "API returned error"}
