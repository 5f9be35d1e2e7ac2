# export.py
# Render the invoice once, hand the same PDF to the print dialog and the download button

import base64
import re
from contextlib import contextmanager
from dataclasses import dataclass

from invoice_doc import render_pdf
from loggers import get_logger

log = get_logger("billing.export")

A4_WIDTH_MM = 210
A4_HEIGHT_MM = 297
PRINT_SETTLE_MS = 800


class ExportError(Exception):
    """Rendering, printing or download preparation failed."""


class BusyError(Exception):
    """A save/delete/export is already running for this form."""


@contextmanager
def busy(state, key):
    """
    Hold a busy flag in `state` (st.session_state or any dict) while the
    block runs. A second entry while the flag is up raises BusyError; the
    flag is cleared however the block ends.
    """
    if state.get(key):
        raise BusyError("Please wait, the previous action is still running.")
    state[key] = True
    try:
        yield
    finally:
        state[key] = False


def invoice_filename(bill_number, ext="pdf"):
    """Invoice_<number>.pdf, with anything unsafe in a filename replaced by '_'."""
    safe = re.sub(r"[^A-Za-z0-9._-]+", "_", str(bill_number or "").strip()).strip("_.")
    return f"Invoice_{safe or 'draft'}.{ext}"


@dataclass(frozen=True)
class ExportResult:
    filename: str
    pdf: bytes
    mime: str = "application/pdf"


def export_invoice(doc, logo_path=None, signature_path=None):
    """Render the document to PDF bytes. Any failure surfaces as ExportError, never a blank file."""
    try:
        pdf = render_pdf(doc, logo_path=logo_path, signature_path=signature_path)
    except Exception as e:
        log.exception("Rendering invoice %s failed", doc.bill_number)
        raise ExportError(f"Could not render invoice {doc.bill_number}: {e}") from e
    if not pdf or not pdf.startswith(b"%PDF"):
        raise ExportError(f"Renderer returned no document for invoice {doc.bill_number}")
    return ExportResult(invoice_filename(doc.bill_number), pdf)


def print_page_html(result, auto_print=True, settle_ms=PRINT_SETTLE_MS):
    """
    HTML for streamlit.components.v1.html: the PDF in an A4-sized frame.
    With auto_print the print dialog opens once the frame has loaded and
    `settle_ms` has passed, with no further click.
    """
    payload = base64.b64encode(result.pdf).decode("ascii")
    trigger = "true" if auto_print else "false"
    return f"""
<div style="width:{A4_WIDTH_MM}mm;max-width:100%;height:{A4_HEIGHT_MM}mm;margin:0 auto;border:1px solid #ddd">
  <iframe id="invoice-frame" title="{result.filename}" style="width:100%;height:100%;border:0"></iframe>
</div>
<div style="text-align:center;margin-top:8px">
  <button id="invoice-print" style="padding:6px 18px">Print</button>
  <span id="invoice-print-error" style="color:#b00020;margin-left:8px"></span>
</div>
<script>
(function() {{
  const raw = atob("{payload}");
  const bytes = new Uint8Array(raw.length);
  for (let i = 0; i < raw.length; i++) bytes[i] = raw.charCodeAt(i);
  const url = URL.createObjectURL(new Blob([bytes], {{type: "{result.mime}"}}));
  const frame = document.getElementById("invoice-frame");
  function doPrint() {{
    try {{
      frame.contentWindow.focus();
      frame.contentWindow.print();
    }} catch (err) {{
      document.getElementById("invoice-print-error").textContent = "Print failed: " + err;
    }}
  }}
  document.getElementById("invoice-print").addEventListener("click", doPrint);
  if ({trigger}) {{
    frame.addEventListener("load", function() {{ setTimeout(doPrint, {int(settle_ms)}); }}, {{once: true}});
  }}
  frame.src = url;
}})();
</script>
"""
