# invoice_app.py
# GST Billing Panel: products, clients, business profile and GST tax invoices
#
# Requirements:
# pip install -e .   (streamlit pandas reportlab num2words openpyxl requests mysql-connector-python Pillow)

import traceback

import pandas as pd
import streamlit as st
import streamlit.components.v1 as components

import config
import csv_io
from billing import (TaxFields, draft_from_bill, draft_to_bill, fmt_money, new_draft, load_draft, save_bill,
                     suggest_tax_mode, tax_lines)
from db import StoreError, get_store
from export import BusyError, ExportError, busy, export_invoice, print_page_html
from gst_lookup import fetch_gst_details, state_label_from_gst
from invoice_doc import DocumentMode, available_actions, build_document, render_html
from records import (BillRepository, BusinessProfile, BusinessProfileRepository, Client, ClientRepository,
                     Product, ProductRepository, ValidationError, dashboard_stats, filter_bills, search_clients,
                     search_products, to_decimal)
from session import AUTHENTICATED, EXPIRED, SessionContext, ViewGuard, configured_credentials


PAGES = ["Dashboard", "Products", "Clients", "Business Profile", "Create Bill", "Bills", "Data Management"]

SAVE_BUSY = "_saving_bill"
DELETE_BUSY = "_deleting"
EXPORT_BUSY = "_exporting"
PRINT_FLAG = "_print_requested"

ACTION_LABELS = {
    "preview": "Preview",
    "save": "Save Bill",
    "back_to_editor": "Back to Editor",
    "print": "Print",
    "download": "Download PDF",
    "toggle_watermark": "Toggle Watermark",
    "back_to_list": "Back to Bills",
    "edit": "Edit",
}


# ---------------- Helpers ----------------
def safe_rerun():
    st.rerun()


def flash(kind, message):
    """Queue a message that survives the next rerun (callbacks run before the page draws)."""
    st.session_state.setdefault("_flash", []).append((kind, message))


def show_flashes():
    for kind, message in st.session_state.pop("_flash", []):
        getattr(st, kind)(message)


def rs(value):
    return f"Rs. {fmt_money(value)}"


def client_label(c):
    stlbl = f" -{state_label_from_gst(c.gstin)}" if c.gstin else ""
    gst_part = f" | {c.gstin}{stlbl}" if c.gstin else ""
    return f"{c.name} ({c.id}){gst_part}"


def bill_summary(b):
    return {
        "Invoice No": b.bill_number,
        "Client": b.client_name,
        "Date": b.date.strftime("%d-%m-%Y"),
        "Due": b.due_date.strftime("%d-%m-%Y") if b.due_date else "",
        "Total": rs(b.total_amount),
    }


def document_for(store, bill):
    client = ClientRepository(store).get(bill.client_id) if bill.client_id else None
    profile = BusinessProfileRepository(store).load()
    return build_document(bill, client, profile)


def prepare_export(doc):
    """Render the PDF once for both the download button and the print frame."""
    try:
        with busy(st.session_state, EXPORT_BUSY):
            with st.spinner("Preparing invoice..."):
                return export_invoice(doc)
    except (ExportError, BusyError) as e:
        st.error(str(e))
        return None


def show_print_frame(result, guard):
    if guard.take(PRINT_FLAG) and result is not None:
        components.html(print_page_html(result, auto_print=True), height=1180, scrolling=True)


def action_bar(mode, key, handlers, result=None):
    """One button per action allowed in `mode`; the document below never changes with it."""
    actions = available_actions(mode)
    cols = st.columns(len(actions))
    for col, action in zip(cols, actions):
        with col:
            label = ACTION_LABELS[action]
            if action == "download":
                if result is None:
                    st.button(label, key=f"{key}_download", disabled=True)
                else:
                    st.download_button(label, result.pdf, file_name=result.filename, mime=result.mime,
                                       key=f"{key}_download")
                continue
            disabled = action == "save" and st.session_state.get(SAVE_BUSY, False)
            if action == "print" and result is None:
                disabled = True
            st.button(label, key=f"{key}_{action}", on_click=handlers[action], disabled=disabled)


def request_print(guard):
    guard.mark(PRINT_FLAG)


# ---------------- Auth ----------------
def get_session():
    if "session" not in st.session_state:
        st.session_state.session = SessionContext()
    return st.session_state.session


@st.fragment(run_every="60s")
def idle_watch():
    # periodic tick; a full rerun takes the user back to the login form
    if get_session().tick() == EXPIRED:
        st.rerun()


def check_password():
    ctx = get_session()
    state = ctx.tick()
    username, password = configured_credentials()

    # If no password is set, allow access without authentication
    if password is None:
        if not ctx.authenticated:
            ctx.login(username, None, credentials=(username, None))
        ctx.touch()
        return True

    if state == AUTHENTICATED:
        ctx.touch()
        st.sidebar.markdown(f"**Logged in as {ctx.user}**")
        if st.sidebar.button("Logout"):
            ctx.logout()
            st.session_state.pop("draft", None)
            safe_rerun()
        idle_watch()
        return True

    if state == EXPIRED:
        st.warning(f"Session expired after {config.IDLE_TIMEOUT_MINUTES} minutes of inactivity. "
                   "Please log in again.")
        ctx.acknowledge_expiry()
        st.session_state.pop("draft", None)

    st.write("**Enter your credentials to continue**")
    with st.form("login_form"):
        user = st.text_input("Username", value=username)
        pwd = st.text_input("Password", type="password")
        submitted = st.form_submit_button("Login")
    if submitted:
        if ctx.login(user, pwd, credentials=(username, password)):
            safe_rerun()
        else:
            st.error("Incorrect username or password")
    return False


# ---------------- Dashboard ----------------
def page_dashboard(store, guard):
    st.header("Dashboard")
    stats = dashboard_stats(store)
    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Products", stats["products"])
    c2.metric("Clients", stats["clients"])
    c3.metric("Bills", stats["bills"])
    c4.metric("Revenue", rs(stats["revenue"]))

    st.subheader("Recent Bills")
    if not stats["recent"]:
        st.info("No bills yet. Create one from 'Create Bill'.")
    else:
        st.dataframe(pd.DataFrame([bill_summary(b) for b in stats["recent"]]), hide_index=True)


# ---------------- Products ----------------
def handle_delete_product(store, product_id):
    try:
        with busy(st.session_state, DELETE_BUSY):
            ProductRepository(store).remove(product_id)
    except (BusyError, StoreError) as e:
        flash("error", f"Delete error: {e}")
    else:
        flash("success", "Product deleted")


def page_products(store, guard):
    st.header("Products")
    repo = ProductRepository(store)
    term = st.text_input("Search products by name", key="product_search")
    products = search_products(repo.list(), term)
    if products:
        st.dataframe(pd.DataFrame([{"Name": p.name, "Price": rs(p.price), "Added": p.date_added}
                                   for p in products]), hide_index=True)
    else:
        st.info("No products found.")

    st.subheader("Add New Product")
    with st.form("add_product_form", clear_on_submit=True):
        name = st.text_input("Product Name")
        price = st.text_input("Unit Price (Rs.)", value="0")
        if st.form_submit_button("Save Product"):
            try:
                p = repo.create(name, price)
            except (ValidationError, StoreError) as e:
                st.error(f"Save error: {e}")
            else:
                flash("success", f"Product '{p.name}' saved")
                safe_rerun()

    st.subheader("Edit / Delete Product")
    all_products = {p.id: p for p in repo.list()}
    sel = st.selectbox("Select product", options=["--select--"] + list(all_products),
                       format_func=lambda pid: pid if pid == "--select--" else
                       f"{all_products[pid].name} | {rs(all_products[pid].price)}")
    if sel == "--select--":
        return
    p = all_products[sel]
    with st.form("edit_product_form"):
        name2 = st.text_input("Product Name", value=p.name)
        price2 = st.text_input("Unit Price (Rs.)", value=str(p.price))
        if st.form_submit_button("Update Product"):
            try:
                repo.save(Product(id=p.id, name=name2.strip(), price=to_decimal(price2, "price"),
                                  date_added=p.date_added))
            except (ValidationError, StoreError) as e:
                st.error(f"Update error: {e}")
            else:
                flash("success", "Product updated. Saved bills keep the price they were billed at.")
                safe_rerun()
    st.button("Delete Product", key="delete_product", on_click=handle_delete_product, args=(store, p.id),
              disabled=st.session_state.get(DELETE_BUSY, False))


# ---------------- Clients ----------------
CLIENT_FIELDS = ("name", "phone", "email", "address", "gstin", "fssai", "bank_account")
CLIENT_LABELS = {
    "name": "Client / Company Name",
    "phone": "Phone",
    "email": "Email (optional)",
    "address": "Address",
    "gstin": "GSTIN (optional)",
    "fssai": "FSSAI No (optional)",
    "bank_account": "Bank Account (optional)",
}


def handle_fetch_gst():
    gstin = st.session_state.get("gst_fetch_input", "").strip()
    if not gstin:
        flash("error", "Enter GSTIN")
        return
    res = fetch_gst_details(gstin)
    if not res.get("ok"):
        flash("error", f"Fetch error: {res.get('error')}")
        return
    st.session_state.new_client_name = res.get("name", "")
    st.session_state.new_client_address = res.get("address", "")
    st.session_state.new_client_gstin = res.get("gstin", "")
    flash("success", "Fetched, verify and Save")


def handle_delete_client(store, client_id):
    try:
        with busy(st.session_state, DELETE_BUSY):
            ClientRepository(store).remove(client_id)
    except (BusyError, StoreError) as e:
        flash("error", f"Delete error: {e}")
    else:
        flash("success", f"Client {client_id} deleted")


def page_clients(store, guard):
    st.header("Clients")
    repo = ClientRepository(store)
    term = st.text_input("Search clients by name or email", key="client_search")
    clients = search_clients(repo.list(), term)
    if clients:
        st.dataframe(pd.DataFrame([{"ID": c.id, "Name": c.name, "GSTIN": c.gstin,
                                    "State": state_label_from_gst(c.gstin), "Phone": c.phone,
                                    "Email": c.email} for c in clients]), hide_index=True)
    else:
        st.info("No clients found.")

    st.subheader("Fetch GST (API)")
    c1, c2 = st.columns([3, 1])
    c1.text_input("GSTIN to fetch (for autofill)", key="gst_fetch_input", max_chars=15)
    c2.button("Fetch GST Details", on_click=handle_fetch_gst)

    st.subheader("Add New Client")
    if st.session_state.pop("_clear_client_form", False):
        for f in CLIENT_FIELDS:
            st.session_state.pop(f"new_client_{f}", None)
    with st.form("add_client_form"):
        values = {}
        for f in CLIENT_FIELDS:
            widget = st.text_area if f == "address" else st.text_input
            values[f] = widget(CLIENT_LABELS[f], key=f"new_client_{f}")
        if st.form_submit_button("Save Client"):
            try:
                client, warning = repo.create(Client(id="", **values))
            except (ValidationError, StoreError) as e:
                st.error(f"Save error: {e}")
            else:
                st.session_state._clear_client_form = True
                flash("success", f"Client '{client.name}' saved as {client.id}")
                if warning:
                    flash("warning", warning)
                safe_rerun()

    st.subheader("Edit / Delete Client")
    all_clients = {c.id: c for c in repo.list()}
    sel = st.selectbox("Select client", options=["--select--"] + list(all_clients),
                       format_func=lambda cid: cid if cid == "--select--" else client_label(all_clients[cid]))
    if sel == "--select--":
        return
    c = all_clients[sel]
    with st.form("edit_client_form"):
        edited = {}
        for f in CLIENT_FIELDS:
            widget = st.text_area if f == "address" else st.text_input
            edited[f] = widget(CLIENT_LABELS[f], value=getattr(c, f))
        st.text_input("State (from GSTIN)", value=state_label_from_gst(edited["gstin"]), disabled=True)
        if st.form_submit_button("Update Client"):
            try:
                repo.save(Client(id=c.id, date_added=c.date_added, **edited))
            except (ValidationError, StoreError) as e:
                st.error(f"Update error: {e}")
            else:
                flash("success", "Client updated")
                safe_rerun()
    st.button("Delete Client", key="delete_client", on_click=handle_delete_client, args=(store, c.id),
              disabled=st.session_state.get(DELETE_BUSY, False))


# ---------------- Business profile ----------------
PROFILE_LABELS = {
    "business_name": "Business Name",
    "address": "Address",
    "fssai_no": "FSSAI No",
    "gstin": "GSTIN",
    "phone": "Phone",
    "email": "Email",
    "bank_name": "Bank Name",
    "account_number": "Account Number",
    "ifsc_code": "IFSC Code",
    "branch_name": "Branch",
    "pan_no": "PAN",
}


def page_profile(store, guard):
    st.header("Business Profile")
    st.caption("Printed on every invoice. Bank fields left blank read 'Not provided'.")
    repo = BusinessProfileRepository(store)
    profile = repo.load() or BusinessProfile()
    with st.form("profile_form"):
        values = {}
        left, right = st.columns(2)
        for i, (f, label) in enumerate(PROFILE_LABELS.items()):
            col = left if i < 6 else right
            widget = col.text_area if f == "address" else col.text_input
            values[f] = widget(label, value=getattr(profile, f))
        if st.form_submit_button("Save Profile"):
            try:
                warning = repo.save(BusinessProfile(**{k: v.strip() for k, v in values.items()}))
            except StoreError as e:
                st.error(f"Save error: {e}")
            else:
                if warning:
                    flash("warning", warning)
                else:
                    flash("success", "Business profile saved")
                safe_rerun()


# ---------------- Bill editor ----------------
def open_draft(draft, mode=DocumentMode.EDIT):
    """Make `draft` the one being edited and overwrite every editor widget with its values."""
    for key in [k for k in st.session_state if str(k).startswith("qty_")]:
        del st.session_state[key]
    st.session_state.draft = draft
    st.session_state.editor_mode = mode
    seed_editor_state(draft, force=True)


def seed_editor_state(draft, force=False):
    values = {
        "draft_client": draft.client_id,
        "draft_number": draft.bill_number,
        "draft_place": draft.place,
        "draft_date": draft.issue_date,
        "draft_due": draft.due_date,
        "draft_watermark": draft.watermark,
        "tax_cgst": draft.tax.cgst,
        "tax_sgst": draft.tax.sgst,
        "tax_igst": draft.tax.igst,
    }
    values.update({f"qty_{i.product_id}": i.quantity for i in draft.items})
    for key, value in values.items():
        if force or key not in st.session_state:
            st.session_state[key] = value


def sync_tax_widgets(draft):
    st.session_state.tax_cgst = draft.tax.cgst
    st.session_state.tax_sgst = draft.tax.sgst
    st.session_state.tax_igst = draft.tax.igst


def on_tax_change(name):
    draft = st.session_state.draft
    try:
        draft.set_tax(name, st.session_state[f"tax_{name}"])
    except ValidationError as e:
        flash("error", str(e))
    sync_tax_widgets(draft)


def on_field_change(key, attr):
    setattr(st.session_state.draft, attr, st.session_state[key])


def on_number_change():
    st.session_state.draft.set_bill_number(st.session_state.draft_number.strip())


def on_qty_change(product_id):
    item = st.session_state.draft.set_quantity(product_id, st.session_state[f"qty_{product_id}"])
    if item is not None:
        st.session_state[f"qty_{product_id}"] = item.quantity


def handle_step(product_id, delta):
    draft = st.session_state.draft
    item = draft.increment(product_id) if delta > 0 else draft.decrement(product_id)
    if item is not None:
        st.session_state[f"qty_{product_id}"] = item.quantity


def handle_remove_item(product_id):
    st.session_state.draft.remove_item(product_id)
    st.session_state.pop(f"qty_{product_id}", None)


def handle_add_product(products):
    pid = st.session_state.get("add_product_id")
    if not pid or pid not in products:
        flash("error", "Select a product to add")
        return
    item = st.session_state.draft.add_product(products[pid], st.session_state.get("add_qty", 1))
    st.session_state[f"qty_{pid}"] = item.quantity


def handle_suggest_tax(store):
    draft = st.session_state.draft
    client = ClientRepository(store).get(draft.client_id) if draft.client_id else None
    profile = BusinessProfileRepository(store).load()
    mode = suggest_tax_mode(profile.gstin if profile else "", client.gstin if client else "")
    draft.tax = TaxFields.from_mode(mode)
    sync_tax_widgets(draft)


def handle_new_bill(store):
    open_draft(new_draft(store))


def handle_save(store):
    draft = st.session_state.draft
    try:
        with busy(st.session_state, SAVE_BUSY):
            bill, warning = save_bill(store, draft)
    except (BusyError, ValidationError) as e:
        flash("error", str(e))
        return
    except StoreError as e:
        flash("error", f"Error saving bill: {e}")
        return
    open_draft(draft_from_bill(bill), mode=DocumentMode.PREVIEW)
    flash("success", f"Bill {bill.bill_number} saved")
    if warning:
        flash("warning", warning)


def set_editor_mode(mode):
    st.session_state.editor_mode = mode


def toggle_watermark():
    draft = st.session_state.draft
    draft.watermark = not draft.watermark
    st.session_state.draft_watermark = draft.watermark


def edit_items(draft, products):
    st.subheader("Items")
    if products:
        c1, c2, c3 = st.columns([3, 1, 1])
        c1.selectbox("Product", options=list(products), key="add_product_id",
                     format_func=lambda pid: f"{products[pid].name} | {rs(products[pid].price)}")
        c2.number_input("Qty", min_value=1, step=1, value=1, key="add_qty")
        c3.button("Add to Bill", on_click=handle_add_product, args=(products,))
    else:
        st.info("No products yet. Add some under 'Products'.")

    if not draft.items:
        st.write("No items added.")
        return
    head = st.columns([0.5, 3, 1.2, 1.5, 0.5, 0.5, 1.5, 1])
    for col, title in zip(head, ["#", "Product", "Price", "Qty", "", "", "Amount", ""]):
        col.markdown(f"**{title}**")
    for n, item in enumerate(draft.items, start=1):
        pid = item.product_id
        c = st.columns([0.5, 3, 1.2, 1.5, 0.5, 0.5, 1.5, 1])
        c[0].write(n)
        c[1].write(item.name)
        c[2].write(fmt_money(item.price))
        c[3].number_input("Qty", min_value=1, step=1, key=f"qty_{pid}", label_visibility="collapsed",
                          on_change=on_qty_change, args=(pid,))
        c[4].button("−", key=f"dec_{pid}", on_click=handle_step, args=(pid, -1))
        c[5].button("+", key=f"inc_{pid}", on_click=handle_step, args=(pid, 1))
        c[6].write(fmt_money(item.amount))
        c[7].button("Remove", key=f"rm_{pid}", on_click=handle_remove_item, args=(pid,))


def edit_taxes(store):
    st.subheader("Taxes (%)")
    st.caption("Use CGST + SGST for intrastate supply or IGST for interstate; entering one clears the other.")
    c1, c2, c3, c4 = st.columns(4)
    for col, name in zip((c1, c2, c3), ("cgst", "sgst", "igst")):
        col.text_input(name.upper(), key=f"tax_{name}", on_change=on_tax_change, args=(name,))
    c4.write("")
    c4.button("Suggest from GSTIN", on_click=handle_suggest_tax, args=(store,))


def show_totals(draft):
    totals = draft.totals()
    lines = [("Sub Total", totals.sub_total)] + tax_lines(draft.tax.mode(), totals)
    for label, amount in lines:
        st.write(f"{label}: {rs(amount)}")
    st.metric("Grand Total", f"Rs. {totals.rounded_total:,}.00")
    st.caption(totals.in_words)


def page_create_bill(store, guard):
    if "draft" not in st.session_state:
        open_draft(new_draft(store))
    draft = st.session_state.draft
    seed_editor_state(draft)
    mode = st.session_state.get("editor_mode", DocumentMode.EDIT)
    st.header(f"Edit Bill {draft.bill_number}" if draft.bill_id else "Create Bill")

    clients = {c.id: c for c in ClientRepository(store).list()}
    client = clients.get(draft.client_id)

    if mode == DocumentMode.PREVIEW:
        doc = build_document(draft_to_bill(draft, client), client, BusinessProfileRepository(store).load())
        result = prepare_export(doc)
        action_bar(mode, "preview", {
            "back_to_editor": lambda: set_editor_mode(DocumentMode.EDIT),
            "save": lambda: handle_save(store),
            "print": lambda: request_print(guard),
            "toggle_watermark": toggle_watermark,
        }, result)
        show_print_frame(result, guard)
        st.markdown(render_html(doc), unsafe_allow_html=True)
        return

    if draft.client_id and draft.client_id not in clients:
        st.warning(f"Client {draft.client_id} no longer exists; select another.")
        draft.client_id = ""
        st.session_state.draft_client = ""

    st.button("New Bill", on_click=handle_new_bill, args=(store,))
    c1, c2 = st.columns(2)
    with c1:
        st.selectbox("Client", options=[""] + list(clients), key="draft_client",
                     format_func=lambda cid: "--select--" if not cid else client_label(clients[cid]),
                     on_change=on_field_change, args=("draft_client", "client_id"))
        st.text_input("Invoice No", key="draft_number", on_change=on_number_change)
        st.text_input("Place of Supply", key="draft_place", on_change=on_field_change,
                      args=("draft_place", "place"))
    with c2:
        st.date_input("Invoice Date", key="draft_date", on_change=on_field_change, args=("draft_date", "issue_date"))
        st.date_input("Due Date", key="draft_due", on_change=on_field_change, args=("draft_due", "due_date"))
        st.checkbox("Watermark with business name", key="draft_watermark", on_change=on_field_change,
                    args=("draft_watermark", "watermark"))

    edit_items(draft, {p.id: p for p in ProductRepository(store).list()})
    edit_taxes(store)
    show_totals(draft)

    action_bar(DocumentMode.EDIT, "editor", {
        "preview": lambda: set_editor_mode(DocumentMode.PREVIEW),
        "save": lambda: handle_save(store),
    })


# ---------------- Bill list ----------------
def open_bill(guard, bill_id, auto_print=False):
    st.session_state.bill_view = bill_id
    guard.enter(view_name("Bills"))
    if auto_print:
        guard.mark(PRINT_FLAG)


def close_bill():
    st.session_state.bill_view = None


def edit_bill(store, bill_id):
    try:
        draft = load_draft(store, bill_id)
    except StoreError as e:
        flash("error", str(e))
        return
    open_draft(draft)
    st.session_state.bill_view = None
    st.session_state.page = "Create Bill"


def handle_delete_bill(store, bill_id):
    try:
        with busy(st.session_state, DELETE_BUSY):
            BillRepository(store).remove(bill_id)
    except (BusyError, StoreError) as e:
        flash("error", f"Delete error: {e}")
    else:
        flash("success", "Bill deleted")
    st.session_state.confirm_delete = None


def show_bill(store, guard, bill_id):
    bill = BillRepository(store).get(bill_id)
    if bill is None:
        st.error("Bill not found; it may have been deleted.")
        st.button("Back to Bills", on_click=close_bill)
        return
    st.header(f"Invoice {bill.bill_number}")
    doc = document_for(store, bill)
    result = prepare_export(doc)
    action_bar(DocumentMode.VIEW, "view", {
        "back_to_list": close_bill,
        "edit": lambda: edit_bill(store, bill.id),
        "print": lambda: request_print(guard),
    }, result)
    show_print_frame(result, guard)
    st.markdown(render_html(doc), unsafe_allow_html=True)


def page_bills(store, guard):
    if st.session_state.get("bill_view"):
        show_bill(store, guard, st.session_state.bill_view)
        return
    st.header("Bills")
    c1, c2 = st.columns([3, 1])
    term = c1.text_input("Search by client name or invoice number", key="bill_search")
    on_date = c2.date_input("Issue date", value=None, key="bill_date")
    bills = filter_bills(BillRepository(store).list(), term, on_date)
    if not bills:
        st.info("No bills found.")
        return

    pending = st.session_state.get("confirm_delete")
    deleting = st.session_state.get(DELETE_BUSY, False)
    for b in bills:
        c = st.columns([1.5, 2.5, 1.2, 1.5, 0.8, 0.8, 0.8, 0.8])
        c[0].write(b.bill_number)
        c[1].write(b.client_name)
        c[2].write(b.date.strftime("%d-%m-%Y"))
        c[3].write(rs(b.total_amount))
        c[4].button("View", key=f"view_{b.id}", on_click=open_bill, args=(guard, b.id))
        c[5].button("Edit", key=f"edit_{b.id}", on_click=edit_bill, args=(store, b.id))
        c[6].button("Print", key=f"print_{b.id}", on_click=open_bill, args=(guard, b.id, True))
        c[7].button("Delete", key=f"del_{b.id}", disabled=deleting,
                    on_click=lambda bid=b.id: st.session_state.update(confirm_delete=bid))
        if pending == b.id:
            st.warning(f"Delete invoice {b.bill_number} for {b.client_name}? This cannot be undone.")
            y, n, _ = st.columns([1, 1, 6])
            y.button("Confirm Delete", key=f"confirm_{b.id}", disabled=deleting,
                     on_click=handle_delete_bill, args=(store, b.id))
            n.button("Cancel", key=f"cancel_{b.id}", on_click=lambda: st.session_state.update(confirm_delete=None))


# ---------------- Data management ----------------
def import_section(store, schema, importer):
    uploaded = st.file_uploader(f"Upload {schema.kind} (CSV/XLSX)", type=["csv", "xlsx"], key=f"upload_{schema.kind}")
    if not uploaded:
        return
    try:
        df = csv_io.read_table(uploaded)
    except Exception as e:
        st.error(f"Error reading file: {e}")
        return
    st.success(f"Loaded {uploaded.name} rows:{len(df)}")
    st.dataframe(df.head(20))
    if st.button(f"Import {schema.kind}", key=f"import_{schema.kind}"):
        try:
            report = importer(store, df)
        except (ValidationError, StoreError) as e:
            st.error(f"Import error: {e}")
            return
        st.success(f"Imported: {report.inserted} new, {report.updated} updated")
        for warning in report.warnings:
            st.warning(warning)
        if report.errors:
            st.error(f"{len(report.errors)} row(s) rejected")
            st.dataframe(pd.DataFrame(report.errors, columns=["Line", "Problem"]), hide_index=True)


def export_section(store, schema):
    try:
        filename, payload = csv_io.export_csv(store, schema)
    except ValidationError as e:
        st.info(str(e))
        return
    st.download_button(f"Export {schema.kind} CSV", payload, file_name=filename, mime="text/csv",
                       key=f"export_{schema.kind}")


def page_data(store, guard):
    st.header("Data Management")
    st.caption("Rows with an id update the existing record; rows without one are added.")
    left, right = st.columns(2)
    with left:
        st.subheader("Products")
        export_section(store, csv_io.PRODUCTS)
        import_section(store, csv_io.PRODUCTS, csv_io.import_products)
    with right:
        st.subheader("Clients")
        export_section(store, csv_io.CLIENTS)
        import_section(store, csv_io.CLIENTS, csv_io.import_clients)


PAGE_HANDLERS = {
    "Dashboard": page_dashboard,
    "Products": page_products,
    "Clients": page_clients,
    "Business Profile": page_profile,
    "Create Bill": page_create_bill,
    "Bills": page_bills,
    "Data Management": page_data,
}


def view_name(page):
    if page == "Bills":
        return f"Bills:{st.session_state.get('bill_view') or 'list'}"
    if page == "Create Bill":
        draft = st.session_state.get("draft")
        return f"Create Bill:{draft.bill_id if draft else ''}"
    return page


# ---------------- Streamlit UI ----------------
def main():
    st.set_page_config(page_title=config.APP_TITLE, layout="wide")
    st.title(config.APP_TITLE)
    st.caption(config.APP_TAGLINE)
    try:
        store = get_store()
    except StoreError as e:
        st.error(f"Could not open the record store: {e}")
        return

    if not check_password():
        return

    guard = ViewGuard(st.session_state)
    page = st.sidebar.selectbox("Mode", PAGES, key="page")
    guard.enter(view_name(page))
    show_flashes()
    PAGE_HANDLERS[page](store, guard)


if __name__ == "__main__":
    try:
        main()
    except Exception:
        st.error("App crashed. See traceback:")
        st.text(traceback.format_exc())
