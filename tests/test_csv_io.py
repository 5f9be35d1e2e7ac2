import io
from decimal import Decimal

import pandas as pd
import pytest

import csv_io
from records import ClientRepository, ProductRepository, ValidationError


def frame(text):
    return csv_io.read_table(io.StringIO(text), filename="upload.csv")


def test_headers_are_normalised():
    df = frame("Product Name,Unit Price,Colour\nGreen Tea,400,green\n")
    out = csv_io.normalize_columns(df, csv_io.PRODUCTS)
    assert list(out.columns) == ["name", "price"]


def test_missing_required_header_is_rejected():
    with pytest.raises(ValidationError, match="price"):
        csv_io.normalize_columns(frame("name\nGreen Tea\n"), csv_io.PRODUCTS)


def test_import_products_inserts_and_reports_bad_rows(store):
    df = frame("name,price\nGreen Tea,400\nMasala Chai,\"1,250.50\"\n,10\nOolong,abc\nHoney,-3\n"
               "Mystery,NaN\nEndless,Infinity\n")
    report = csv_io.import_products(store, df)
    assert (report.inserted, report.updated) == (2, 0)
    assert [line for line, _ in report.errors] == [4, 5, 6, 7, 8]
    prices = {p.name: p.price for p in ProductRepository(store).list()}
    assert prices == {"Green Tea": Decimal("400"), "Masala Chai": Decimal("1250.50")}


def test_import_products_upserts_by_id(store, green_tea):
    df = frame(f"id,name,price\n{green_tea.id},Green Tea Premium,450\n")
    report = csv_io.import_products(store, df)
    assert (report.inserted, report.updated) == (0, 1)
    updated = ProductRepository(store).get(green_tea.id)
    assert (updated.name, updated.price) == ("Green Tea Premium", Decimal("450"))


def test_import_clients_assigns_next_ids(store, acme):
    df = frame("Company Name,GST No,Phone\nBlue Leaf,27ABCDE1234F1Z5,999\nHill Estates,,\n")
    report = csv_io.import_clients(store, df)
    assert report.inserted == 2 and not report.errors
    clients = {c.id: c for c in ClientRepository(store).list()}
    assert clients["CL-002"].name == "Blue Leaf"
    assert clients["CL-002"].gstin == "27ABCDE1234F1Z5"
    assert clients["CL-003"].name == "Hill Estates"
    assert clients["CL-003"].date_added


def test_import_clients_updates_without_blanking(store, acme):
    df = frame(f"id,name,email,phone\n{acme.id},Acme Traders Pvt Ltd,ap@acme.example,\n")
    report = csv_io.import_clients(store, df)
    assert report.updated == 1
    stored = ClientRepository(store).get(acme.id)
    assert stored.name == "Acme Traders Pvt Ltd"
    assert stored.email == "ap@acme.example"
    assert stored.phone == acme.phone


def test_xlsx_upload(tmp_path, store):
    path = tmp_path / "products.xlsx"
    pd.DataFrame({"Name": ["Green Tea"], "Price": ["400"]}).to_excel(path, index=False)
    report = csv_io.import_products(store, csv_io.read_table(str(path)))
    assert report.inserted == 1


def test_export_csv(store, green_tea, masala_chai):
    filename, payload = csv_io.export_csv(store, csv_io.PRODUCTS)
    assert filename.startswith("products_export_") and filename.endswith(".csv")
    back = pd.read_csv(io.BytesIO(payload), dtype=str)
    assert list(back.columns) == ["id", "name", "price", "date_added"]
    assert sorted(back["name"]) == ["Green Tea", "Masala Chai"]


def test_export_with_nothing_to_export(store):
    with pytest.raises(ValidationError):
        csv_io.export_csv(store, csv_io.CLIENTS)
