import sqlite3

import pytest

from db import ConflictError, SchemaMismatchError, SqliteStore, StoreError


def test_crud_round(store):
    store.insert("products", {"id": "p1", "name": "Green Tea", "price": "400", "date_added": "2026-03-14"})
    store.insert("products", {"id": "p2", "name": "Assam", "price": "300", "date_added": "2026-03-15"})
    assert [r["id"] for r in store.select("products", order="name")] == ["p2", "p1"]
    assert store.select("products", filters={"id": "p1"})[0]["price"] == "400"
    assert store.update("products", {"price": "450"}, {"id": "p1"}) == 1
    assert store.select("products", filters={"id": "p1"}, columns=["price"]) == [{"price": "450"}]
    assert store.delete("products", {"id": "p2"}) == 1
    assert store.count("products") == 1


def test_duplicate_key_is_a_conflict(store):
    store.insert("clients", {"id": "CL-001", "name": "Acme"})
    with pytest.raises(ConflictError):
        store.insert("clients", {"id": "CL-001", "name": "Other"})


def test_unknown_column_is_a_schema_mismatch(store):
    with pytest.raises(SchemaMismatchError):
        store.insert("bank_details", {"id": "profile", "swift_code": "SBININBB"})


def test_update_and_delete_need_a_key(store):
    with pytest.raises(StoreError):
        store.update("products", {"price": "1"}, {})
    with pytest.raises(StoreError):
        store.delete("products", None)


def test_identifiers_are_checked(store):
    with pytest.raises(StoreError):
        store.select("products; DROP TABLE products")


def test_init_db_adds_missing_columns(tmp_path):
    path = tmp_path / "old.db"
    conn = sqlite3.connect(path)
    conn.execute("CREATE TABLE bank_details (id TEXT PRIMARY KEY, business_name TEXT)")
    conn.commit()
    conn.close()

    store = SqliteStore(str(path))
    store.init_db()
    assert "pan_no" in store.existing_columns("bank_details")
    store.init_db()
    assert store.existing_columns("bank_details").count("pan_no") == 1
