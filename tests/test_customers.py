"""HTTP flows for the customers module."""
import io

import pytest
from openpyxl import load_workbook
from sqlalchemy import select

from app.hub import create_app
from app.hub.models import Base, partition_table

ADA = {"name": "Ada Lovelace", "email": "ada@x.co", "phone": "555-0100"}
CSRF = "test-csrf-token"


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORE_BACKEND", "sql")
    monkeypatch.setenv("HUB_PASSWORD", "pw")
    monkeypatch.setenv("CUSTOMER_STATUSES", "pending,active")
    monkeypatch.setenv("STREAM_KEEPALIVE_SECONDS", "0.05")
    monkeypatch.delenv("DEFAULT_VIEW", raising=False)

    app = create_app()
    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)
    return app


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def store(app):
    return app.extensions["customer_store"]


def _login(client):
    client.post("/auth/login", data={"password": "pw"}, follow_redirects=True)


def _post(client, url, data=None, **kwargs):
    with client.session_transaction() as sess:
        sess["csrf_token"] = CSRF
    payload = dict(data or {})
    payload["csrf_token"] = CSRF
    return client.post(url, data=payload, **kwargs)


def _rows(app, status):
    t = partition_table(status)
    with app.extensions["sqlalchemy_engine"].connect() as conn:
        return conn.execute(select(t)).all()


def test_list_empty_state(client):
    _login(client)
    r = client.get("/customers/pending")
    assert r.status_code == 200
    assert b"No pending customers." in r.data


def test_unknown_status_404(client):
    _login(client)
    assert client.get("/customers/archived").status_code == 404
    r = _post(client, "/customers/archived/new", ADA)
    assert r.status_code == 404


def test_ada_lovelace_scenario(app, client, store):
    _login(client)

    r = _post(client, "/customers/pending/new", ADA, follow_redirects=True)
    assert r.status_code == 200
    assert b"Ada Lovelace has been added to the pending list." in r.data
    assert b"555-0100" in r.data

    [row] = _rows(app, "pending")
    assert (row.name, row.email, row.phone_number, row.status) == ("Ada Lovelace", "ada@x.co", "555-0100", "pending")
    assert row.created_at is not None
    customer_id = row.id

    r = _post(client, f"/customers/pending/{customer_id}/move", {"target": "active"}, follow_redirects=True)
    assert r.status_code == 200
    assert b"Ada Lovelace has been moved to the active list." in r.data
    assert _rows(app, "pending") == []
    [moved] = _rows(app, "active")
    assert (moved.id, moved.name, moved.email, moved.phone_number, moved.status) == (
        customer_id,
        "Ada Lovelace",
        "ada@x.co",
        "555-0100",
        "active",
    )
    assert moved.created_at == row.created_at

    r = _post(client, f"/customers/active/{customer_id}/delete", follow_redirects=True)
    assert r.status_code == 200
    assert b"Ada Lovelace has been deleted." in r.data
    assert _rows(app, "pending") == []
    assert _rows(app, "active") == []


def test_add_goes_to_current_view(app, client):
    _login(client)
    _post(client, "/customers/active/new", ADA)
    assert len(_rows(app, "active")) == 1
    assert _rows(app, "pending") == []


def test_add_requires_all_fields(app, client):
    _login(client)
    r = _post(client, "/customers/pending/new", {"name": "Ada", "email": "", "phone": ""}, follow_redirects=True)
    assert b"Email is required." in r.data
    assert b"Phone number is required." in r.data
    assert _rows(app, "pending") == []


def test_move_to_same_status_writes_nothing(app, client, store, monkeypatch):
    _login(client)
    c = store.add("pending", name="Ada Lovelace", email="ada@x.co", phone_number="555-0100")

    commits = []
    monkeypatch.setattr(store, "_commit", lambda ops: commits.append(ops))

    r = _post(client, f"/customers/pending/{c.id}/move", {"target": "pending"}, follow_redirects=True)
    assert b"Ada Lovelace is already in the pending list." in r.data
    assert commits == []
    assert store.get("pending", c.id) == c


def test_move_control_submits_current_status(client, store):
    _login(client)
    store.add("pending", name="Ada Lovelace", email="ada@x.co", phone_number="555-0100")

    r = client.get("/customers/pending")
    assert b'<option value="pending" selected>Pending (current)</option>' in r.data
    assert b'<option value="active" >Active</option>' in r.data
    assert b"disabled" not in r.data


def test_move_commit_failure_shows_notice(app, client, store, break_partition):
    _login(client)
    c = store.add("pending", name="Ada Lovelace", email="ada@x.co", phone_number="555-0100")
    break_partition(store, "active")

    r = _post(client, f"/customers/pending/{c.id}/move", {"target": "active"}, follow_redirects=True)
    assert r.status_code == 200
    assert b"Could not update customer status." in r.data
    assert [row.id for row in _rows(app, "pending")] == [c.id]
    assert _rows(app, "active") == []


def test_move_missing_customer(client):
    _login(client)
    r = _post(client, "/customers/pending/gone/move", {"target": "active"}, follow_redirects=True)
    assert b"That customer no longer exists." in r.data


def test_move_unknown_target(client, store):
    _login(client)
    c = store.add("pending", name="Ada Lovelace", email="ada@x.co", phone_number="555-0100")
    r = _post(client, f"/customers/pending/{c.id}/move", {"target": "archived"}, follow_redirects=True)
    assert b"Unknown status." in r.data
    assert store.get("pending", c.id) == c


def test_delete_missing_customer_is_noop(app, client):
    _login(client)
    r = _post(client, "/customers/pending/gone/delete", follow_redirects=True)
    assert r.status_code == 200
    assert b"That customer no longer exists." in r.data


def test_writes_require_identity(app, client):
    r = _post(client, "/customers/pending/new", ADA, follow_redirects=False)
    assert r.status_code == 302
    assert "/auth/login" in r.headers["Location"]
    assert _rows(app, "pending") == []


def test_post_without_csrf_rejected(app, client):
    _login(client)
    r = client.post("/customers/pending/new", data=ADA)
    assert r.status_code == 400
    assert _rows(app, "pending") == []


def test_export_empty_view(client):
    _login(client)
    r = client.get("/customers/pending/export", follow_redirects=True)
    assert r.status_code == 200
    assert b"There are no pending customers to download." in r.data


def test_export_download(client, store):
    _login(client)
    for name in ("Ada Lovelace", "Grace Hopper"):
        store.add("active", name=name, email="x@x.co", phone_number="0044123")

    r = client.get("/customers/active/export")
    assert r.status_code == 200
    assert r.mimetype == "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    assert "Active Customers.xlsx" in r.headers["Content-Disposition"]

    ws = load_workbook(io.BytesIO(r.data)).active
    assert ws.title == "Active Customers"
    rows = list(ws.iter_rows(values_only=True))
    assert len(rows) == 3
    assert {row[0] for row in rows[1:]} == {"Ada Lovelace", "Grace Hopper"}
    assert all(row[1] == "0044123" for row in rows[1:])


def test_stream_sends_snapshot_first(client, store):
    _login(client)
    c = store.add("pending", name="Ada Lovelace", email="ada@x.co", phone_number="555-0100")

    r = client.get("/customers/pending/stream", buffered=False)
    try:
        assert r.status_code == 200
        assert r.mimetype == "text/event-stream"
        first = next(iter(r.response))
    finally:
        r.close()

    assert first.startswith(b"event: snapshot")
    assert c.id.encode() in first
    assert b'"phoneNumber": "555-0100"' in first


def test_stream_requires_identity(client):
    r = client.get("/customers/pending/stream")
    assert r.status_code == 302


def test_missing_tables_render_schema_page(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'fresh.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORE_BACKEND", "sql")
    monkeypatch.setenv("HUB_PASSWORD", "pw")
    monkeypatch.setenv("CUSTOMER_STATUSES", "pending,active")

    app = create_app()
    client = app.test_client()
    _login(client)

    r = client.get("/customers/pending")
    assert r.status_code == 500
    assert b"pending_customers" in r.data

    app.extensions["customer_store"].create_partitions()
    r = client.get("/customers/pending")
    assert r.status_code == 200


def test_memory_backend(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORE_BACKEND", "memory")
    monkeypatch.setenv("HUB_PASSWORD", "pw")
    monkeypatch.setenv("CUSTOMER_STATUSES", "pending,one_month,one_year")
    monkeypatch.setenv("DEFAULT_VIEW", "one_year")

    app = create_app()
    client = app.test_client()
    assert client.get("/health").json["store"] == "memory"

    _login(client)
    r = client.get("/customers/", follow_redirects=True)
    assert b"One year Customers" in r.data

    _post(client, "/customers/one_year/new", ADA)
    [c] = app.extensions["customer_store"].list("one_year")
    assert c.status == "one_year"
    r = client.get("/customers/one_year")
    assert b"Ada Lovelace" in r.data
    assert b"Expires: N/A" in r.data
