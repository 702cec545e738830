import psycopg
import psycopg.errors
import psycopg.rows
import pytest

from shortener.storage.db_storage import SCHEMA_STATEMENTS, DBStorage
from shortener.storage.models import CodeExhausted, LookupStatus, StorageUnavailable


class DummyCursor:
    def __init__(self, conn):
        self.conn = conn
        self.rowcount = -1
        self._rows = []

    def execute(self, query, params=None):
        self.conn.executed.append((" ".join(query.split()), params))
        step = self.conn.script.pop(0) if self.conn.script else {}
        if isinstance(step, Exception):
            raise step
        self.rowcount = step.get("rowcount", -1)
        self._rows = list(step.get("rows", []))
        return self

    def fetchone(self):
        return self._rows.pop(0) if self._rows else None

    def fetchall(self):
        rows, self._rows = self._rows, []
        return rows

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False


class DummyTransaction:
    def __init__(self, conn):
        self.conn = conn

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.conn.transactions.append("rollback" if exc_type else "commit")
        return False


class DummyConnection:
    def __init__(self, script=None):
        self.script = list(script or [])
        self.executed = []
        self.transactions = []
        self.row_factories = []
        self.autocommit = False
        self.closed = False

    def cursor(self, row_factory=None):
        self.row_factories.append(row_factory)
        return DummyCursor(self)

    def transaction(self):
        return DummyTransaction(self)

    def close(self):
        self.closed = True


@pytest.fixture
def connect(monkeypatch):
    """Patch psycopg.connect; returns a function installing a scripted connection."""
    calls = []

    def install(script=None):
        conn = DummyConnection(script)

        def fake_connect(dsn, **kwargs):
            calls.append((dsn, kwargs))
            return conn

        monkeypatch.setattr("psycopg.connect", fake_connect)
        return conn

    install.calls = calls
    return install


# ---------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------

def test_ensure_schema_runs_all_statements(connect):
    conn = connect()
    DBStorage("fake").ensure_schema()
    assert len(conn.executed) == len(SCHEMA_STATEMENTS)
    assert "CREATE TABLE IF NOT EXISTS urls" in conn.executed[0][0]
    assert "user_id_idx" in conn.executed[-1][0]
    assert conn.closed is True


def test_create_inserts_fresh_code(connect, scripted):
    conn = connect([{"rowcount": 1}])
    storage = DBStorage("fake", generator=scripted(["AbC12345"]))

    result = storage.create_short_url("u1", "https://x.com")

    assert result.short_code == "AbC12345"
    assert result.conflict is False
    query, params = conn.executed[0]
    assert "ON CONFLICT (original_url) DO NOTHING" in query
    assert params == ("AbC12345", "https://x.com", "u1")
    assert conn.transactions == ["commit"]


def test_create_conflict_reads_back_existing_code(connect, scripted):
    conn = connect([{"rowcount": 0}, {"rows": [("Exist001",)]}])
    storage = DBStorage("fake", generator=scripted(["AbC12345"]))

    result = storage.create_short_url("u2", "https://x.com")

    assert result.short_code == "Exist001"
    assert result.conflict is True
    assert conn.executed[1][0].startswith("SELECT short_url FROM urls WHERE original_url")
    # Both statements ran inside one committed transaction
    assert conn.transactions == ["commit"]


def test_create_retries_on_short_code_collision(connect, scripted):
    conn = connect([psycopg.errors.UniqueViolation("duplicate key"), {"rowcount": 1}])
    storage = DBStorage("fake", generator=scripted(["Taken001", "Fresh001"]))

    result = storage.create_short_url("u1", "https://x.com")

    assert result.short_code == "Fresh001"
    assert conn.transactions == ["rollback", "commit"]


def test_create_gives_up_after_max_attempts(connect, scripted):
    connect([psycopg.errors.UniqueViolation("dup")] * 2)
    storage = DBStorage("fake", generator=scripted(["Taken001", "Taken002"]), max_attempts=2)
    with pytest.raises(CodeExhausted):
        storage.create_short_url("u1", "https://x.com")


def test_get_original_url_three_way(connect):
    connect([{"rows": [("https://x.com", False)]}])
    assert DBStorage("fake").get_original_url("abc").original_url == "https://x.com"

    connect([{"rows": [("https://x.com", True)]}])
    assert DBStorage("fake").get_original_url("abc").status is LookupStatus.DELETED

    connect([{"rows": []}])
    assert DBStorage("fake").get_original_url("abc").status is LookupStatus.NOT_FOUND


def test_list_by_owner_filters_deleted_server_side(connect):
    rows = [{"short_url": "abc", "original_url": "https://x.com", "user_id": "u1", "is_deleted": False}]
    conn = connect([{"rows": rows}])

    records = DBStorage("fake").list_by_owner("u1")

    assert [(r.short_code, r.original_url, r.owner_id) for r in records] == [("abc", "https://x.com", "u1")]
    assert "NOT is_deleted" in conn.executed[0][0]
    assert conn.row_factories == [psycopg.rows.dict_row]


def test_delete_batch_single_update_with_array(connect):
    conn = connect([{"rowcount": 2}])
    DBStorage("fake").delete_batch("u1", ["a", "b", "c"])

    assert len(conn.executed) == 1
    query, params = conn.executed[0]
    assert "short_url = ANY(%s)" in query
    assert params == ("u1", ["a", "b", "c"])


def test_delete_batch_empty_skips_database(connect):
    conn = connect()
    DBStorage("fake").delete_batch("u1", [])
    assert conn.executed == []
    assert connect.calls == []


def test_ping_uses_short_connect_timeout(connect):
    connect([{"rows": [(1,)]}])
    DBStorage("fake").ping(timeout=0.5)
    assert connect.calls[-1][1]["connect_timeout"] == 1


def test_statement_timeout_passed_as_option(connect):
    connect([{"rows": []}])
    DBStorage("fake", statement_timeout_ms=250).get_original_url("abc")
    assert connect.calls[-1][1]["options"] == "-c statement_timeout=250"


def test_connect_failure_is_storage_unavailable(monkeypatch):
    def refuse(dsn, **kwargs):
        raise psycopg.OperationalError("connection refused")

    monkeypatch.setattr("psycopg.connect", refuse)
    with pytest.raises(StorageUnavailable):
        DBStorage("fake").ping()


def test_query_failure_is_storage_unavailable(connect):
    conn = connect([psycopg.OperationalError("server closed the connection")])
    with pytest.raises(StorageUnavailable):
        DBStorage("fake").get_original_url("abc")
    assert conn.closed is True
