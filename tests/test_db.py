from types import SimpleNamespace

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError, ProgrammingError

import db
from config import load_settings
from errors import QueryError, StoreConnectionError, StoreIntegrityError
from queries import Statement


class FakeResult:
    def __init__(self, rows=None, rowcount=0, fail_on_iter=None):
        self._rows = rows or []
        self.rowcount = rowcount
        self._fail_on_iter = fail_on_iter

    def __iter__(self):
        if self._fail_on_iter is not None:
            raise self._fail_on_iter
        return iter(SimpleNamespace(_mapping=row) for row in self._rows)


class FakeConnection:
    def __init__(self, result=None, error=None):
        self.result = result or FakeResult()
        self.error = error
        self.executed = []
        self.commits = 0
        self.closes = 0

    def exec_driver_sql(self, sql, params):
        self.executed.append((sql, params))
        if self.error is not None:
            raise self.error
        return self.result

    def commit(self):
        self.commits += 1

    def close(self):
        self.closes += 1


class FakeEngine:
    def __init__(self, connection=None, connect_error=None):
        self.connection = connection
        self.connect_error = connect_error
        self.connects = 0

    def connect(self):
        if self.connect_error is not None:
            raise self.connect_error
        self.connects += 1
        return self.connection


def _connector(db2_settings, **engine_kwargs):
    engine = FakeEngine(**engine_kwargs)
    return db.StoreConnector(engine, db2_settings), engine


def test_execute_returns_rows_and_closes_once(db2_settings) -> None:
    conn = FakeConnection(result=FakeResult(rows=[{"APP_REF": "APP-1"}, {"APP_REF": "APP-2"}]))
    store, engine = _connector(db2_settings, connection=conn)

    rows = store.execute(Statement("SELECT APP_REF FROM t WHERE APP_STATUS = ?", ("PENDING",)))

    assert rows == [{"APP_REF": "APP-1"}, {"APP_REF": "APP-2"}]
    assert conn.executed == [("SELECT APP_REF FROM t WHERE APP_STATUS = ?", ("PENDING",))]
    assert engine.connects == 1
    assert conn.closes == 1


def test_execute_write_returns_rowcount_and_commits(db2_settings) -> None:
    conn = FakeConnection(result=FakeResult(rowcount=1))
    store, _ = _connector(db2_settings, connection=conn)

    assert store.execute_write(Statement("DELETE FROM t WHERE APP_REF = ?", ("APP-1",))) == 1
    assert conn.commits == 1
    assert conn.closes == 1


def test_each_call_acquires_its_own_connection(db2_settings) -> None:
    conn = FakeConnection()
    store, engine = _connector(db2_settings, connection=conn)

    store.execute(Statement("SELECT 1"))
    store.execute(Statement("SELECT 1"))

    assert engine.connects == 2
    assert conn.closes == 2


def test_connect_failure_is_a_connection_error_without_password(db2_settings) -> None:
    orig = Exception("SQL30082N Security processing failed PWD=hunter2; reason 24")
    store, _ = _connector(
        db2_settings, connect_error=OperationalError("connect", None, orig)
    )

    with pytest.raises(StoreConnectionError) as exc:
        store.execute(Statement("SELECT 1"))

    assert "hunter2" not in exc.value.message
    assert "PWD=***;" in exc.value.message
    assert exc.value.status_code == 500


def test_statement_failure_is_a_query_error_and_still_closes(db2_settings) -> None:
    error = ProgrammingError("SELECT nope", (), Exception("SQL0206N NOPE is not valid"))
    conn = FakeConnection(error=error)
    store, _ = _connector(db2_settings, connection=conn)

    with pytest.raises(QueryError) as exc:
        store.execute(Statement("SELECT nope"))

    assert not isinstance(exc.value, StoreConnectionError)
    assert "SQL0206N" in exc.value.message
    assert conn.commits == 0
    assert conn.closes == 1


def test_constraint_violation_is_an_integrity_error(db2_settings) -> None:
    error = IntegrityError("INSERT", (), Exception("SQL0803N duplicate key"))
    conn = FakeConnection(error=error)
    store, _ = _connector(db2_settings, connection=conn)

    with pytest.raises(StoreIntegrityError):
        store.execute_write(Statement("INSERT INTO t VALUES (?)", ("APP-1",)))
    assert conn.closes == 1


def test_invalidated_connection_is_a_connection_error(db2_settings) -> None:
    error = OperationalError("SELECT 1", (), Exception("SQL30081N link failure"), connection_invalidated=True)
    conn = FakeConnection(error=error)
    store, _ = _connector(db2_settings, connection=conn)

    with pytest.raises(StoreConnectionError):
        store.execute(Statement("SELECT 1"))
    assert conn.closes == 1


def test_result_handling_failure_still_releases(db2_settings) -> None:
    conn = FakeConnection(result=FakeResult(fail_on_iter=RuntimeError("decode failed")))
    store, _ = _connector(db2_settings, connection=conn)

    with pytest.raises(RuntimeError):
        store.execute(Statement("SELECT 1"))
    assert conn.closes == 1


def test_redact_removes_configured_password(db2_settings) -> None:
    assert db.redact("login svc_credit/hunter2 refused", db2_settings) == "login svc_credit/*** refused"


def test_sqlite_round_trip(store) -> None:
    rows = store.execute(Statement("SELECT 1 AS TEST"))
    assert rows == [{"TEST": 1}]


def test_sqlite_missing_table_is_a_query_error(store) -> None:
    with pytest.raises(QueryError):
        store.execute(Statement("SELECT * FROM main.NO_SUCH_TABLE"))


def test_unreachable_sqlite_target_is_a_connection_error(tmp_path) -> None:
    settings = load_settings(
        {"DATABASE_URL": f"sqlite:///{tmp_path / 'missing' / 'dir' / 'x.db'}", "DB2_SCHEMA": "main"}
    )
    store = db.StoreConnector(db.create_store_engine(settings), settings)

    with pytest.raises(StoreConnectionError):
        store.execute(Statement("SELECT 1 AS TEST"))
