import pytest
from fastapi.testclient import TestClient

from bookstore.api import create_app
from bookstore.crud import CrudEngine
from bookstore.database import Database


class SpyStore:
    """Stand-in store that records every call instead of touching sqlite."""

    def __init__(self, rows=None, rowcount=1):
        self.rows = rows or []
        self.rowcount = rowcount
        self.calls = []

    def query(self, sql, params=()):
        self.calls.append(("query", sql, tuple(params)))
        return ["id"], list(self.rows)

    def execute(self, sql, params=()):
        self.calls.append(("execute", sql, tuple(params)))
        return self.rowcount


@pytest.fixture(autouse=True)
def plain_output(monkeypatch):
    # CLI --output writes to os.environ; keep every test starting from plain.
    monkeypatch.setenv("LIB_CLI_OUTPUT", "plain")


@pytest.fixture
def db_file(tmp_path):
    # tmp_path is unique per test
    return str(tmp_path / "catalog.db")


@pytest.fixture
def db(db_file):
    database = Database.open(db_file, timeout=2)
    yield database
    database.close()


@pytest.fixture
def engine(db):
    return CrudEngine(db)


@pytest.fixture
def spy():
    return SpyStore()


@pytest.fixture
def client(engine):
    with TestClient(create_app(engine)) as test_client:
        yield test_client
