import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.hub.models import collection_name
from app.hub.store import MemoryCustomerStore, SqlCustomerStore, StoreError

STATUSES = ("pending", "active", "one_month")


@pytest.fixture(params=["memory", "sql"])
def store(request, tmp_path):
    """The same contract runs against the in-memory map and the SQL tables."""
    if request.param == "memory":
        yield MemoryCustomerStore(STATUSES)
        return

    engine = create_engine(f"sqlite:///{tmp_path/'store.db'}")
    sm = sessionmaker(bind=engine, expire_on_commit=False)
    s = SqlCustomerStore(STATUSES, engine=engine, sessionmaker=sm)
    s.create_partitions()
    yield s
    engine.dispose()


def _break_partition(store, status, monkeypatch):
    """Make every write into ``status`` fail at commit time."""
    if isinstance(store, SqlCustomerStore):
        table = collection_name(status)
        with store.engine.begin() as conn:
            conn.exec_driver_sql(
                f"CREATE TRIGGER fail_{table} BEFORE INSERT ON {table} "
                "BEGIN SELECT RAISE(ABORT, 'simulated outage'); END"
            )
        return

    original = store._stage

    def _failing(staged, op):
        if op.kind == "set" and op.status == status:
            raise StoreError("simulated outage")
        original(staged, op)

    monkeypatch.setattr(store, "_stage", _failing)


@pytest.fixture()
def break_partition(monkeypatch):
    def _break(store, status):
        _break_partition(store, status, monkeypatch)

    return _break
