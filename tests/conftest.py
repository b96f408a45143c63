import asyncio
import os
import sys
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Keep logs and the default database out of the real user data directory.
os.environ.setdefault("FAMILYSYNC_DATA_DIR", tempfile.mkdtemp(prefix="familysync-tests-"))

from sqlmodel import Session, create_engine  # noqa: E402

from services.adapters import AdapterRegistry  # noqa: E402
from services.connectivity import ConnectivityMonitor  # noqa: E402
from services.executor import OperationExecutor  # noqa: E402
from services.operation_store import OperationStore  # noqa: E402
from services.progress import ProgressBus  # noqa: E402
from services.read_cache import ReadCache  # noqa: E402
from services.sync_orchestrator import SyncOrchestrator  # noqa: E402
from storage.db import init_db  # noqa: E402


class FakeClock:
    def __init__(self, start=None):
        self.now = start or datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


class FakeAdapter:
    """Scripted remote adapter; each call pops the next response (or raises it)."""

    def __init__(self, *responses, default=None):
        self.responses = list(responses)
        self.default = default if default is not None else {"success": True}
        self.calls = []
        self.gate = None

    async def _respond(self, call):
        self.calls.append(call)
        if self.gate is not None:
            await self.gate.wait()
        response = self.responses.pop(0) if self.responses else self.default
        if isinstance(response, BaseException):
            raise response
        return response

    def create(self, payload):
        return self._respond(("create", payload))

    def update(self, record_id, updates):
        return self._respond(("update", record_id, updates))

    def delete(self, record_id):
        return self._respond(("delete", record_id))


@pytest.fixture()
def session_factory():
    engine = create_engine("sqlite:///:memory:")
    init_db(engine)

    def factory():
        return Session(engine)

    return factory


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def store(session_factory):
    return OperationStore(session_factory)


@pytest.fixture()
def cache(session_factory, clock):
    return ReadCache(session_factory, clock=clock)


@pytest.fixture()
def connectivity():
    return ConnectivityMonitor(online=True)


@pytest.fixture()
def make_orchestrator(store, cache, connectivity, clock):
    created = []

    def factory(adapters, **kwargs):
        executor = OperationExecutor(AdapterRegistry(adapters), cache)
        kwargs.setdefault("bus", ProgressBus())
        kwargs.setdefault("clock", clock)
        orchestrator = SyncOrchestrator(store, executor, connectivity, **kwargs)
        created.append(orchestrator)
        return orchestrator

    yield factory
    for orchestrator in created:
        orchestrator.close()


def run(coro):
    return asyncio.run(coro)
