import os
import sys
from datetime import datetime, timedelta, UTC

import pytest


def pytest_configure():
    # Ensure `src/` is importable as top-level for `pulse_*` imports
    root = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))
    src_path = os.path.join(root, "src")
    if src_path not in sys.path:
        sys.path.insert(0, src_path)


class FakeClock:
    def __init__(self, t: datetime = datetime(2025, 3, 3, 9, 0, tzinfo=UTC)) -> None:
        self.t = t

    def __call__(self) -> datetime:  # acts like datetime.now(UTC)
        return self.t

    def advance(self, **kwargs) -> datetime:
        self.t += timedelta(**kwargs)
        return self.t


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(tmp_path, clock):
    from pulse_state.json_store import JsonStateStore

    return JsonStateStore(tmp_path / "UserData", clock=clock)


@pytest.fixture
def repo(store):
    from pulse_state.repository import StateRepository

    return StateRepository(store)


@pytest.fixture
def service(repo, clock):
    from pulse_state.service import StateService
    from pulse_state.session import UserSession

    return StateService(repo, UserSession("alice"), clock=clock)
