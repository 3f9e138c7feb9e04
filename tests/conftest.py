"""
Shared fixtures: an isolated SQLite file per test and a FakeServer backend.
"""
import pytest

from app import create_app
from fake_server import BASE_URL, FakeServer


@pytest.fixture()
def server():
    return FakeServer()


@pytest.fixture()
def db_path(tmp_path):
    return str(tmp_path / "test.db")


@pytest.fixture()
def make_app(server, db_path):
    def _make():
        return create_app(db_path=db_path, session=server, base_url=BASE_URL, recheck_seconds=0)
    return _make


@pytest.fixture()
def app(make_app):
    """App talking to a reachable backend."""
    return make_app()


@pytest.fixture()
def offline_app(server, make_app):
    """App whose backend is unreachable for the whole test."""
    server.online = False
    return make_app()
