import logging

import httpx
import pytest

from chatkeeper import config
from chatkeeper.keeper import Keeper
from chatkeeper.models import Config
from chatkeeper.publisher import Publisher
from chatkeeper.storage import Storage


def _offline_handler(request: httpx.Request) -> httpx.Response:
    raise httpx.ConnectError("network disabled in tests", request=request)


@pytest.fixture
def storage(tmp_path):
    return Storage(db_path=tmp_path / "records.db")


@pytest.fixture
def library(tmp_path):
    return tmp_path / "library"


@pytest.fixture
def make_keeper(storage, library):
    def factory(handler=_offline_handler, **overrides):
        cfg = Config(library_dir=str(library), **overrides)
        publisher = Publisher(client=httpx.Client(transport=httpx.MockTransport(handler)))
        return Keeper(storage, cfg, publisher=publisher)

    return factory


@pytest.fixture
def keeper(make_keeper):
    return make_keeper()


@pytest.fixture
def isolated_home(tmp_path, monkeypatch):
    """Point config and database paths at a temporary directory."""

    from chatkeeper import storage as storage_mod

    monkeypatch.setattr(config, "CONFIG_PATH", tmp_path / "config.json")
    monkeypatch.setattr(storage_mod, "DB_PATH", tmp_path / "records.db")
    return tmp_path


@pytest.fixture(autouse=True)
def _drop_cli_log_handlers():
    yield
    root = logging.getLogger()
    for handler in [h for h in root.handlers if getattr(h, "_chatkeeper", False)]:
        root.removeHandler(handler)
