import pytest
from fastapi.testclient import TestClient

from dispatchkit.app import AppKit
from dispatchkit.config import AppConfig


def _config(**overrides) -> AppConfig:
    # Isolated from any .env file in the working directory.
    return AppConfig(_env_file=None, **overrides)


@pytest.fixture
def make_config():
    return _config


@pytest.fixture
def make_client():
    """
    Build a TestClient for a route table.

    Usage: client = make_client(routes, config=..., auth_handler=...)
    """

    def _make(routes, config=None, **kit_options):
        kit = AppKit(routes, config=config or _config(), **kit_options)
        return TestClient(kit)

    return _make
