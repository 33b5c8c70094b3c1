import logging

import pytest

logging.basicConfig(level=logging.NOTSET)


@pytest.fixture(autouse=True)
def isolated_config_env(monkeypatch):
    """Keep a developer's $ASGSTACK_CONFIG out of the tests."""
    monkeypatch.delenv("ASGSTACK_CONFIG", raising=False)
