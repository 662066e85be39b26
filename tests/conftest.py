"""
Shared fixtures for the SQL Logs Bot test suite.
"""

import json
from typing import Any, Optional

import pytest
import requests

from sql_logs_bot.config import Config


class ConfigForTests(Config):
    VAULT_BASE_URL = "http://vault.test"
    NETWORK_BASE_URLS = {
        "mainnet": "http://mainnet.test/api/v1",
        "testnet": "http://testnet.test/api/v1",
        "local": "http://localhost:8080/api/v1",
    }
    NOTIFICATION_CHANNELS = {"internal": "", "external": ""}
    INTERNAL_TABLE_NAMES = frozenset({"healthbot_80002_1", "rigs_1_5"})


TEST_PRIVATE_KEY = "59c6995e998f97a5a0044966f0945389dc9e86dae88c7a8412f4603b6b78690d"


def make_response(
    status_code: int = 200,
    json_body: Any = None,
    content: Optional[bytes] = None,
    reason: str = "OK",
) -> requests.Response:
    """Build a real requests.Response with a fixed body."""
    response = requests.Response()
    response.status_code = status_code
    response.reason = reason
    if json_body is not None:
        response._content = json.dumps(json_body).encode("utf-8")
    else:
        response._content = content or b""
    response._content_consumed = True
    response.encoding = "utf-8"
    return response


@pytest.fixture
def test_config():
    return ConfigForTests()


@pytest.fixture
def sleeps():
    """Records backoff waits instead of sleeping."""
    return []
