"""
Pytest configuration and fixtures for the sing-box outbound inserter.
"""

import sys
from pathlib import Path

import httpx
import pytest

# Modules live at the repository root
ROOT_DIR = Path(__file__).parent.parent
sys.path.insert(0, str(ROOT_DIR))

from rules import FIELD_MARK, IGNORE_CASE_MARK, SEGMENT_MARK  # noqa: E402

HK_RULE = SEGMENT_MARK + IGNORE_CASE_MARK + "🇭🇰 HongKong" + FIELD_MARK + IGNORE_CASE_MARK + "hk|hongkong"


@pytest.fixture
def hk_rule() -> str:
    return HK_RULE


@pytest.fixture
def sample_config() -> dict:
    return {
        "log": {"level": "info"},
        "outbounds": [
            {"tag": "Proxy", "type": "selector", "outbounds": ["🇭🇰 HongKong", "direct"]},
            {"tag": "🇭🇰 HongKong", "type": "urltest", "outbounds": []},
            {"tag": "direct", "type": "direct"},
        ],
    }


@pytest.fixture
def sample_nodes() -> list:
    return [
        {"tag": "HK-01", "type": "shadowsocks", "server": "hk.example.com", "server_port": 443},
        {"tag": "US-01", "type": "trojan", "server": "us.example.com", "server_port": 443},
    ]


@pytest.fixture
def mock_client_factory():
    """Build an AsyncClient whose requests are answered by ``handler`` and recorded."""
    def factory(handler):
        seen = []

        def _handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return handler(request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(_handler))
        return client, seen
    return factory
