"""
Shared pytest fixtures for the field creator tests.

The scripts under src/ import each other as top-level modules, so src/ is
put on the path before the tests import them.
"""

import json
import sys
from pathlib import Path
from typing import Any, Callable, List
from unittest.mock import MagicMock

import pytest
import requests

src_dir: Path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_dir))

WEBHOOK = "https://acme.bitrix24.com.br/rest/163/abc123/"


def make_response(status: int, body: Any = None, raw: str = None) -> requests.Response:
    response = requests.Response()
    response.status_code = status
    response.encoding = "utf-8"
    if raw is not None:
        response._content = raw.encode("utf-8")
    else:
        response._content = json.dumps(body if body is not None else {}).encode("utf-8")
    return response


@pytest.fixture
def webhook() -> str:
    return WEBHOOK


@pytest.fixture
def fake_session() -> Callable[..., MagicMock]:
    """
    Build a session whose ``post`` returns (or raises) the given items in order.
    """
    def _build(*outcomes: Any) -> MagicMock:
        session = MagicMock(spec=requests.Session)
        session.post.side_effect = list(outcomes)
        return session
    return _build


@pytest.fixture
def sleeps() -> List[float]:
    return []


@pytest.fixture
def record_sleep(sleeps: List[float]) -> Callable[[float], None]:
    return sleeps.append
