"""
Shared pytest setup.

- Puts the project root on sys.path so `import enigma` works without an
  editable install.
- Clears every PPLX_* variable and runs each test from an empty temporary
  directory, so a developer's own .env / .pplxrc never leaks into results.
"""

import json
import sys
from pathlib import Path
from unittest import mock

import pytest
import requests

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from enigma.config import SETTINGS, ApiConfig, EnigmaConfig  # noqa: E402


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for setting in SETTINGS:
        monkeypatch.delenv(setting.env, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def config_with_key() -> EnigmaConfig:
    return EnigmaConfig(api=ApiConfig(key="pplx-test"))


def make_response(status: int = 200, body=None, text: str | None = None) -> requests.Response:
    """A real requests.Response carrying a canned body."""
    resp = requests.Response()
    resp.status_code = status
    if body is not None:
        resp._content = json.dumps(body).encode("utf-8")
    else:
        resp._content = (text or "").encode("utf-8")
    resp._content_consumed = True
    resp.encoding = "utf-8"
    resp.url = "https://api.perplexity.ai/chat/completions"
    return resp


def make_stream_response(chunks, error: Exception | None = None):
    """Mock streamed response yielding `chunks`, optionally failing afterwards."""
    resp = mock.MagicMock()
    resp.status_code = 200
    resp.raise_for_status.return_value = None

    def _iter_content(chunk_size=None):
        yield from chunks
        if error is not None:
            raise error

    resp.iter_content.side_effect = _iter_content
    return resp


@pytest.fixture
def session():
    return mock.MagicMock(spec=requests.Session)
