"""Pytest fixtures for the RumbleOn Tracker QA suite."""

import os

import pytest
import requests

import tracker_common
from tracker_common import ENV_KEYS


@pytest.fixture(autouse=True)
def temp_log_file(tmp_path, monkeypatch):
    """Keep test runs out of the real rumbleon_tracker.log."""
    log_file = tmp_path / "rumbleon_tracker.log"
    monkeypatch.setattr(tracker_common, "LOG_FILE", log_file)
    return log_file


@pytest.fixture
def clean_env():
    """Remove tracker variables from the environment (restored afterwards)."""
    saved = {name: os.environ.pop(name) for name in ENV_KEYS.values() if name in os.environ}
    yield
    for name in ENV_KEYS.values():
        os.environ.pop(name, None)
    os.environ.update(saved)


@pytest.fixture
def config():
    return {
        "mailgun_api_key": "key-123",
        "mailgun_domain": "sandbox42",
        "destination_email": "rider@example.com",
        "rumbleon_token": "dG9rZW4=",
    }


class FakeResponse:
    def __init__(self, status_code=200, json_data=None, text=""):
        self.status_code = status_code
        self._json = json_data
        self.text = text
        self.reason = "OK" if status_code < 400 else "Error"

    @property
    def ok(self):
        return self.status_code < 400

    def raise_for_status(self):
        if not self.ok:
            raise requests.HTTPError(f"{self.status_code} {self.reason}", response=self)

    def json(self):
        if self._json is None:
            raise ValueError("No JSON object could be decoded")
        return self._json


class FakeSession:
    """Records post() calls and replays a canned response or error."""

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []
        self.closed = False

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if self.error is not None:
            raise self.error
        return self.response

    def close(self):
        self.closed = True


@pytest.fixture
def fake_response():
    return FakeResponse


@pytest.fixture
def fake_session():
    return FakeSession
