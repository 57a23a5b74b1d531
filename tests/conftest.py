import time
import threading
from typing import Optional
from unittest.mock import MagicMock

import pytest

from maildetective.config import Settings
from maildetective.core.rules import load_detection_lists
from maildetective.core.threat_intel import SourceClient, SourceError
from maildetective.schemas import SourceVerdict


class StubClient(SourceClient):
    """Scripted source: returns a verdict, reports absence, raises, or hangs"""

    def __init__(self, name: str, verdict: Optional[SourceVerdict] = None,
                 error: Optional[str] = None, raises: Optional[Exception] = None,
                 delay: float = 0.0, hold: Optional[threading.Event] = None,
                 requires_credential: bool = False):
        self.name = name
        self.verdict = verdict
        self.error = error
        self.raises = raises
        self.delay = delay
        self.hold = hold
        self.requires_credential = requires_credential
        self.calls = 0
        self.closed = False

    def _lookup(self, value, credential):
        self.calls += 1
        if self.hold is not None:
            self.hold.wait(10)
        elif self.delay:
            time.sleep(self.delay)
        if self.raises is not None:
            raise self.raises
        if self.error is not None:
            raise SourceError(self.name, self.error)
        return self.verdict

    def close(self):
        self.closed = True


@pytest.fixture(scope="session")
def lists():
    return load_detection_lists()


@pytest.fixture
def offline_settings():
    """Settings with every credential blank, ignoring any local .env"""
    return Settings(
        _env_file=None,
        VIRUSTOTAL_API_KEY=None,
        URLVOID_API_KEY=None,
        PHISHTANK_APP_KEY=None,
        HUNTER_API_KEY=None,
        DETECTION_LISTS_PATH=None,
        AGGREGATE_TIMEOUT_SECONDS=5.0,
    )


@pytest.fixture
def stub_client():
    return StubClient


@pytest.fixture
def hold():
    """An event that keeps hanging stubs blocked until the test finishes"""
    event = threading.Event()
    yield event
    event.set()


def make_response(status_code=200, json_data=None, text='', json_error=None):
    response = MagicMock()
    response.status_code = status_code
    response.text = text
    if json_error is not None:
        response.json.side_effect = json_error
    else:
        response.json.return_value = json_data
    return response


@pytest.fixture
def http_session():
    session = MagicMock()
    session.headers = {}
    return session


@pytest.fixture
def response_factory():
    return make_response
