"""Shared fixtures. Upstream services are stubbed so no test touches the network."""

import json

import pytest
from fastapi.testclient import TestClient

from birdrelay import identify
from birdrelay.config import Settings
from birdrelay.main import create_app

STARLING_JSON = '{"birdName": "Superb Starling (Lamprotornis superbus)", "confidence": 0.92}'


class FakeResponse:
    """Just enough of requests.Response for the gateway client."""

    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        self._payload = payload
        self.text = text if text is not None else json.dumps(payload)

    def json(self):
        if self._payload is None:
            return json.loads(self.text)
        return self._payload


def chat_reply(content):
    return FakeResponse(200, {
        "choices": [{"index": 0, "message": {"role": "assistant", "content": content}}],
    })


class Recorder:
    """Callable stub that records its calls and returns (or raises) a fixed outcome."""

    def __init__(self, outcome):
        self.outcome = outcome
        self.calls = []

    def __call__(self, *args, **kwargs):
        self.calls.append((args, kwargs))
        if isinstance(self.outcome, Exception):
            raise self.outcome
        return self.outcome


@pytest.fixture
def settings(tmp_path):
    return Settings(
        openai_api_key="sk-test",
        ai_gateway_api_key="gw-test",
        db_path=str(tmp_path / "data" / "identifications.sqlite"),
    )


@pytest.fixture
def gateway(monkeypatch):
    fake = Recorder(chat_reply(STARLING_JSON))
    monkeypatch.setattr(identify.requests, "post", fake)
    return fake


@pytest.fixture
def transcriber(monkeypatch):
    fake = Recorder("A series of loud, metallic chattering whistles")
    monkeypatch.setattr(identify, "transcribe_audio", fake)
    return fake


@pytest.fixture
def client(settings):
    return TestClient(create_app(settings))
