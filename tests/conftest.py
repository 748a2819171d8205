"""
Shared fixtures: a canned model payload, a hand-stepped clock, a counting
capture source and a fake Anthropic client.
"""

import json
from types import SimpleNamespace

import httpx
import pytest

from capture import NOT_READY
from models import AnalysisResult, TextUnit


def make_payload(**overrides) -> dict:
    payload = {
        "productName": "Zero Bar",
        "summary": "Claims no added sugar but uses Maltodextrin and Corn Syrup.",
        "audioScript": "Put it back. Hidden sugars.",
        "shareContent": "🚨 Deceptive Label Alert! I just scanned Zero Bar. (Score: 28/100)",
        "healthScore": 28,
        "intentInference": "Checking for hidden sugars",
        "dietaryClassification": "veg",
        "uncertainty": {"detected": True, "reason": "Edible Vegetable Oil is unspecified."},
        "villains": [
            {"name": "Maltodextrin", "explanation": "A processed corn sugar that spikes insulin."},
            {"name": "Corn Syrup", "explanation": "Liquid sugar."},
        ],
        "tradeoffs": {"pros": ["High fiber."], "cons": ["Contains Corn Syrup."]},
        "insights": [
            {"title": "Hidden sugar", "description": "Maltodextrin acts like sugar.", "type": "critical", "confidence": 0.9},
        ],
        "radarData": [
            {"subject": s, "A": 50, "fullMark": 100}
            for s in ("Processing", "Nutrition", "Safety", "Honesty", "Sustainability")
        ],
        "reasoningTrace": ["Read label", "Found Maltodextrin"],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def payload() -> dict:
    return make_payload()


@pytest.fixture
def result() -> AnalysisResult:
    return AnalysisResult.from_dict(make_payload())


class FakeClock:
    def __init__(self, now: float = 100.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


class CountingSource:
    def __init__(self, text: str = "Sugar, Maltodextrin, Corn Syrup"):
        self.text = text
        self.captures = 0

    def capture(self):
        self.captures += 1
        return TextUnit(self.text) if self.text else NOT_READY


@pytest.fixture
def source() -> CountingSource:
    return CountingSource()


# ── Fake Anthropic client ────────────────────────────────────────────────────

def text_response(text: str, stop_reason: str = "end_turn"):
    return SimpleNamespace(content=[SimpleNamespace(type="text", text=text)], stop_reason=stop_reason)


class FakeMessages:
    def __init__(self, reply=None, error: Exception | None = None):
        self.reply = reply
        self.error = error
        self.calls = []

    def _respond(self, kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        return self.reply


class AsyncFakeMessages(FakeMessages):
    async def create(self, **kwargs):
        return self._respond(kwargs)


class SyncFakeMessages(FakeMessages):
    def create(self, **kwargs):
        return self._respond(kwargs)


class FakeClientFactory:
    """Stands in for anthropic.AsyncAnthropic / anthropic.Anthropic."""

    def __init__(self, messages: FakeMessages):
        self.messages = messages
        self.api_keys = []

    def __call__(self, api_key: str):
        self.api_keys.append(api_key)
        return SimpleNamespace(messages=self.messages)


def status_error(cls, status: int):
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    response = httpx.Response(status, request=request)
    return cls(f"Error code: {status}", response=response, body=None)


def connection_error(cls):
    return cls(request=httpx.Request("POST", "https://api.anthropic.com/v1/messages"))


@pytest.fixture
def json_reply():
    return lambda payload: text_response(json.dumps(payload))
