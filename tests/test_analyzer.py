import asyncio
import json

import anthropic
import pytest

from analyzer import SYSTEM_PROMPT, analyze, build_content, classify_error
from conftest import AsyncFakeMessages, FakeClientFactory, connection_error, make_payload, status_error, text_response
from errors import ErrorKind, MissingCredential, ParseFailure
from models import ImageUnit, TextUnit


def run(unit, instruction, credential, factory):
    return asyncio.run(analyze(unit, instruction, credential, client_factory=factory))


def test_text_unit_returns_result(json_reply):
    messages = AsyncFakeMessages(reply=json_reply(make_payload()))
    factory = FakeClientFactory(messages)

    result = run(TextUnit("Sugar, Maltodextrin"), None, " sk-test ", factory)

    assert result.health_score == 28
    assert factory.api_keys == ["sk-test"]
    call = messages.calls[0]
    assert call["system"] == SYSTEM_PROMPT
    assert 'Analyze this food product/ingredient list: "Sugar, Maltodextrin"' in call["messages"][0]["content"][0]["text"]


def test_image_unit_sends_base64_block_and_persona():
    content = build_content(ImageUnit(b"\xff\xd8jpeg", "image/jpeg"), "User is Diabetic.")

    assert content[0]["type"] == "image"
    assert content[0]["source"]["media_type"] == "image/jpeg"
    assert content[0]["source"]["data"] == "/9hqcGVn"
    assert "USER PERSONA: User is Diabetic." in content[1]["text"]


def test_no_persona_line_without_instruction():
    content = build_content(TextUnit("oats"), None)

    assert "USER PERSONA" not in content[0]["text"]


def test_fenced_json_is_accepted():
    reply = text_response("Here you go:\n```json\n" + json.dumps(make_payload()) + "\n```")
    result = run(TextUnit("oats"), None, "sk", FakeClientFactory(AsyncFakeMessages(reply=reply)))

    assert result.product_name == "Zero Bar"


@pytest.mark.parametrize("credential", [None, "", "   "])
def test_missing_credential_makes_no_call(credential):
    messages = AsyncFakeMessages(reply=None)
    factory = FakeClientFactory(messages)

    with pytest.raises(MissingCredential) as exc:
        run(TextUnit("oats"), None, credential, factory)

    assert exc.value.needs_credentials
    assert factory.api_keys == []
    assert messages.calls == []


@pytest.mark.parametrize("reply", [
    text_response("I cannot read this label."),
    text_response("{not json}"),
    text_response(""),
    text_response('{"summary": "partial"}'),
    text_response('{"summary": "cut', stop_reason="max_tokens"),
])
def test_bad_payloads_are_parse_failures(reply):
    with pytest.raises(ParseFailure):
        run(TextUnit("oats"), None, "sk", FakeClientFactory(AsyncFakeMessages(reply=reply)))


@pytest.mark.parametrize("error, kind", [
    (status_error(anthropic.RateLimitError, 429), ErrorKind.QUOTA_EXCEEDED),
    (status_error(anthropic.AuthenticationError, 401), ErrorKind.PERMISSION_DENIED),
    (status_error(anthropic.PermissionDeniedError, 403), ErrorKind.PERMISSION_DENIED),
    (status_error(anthropic.InternalServerError, 500), ErrorKind.NETWORK_FAILURE),
    (status_error(anthropic.BadRequestError, 400), ErrorKind.NETWORK_FAILURE),
    (status_error(anthropic.APIStatusError, 429), ErrorKind.QUOTA_EXCEEDED),
    (connection_error(anthropic.APIConnectionError), ErrorKind.NETWORK_FAILURE),
    (connection_error(anthropic.APITimeoutError), ErrorKind.NETWORK_FAILURE),
])
def test_sdk_errors_are_classified(error, kind):
    assert classify_error(error).kind is kind

    factory = FakeClientFactory(AsyncFakeMessages(error=error))
    with pytest.raises(Exception) as exc:
        run(TextUnit("oats"), None, "sk", factory)
    assert exc.value.kind is kind
    assert exc.value.__cause__ is error


def test_one_call_per_analysis_even_on_failure():
    messages = AsyncFakeMessages(error=status_error(anthropic.InternalServerError, 503))

    with pytest.raises(Exception):
        run(TextUnit("oats"), None, "sk", FakeClientFactory(messages))

    assert len(messages.calls) == 1
