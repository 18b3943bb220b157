import json

import httpx
import pytest
import respx

from onboardx.exceptions import ConfigurationError, UpstreamError
from onboardx.services.ai_gateway import (
    GatewayClient, GeminiClient, image_message, parse_data_uri, sse_event, text_message,
)
from tests.conftest import GATEWAY_URL, FakeCompletionClient


def stream_body(*contents):
    return b"".join(sse_event(c) for c in contents) + b"data: [DONE]\n\n"


def client(**kwargs):
    kwargs.setdefault("api_key", "k")
    return GatewayClient(url=GATEWAY_URL, model="chat-model", **kwargs)


@respx.mock
async def test_complete_posts_bearer_request_and_reads_first_choice():
    route = respx.post(GATEWAY_URL).mock(return_value=httpx.Response(
        200, json={"choices": [{"message": {"content": "Namaste!"}}]}
    ))

    reply = await client().complete([text_message("user", "hi")])

    assert reply == "Namaste!"
    request = route.calls.last.request
    assert request.headers["Authorization"] == "Bearer k"
    body = json.loads(request.content)
    assert body == {"model": "chat-model", "messages": [{"role": "user", "content": "hi"}], "stream": False}


@pytest.mark.parametrize("status", [402, 429, 503])
@respx.mock
async def test_non_success_status_raises_upstream_error(status):
    respx.post(GATEWAY_URL).mock(return_value=httpx.Response(status, text="nope"))
    with pytest.raises(UpstreamError) as exc_info:
        await client().complete([text_message("user", "hi")])
    assert exc_info.value.status_code == status


@respx.mock
async def test_transport_failure_is_a_bad_gateway():
    respx.post(GATEWAY_URL).mock(side_effect=httpx.ConnectError("refused"))
    with pytest.raises(UpstreamError) as exc_info:
        await client().complete([text_message("user", "hi")])
    assert exc_info.value.status_code == 502
    assert exc_info.value.public_status == 500


async def test_missing_key_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        await client(api_key="").complete([text_message("user", "hi")])


@respx.mock
async def test_stream_yields_decoded_deltas():
    respx.post(GATEWAY_URL).mock(return_value=httpx.Response(200, content=stream_body("Hel", "lo ", "₹")))

    deltas = [d async for d in client().stream([text_message("user", "hi")])]

    assert "".join(deltas) == "Hello ₹"


@respx.mock
async def test_open_event_stream_relays_upstream_bytes():
    body = stream_body("Hi")
    respx.post(GATEWAY_URL).mock(return_value=httpx.Response(200, content=body))

    relay = await client().open_event_stream([text_message("user", "hi")])
    received = b"".join([chunk async for chunk in relay])

    assert received == body


@respx.mock
async def test_open_event_stream_checks_status_before_relaying():
    respx.post(GATEWAY_URL).mock(return_value=httpx.Response(429, text="slow down"))
    with pytest.raises(UpstreamError) as exc_info:
        await client().open_event_stream([text_message("user", "hi")])
    assert exc_info.value.public_message == "Rate limit exceeded. Please try again later."


async def test_default_event_stream_wraps_plain_stream():
    relay = await FakeCompletionClient(["Hello there"]).open_event_stream([text_message("user", "hi")])
    received = b"".join([chunk async for chunk in relay]).decode()

    assert received.endswith("data: [DONE]\n\n")
    assert '"content": "Hello t"' in received


def test_upstream_error_public_messages():
    assert UpstreamError(402).public_message == "Usage limit reached. Please add credits."
    assert UpstreamError(402).public_status == 402
    assert UpstreamError(500).public_message == "AI gateway error"


def test_data_uri_round_trip_and_rejects_garbage():
    assert parse_data_uri("data:image/png;base64,aGk=") == ("image/png", b"hi")
    assert parse_data_uri("https://example.com/a.png") is None


def test_gemini_contents_split_system_and_map_roles():
    messages = [
        {"role": "system", "content": "Be brief."},
        {"role": "user", "content": "hi"},
        {"role": "assistant", "content": "hello"},
        image_message("user", "check this", [("aGk=", "image/png")]),
    ]

    system, contents = GeminiClient.to_contents(messages)

    assert system == "Be brief."
    assert [c["role"] for c in contents] == ["user", "model", "user"]
    assert contents[2]["parts"] == [{"mime_type": "image/png", "data": b"hi"}, "check this"]


async def test_gemini_without_key_is_a_configuration_error():
    with pytest.raises(ConfigurationError):
        await GeminiClient(api_key="").complete([text_message("user", "hi")])
