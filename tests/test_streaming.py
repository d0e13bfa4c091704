import asyncio
import json

import httpx
import pytest

from inference_routing.core.interfaces import LocalLLMInterface
from inference_routing.core.streaming import decode_stream_line
from inference_routing.models import ConversationMessage, LocalLLMConfig
from inference_routing.utils.error_handling import BackendError

MESSAGES = [ConversationMessage.user("Tell me a story")]


def ndjson(*units):
    return "\n".join(u if isinstance(u, str) else json.dumps(u) for u in units) + "\n"


def fragment(text):
    return {"message": {"role": "assistant", "content": text}, "done": False}


def streaming_local(body, status=200):
    def handler(request):
        payload = json.loads(request.content)
        assert payload["stream"] is True
        return httpx.Response(status, content=body.encode())

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return LocalLLMInterface(LocalLLMConfig(base_url="http://ollama.test"), http_client=client)


@pytest.mark.asyncio
async def test_chunks_are_delivered_in_order_with_reported_counts():
    body = ndjson(
        fragment("Once "),
        fragment("upon "),
        fragment("a time."),
        {"message": {"content": ""}, "done": True, "prompt_eval_count": 9, "eval_count": 4},
    )
    chunks = []

    usage = await streaming_local(body).stream_chat(MESSAGES, chunks.append)

    assert chunks == ["Once ", "upon ", "a time."]
    assert (usage.tokens_in, usage.tokens_out) == (9, 4)


@pytest.mark.asyncio
async def test_malformed_units_are_skipped():
    body = ndjson(fragment("one "), "{not json", "", "[1, 2]", fragment("two"), {"done": True})
    chunks = []

    await streaming_local(body).stream_chat(MESSAGES, chunks.append)

    assert chunks == ["one ", "two"]


@pytest.mark.asyncio
async def test_counts_are_estimated_without_usage():
    body = ndjson(fragment("a" * 16), fragment("b" * 8), {"done": True})

    usage = await streaming_local(body).stream_chat(MESSAGES, lambda text: None)

    assert usage.tokens_out == 6
    assert usage.tokens_in == 4  # "Tell me a story" is 15 chars


@pytest.mark.asyncio
async def test_stream_without_terminal_unit_still_reports_usage():
    usage = await streaming_local(ndjson(fragment("abcd"))).stream_chat(MESSAGES, lambda text: None)
    assert usage.tokens_out == 1


@pytest.mark.asyncio
async def test_async_callback_is_awaited():
    received = []

    async def on_chunk(text):
        received.append(text.upper())

    await streaming_local(ndjson(fragment("hi"), {"done": True})).stream_chat(MESSAGES, on_chunk)

    assert received == ["HI"]


@pytest.mark.asyncio
async def test_error_status_raises_backend_error():
    with pytest.raises(BackendError) as excinfo:
        await streaming_local("model not found", status=404).stream_chat(MESSAGES, lambda text: None)
    assert excinfo.value.status_code == 404


@pytest.mark.asyncio
async def test_connection_failure_raises_backend_error():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    adapter = LocalLLMInterface(LocalLLMConfig(base_url="http://ollama.test"), http_client=client)

    with pytest.raises(BackendError):
        await adapter.stream_chat(MESSAGES, lambda text: None)


def test_decode_terminal_unit():
    unit = decode_stream_line('{"done": true, "prompt_eval_count": 3, "eval_count": 7}')
    assert unit.done is True
    assert (unit.tokens_in, unit.tokens_out) == (3, 7)
    assert unit.text == ""


@pytest.mark.parametrize("line", ["", "   ", "{oops", "42", '"text"'])
def test_decode_rejects_blank_and_malformed_lines(line):
    assert decode_stream_line(line) is None


def test_decode_ignores_nonsense_counts():
    unit = decode_stream_line('{"done": true, "prompt_eval_count": -1, "eval_count": "many"}')
    assert unit.tokens_in is None
    assert unit.tokens_out is None


class TricklingStream(httpx.AsyncByteStream):
    """Sends one NDJSON unit at a time with a pause before each."""

    def __init__(self, units, delay):
        self.units = units
        self.delay = delay

    async def __aiter__(self):
        for unit in self.units:
            await asyncio.sleep(self.delay)
            yield (json.dumps(unit) + "\n").encode()


@pytest.mark.asyncio
async def test_slow_trickle_is_aborted_at_overall_deadline():
    units = [fragment(f"w{i} ") for i in range(20)] + [{"done": True}]

    def handler(request):
        return httpx.Response(200, stream=TricklingStream(units, delay=0.03))

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    adapter = LocalLLMInterface(LocalLLMConfig(base_url="http://ollama.test", timeout_seconds=0.1),
                                http_client=client)
    chunks = []

    with pytest.raises(BackendError) as excinfo:
        await adapter.stream_chat(MESSAGES, chunks.append)

    assert "timed out" in str(excinfo.value)
    assert len(chunks) < 20
