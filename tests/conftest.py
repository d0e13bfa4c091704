import asyncio
import json

import httpx
import pytest

from inference_routing.core import (
    CentralRouter, CloudInterface, LocalLLMInterface, SidecarInterface,
)
from inference_routing.models import (
    Backend, CloudConfig, LocalLLMConfig, RetryPolicy, RouterConfig, SidecarConfig,
)
from inference_routing.models.config import LoggingConfig

LOCAL_HOST = "ollama.test"
SIDECAR_HOST = "pico.test"
STANDARD_HOST = "cloud.test"
REASONING_HOST = "reasoning.test"


def make_config(sidecar_enabled=True, cloud_keys=True, local_timeout=5.0) -> RouterConfig:
    no_wait = RetryPolicy(max_attempts=1, backoff_base_delay=0.0)
    return RouterConfig(
        local_llm_config=LocalLLMConfig(
            base_url=f"http://{LOCAL_HOST}", model="qwen-test", timeout_seconds=local_timeout, retry=no_wait,
        ),
        sidecar_config=SidecarConfig(
            enabled=sidecar_enabled, base_url=f"http://{SIDECAR_HOST}", timeout_seconds=5.0, retry=no_wait,
        ),
        cloud_standard_config=CloudConfig(
            api_key="sk-test" if cloud_keys else "", base_url=f"https://{STANDARD_HOST}/v1",
            model="standard-model", timeout_seconds=5.0, retry=no_wait,
        ),
        cloud_reasoning_config=CloudConfig(
            api_key="sk-test" if cloud_keys else "", base_url=f"https://{REASONING_HOST}/v1",
            model="reasoning-model", timeout_seconds=5.0,
            retry=RetryPolicy(max_attempts=2, backoff_base_delay=0.0),
        ),
        logging_config=LoggingConfig(enable_file=False, enable_console=False),
    )


def completion_body(content, prompt_tokens=None, completion_tokens=None, model="m"):
    body = {
        "id": "chatcmpl-test",
        "object": "chat.completion",
        "created": 1700000000,
        "model": model,
        "choices": [{
            "index": 0,
            "message": {"role": "assistant", "content": content},
            "finish_reason": "stop",
        }],
    }
    if prompt_tokens is not None:
        body["usage"] = {
            "prompt_tokens": prompt_tokens,
            "completion_tokens": completion_tokens,
            "total_tokens": prompt_tokens + completion_tokens,
        }
    return body


class FakeBackends:
    """
    MockTransport handler standing in for every backend.

    Each backend has a mode: "ok", "error" (HTTP 500), "down" (connection
    refused), "malformed" (200 with a non-JSON body) or "slow" (sleeps).
    """

    def __init__(self):
        self.modes = {
            LOCAL_HOST: "ok",
            SIDECAR_HOST: "ok",
            STANDARD_HOST: "ok",
            REASONING_HOST: "ok",
        }
        self.calls = []
        self.bodies = []

    def set(self, backend: Backend, mode: str) -> None:
        host = {
            Backend.LOCAL_FAST: LOCAL_HOST,
            Backend.SIDECAR: SIDECAR_HOST,
            Backend.CLOUD_STANDARD: STANDARD_HOST,
            Backend.CLOUD_REASONING: REASONING_HOST,
        }[backend]
        self.modes[host] = mode

    def calls_to(self, host, path=None):
        return [c for c in self.calls if c[0] == host and (path is None or c[2] == path)]

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        host = request.url.host
        path = request.url.path
        self.calls.append((host, request.method, path))
        if request.content:
            self.bodies.append((host, path, json.loads(request.content)))

        mode = self.modes[host]
        if mode == "down":
            raise httpx.ConnectError("connection refused", request=request)
        if mode == "error":
            return httpx.Response(500, text="internal error")
        if mode == "malformed":
            return httpx.Response(200, text="<html>not json</html>")
        if mode == "slow":
            await asyncio.sleep(10)

        return self._ok(host, path)

    def _ok(self, host, path):
        if host == LOCAL_HOST:
            if path == "/api/tags":
                return httpx.Response(200, json={"models": [{"name": "qwen-test"}]})
            return httpx.Response(200, json={
                "model": "qwen-test",
                "message": {"role": "assistant", "content": "local reply"},
                "done": True,
                "prompt_eval_count": 12,
                "eval_count": 8,
            })
        if host == SIDECAR_HOST:
            if path == "/health":
                return httpx.Response(200, json={"status": "ok"})
            return httpx.Response(200, json={"response": "sidecar reply", "tokens_in": 5, "tokens_out": 7})
        if path.endswith("/models"):
            return httpx.Response(200, json={"object": "list", "data": []})
        if host == STANDARD_HOST:
            return httpx.Response(200, json=completion_body("standard reply", 10, 10))
        return httpx.Response(200, json=completion_body("reasoning reply", 1000, 1000))


def build_router(fake: FakeBackends, config: RouterConfig = None) -> CentralRouter:
    config = config or make_config()
    client = httpx.AsyncClient(transport=httpx.MockTransport(fake))
    probe_timeout = config.availability_config.probe_timeout_seconds
    return CentralRouter(
        config,
        local_llm=LocalLLMInterface(config.local_llm_config, http_client=client,
                                    probe_timeout_seconds=probe_timeout),
        sidecar=SidecarInterface(config.sidecar_config, http_client=client,
                                 probe_timeout_seconds=probe_timeout),
        cloud_standard=CloudInterface(Backend.CLOUD_STANDARD, config.cloud_standard_config,
                                      http_client=client, probe_timeout_seconds=probe_timeout),
        cloud_reasoning=CloudInterface(Backend.CLOUD_REASONING, config.cloud_reasoning_config,
                                       http_client=client, probe_timeout_seconds=probe_timeout),
    )


@pytest.fixture
def fake():
    return FakeBackends()


@pytest.fixture
def router(fake):
    return build_router(fake)


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()
