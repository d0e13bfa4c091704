"""
Backend adapters for the local LLM, the sidecar, the cloud models and the offline fallback.

Every adapter turns a conversation into a ``BackendReply`` or raises
``BackendError``. Token counts are taken from the backend's usage metadata
when present and estimated from character length otherwise.
"""

import asyncio
import math
import time
from typing import List, Optional, Sequence

import httpx
from openai import AsyncOpenAI

from ..models import Backend, BackendReply, ConversationMessage, Role, StreamUsage
from ..models.config import CloudConfig, LocalLLMConfig, RetryPolicy, SidecarConfig
from ..utils import get_logger
from ..utils.error_handling import BackendError, MalformedResponseError, as_backend_error, retry_async
from .streaming import ChunkCallback, decode_stream_line, emit_chunk, token_count


def last_user_content(messages: Sequence[ConversationMessage]) -> str:
    """Content of the most recent user message, or of the last message if none is from the user."""
    for message in reversed(messages):
        if message.role is Role.USER:
            return message.content
    return messages[-1].content if messages else ""


def system_content(messages: Sequence[ConversationMessage]) -> Optional[str]:
    parts = [m.content for m in messages if m.role is Role.SYSTEM]
    return "\n\n".join(parts) if parts else None


class BackendInterface:
    """
    Base class for backend adapters.

    Subclasses implement ``_send`` (one attempt) and ``probe``. ``call`` wraps
    ``_send`` with the adapter's retry policy and a per-attempt timeout.
    """

    backend: Backend

    def __init__(self, timeout_seconds: float, retry: Optional[RetryPolicy] = None,
                 probe_timeout_seconds: float = 3.0):
        self.logger = get_logger(__name__)
        self.timeout_seconds = timeout_seconds
        self.retry = retry or RetryPolicy()
        self.probe_timeout_seconds = probe_timeout_seconds

    @property
    def model_identifier(self) -> str:
        raise NotImplementedError

    async def call(self, messages: Sequence[ConversationMessage]) -> BackendReply:
        """
        Send a conversation and return the normalized reply.

        Raises:
            BackendError: on timeout, non-success status or malformed body
        """
        self._ensure_ready()

        async def attempt() -> BackendReply:
            try:
                return await asyncio.wait_for(self._send(messages), timeout=self.timeout_seconds)
            except Exception as e:
                raise as_backend_error(self.backend, e) from e

        return await retry_async(attempt, self.retry, logger=self.logger)

    async def probe(self) -> bool:
        raise NotImplementedError

    async def aclose(self) -> None:
        pass

    def estimate_tokens(self, text: str) -> int:
        """Rough token count: one token per four characters."""
        return math.ceil(len(text) / 4)

    def _ensure_ready(self) -> None:
        pass

    async def _send(self, messages: Sequence[ConversationMessage]) -> BackendReply:
        raise NotImplementedError

    def _prompt_text(self, messages: Sequence[ConversationMessage]) -> str:
        return "".join(m.content for m in messages)


class _HTTPBackendInterface(BackendInterface):
    """Adapter that talks to its backend through an httpx client."""

    def __init__(self, timeout_seconds: float, retry: Optional[RetryPolicy],
                 probe_timeout_seconds: float, http_client: Optional[httpx.AsyncClient]):
        super().__init__(timeout_seconds, retry, probe_timeout_seconds)
        self._owns_http = http_client is None
        self._http = http_client or httpx.AsyncClient()

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    async def _get_ok(self, url: str) -> bool:
        response = await self._http.get(url, timeout=self.probe_timeout_seconds)
        return response.is_success


class LocalLLMInterface(_HTTPBackendInterface):
    """
    Adapter for the always-on local Ollama server.

    Uses ``POST /api/chat``. Availability is assumed unless ``health_check``
    is enabled, in which case ``GET /api/tags`` is probed.
    """

    backend = Backend.LOCAL_FAST

    def __init__(self, config: Optional[LocalLLMConfig] = None, http_client: Optional[httpx.AsyncClient] = None,
                 probe_timeout_seconds: float = 3.0):
        self.config = config or LocalLLMConfig()
        super().__init__(self.config.timeout_seconds, self.config.retry, probe_timeout_seconds, http_client)
        self.logger.info(f"Initialized LocalLLMInterface with model: {self.config.model}")

    @property
    def model_identifier(self) -> str:
        return self.config.model

    @property
    def base_url(self) -> str:
        return self.config.base_url.rstrip("/")

    def _payload(self, messages: Sequence[ConversationMessage], stream: bool) -> dict:
        return {
            "model": self.config.model,
            "messages": [m.to_dict() for m in messages],
            "stream": stream,
            "options": {
                "temperature": self.config.temperature,
                "num_predict": self.config.max_tokens,
            },
        }

    async def _send(self, messages: Sequence[ConversationMessage]) -> BackendReply:
        start_time = time.monotonic()
        response = await self._http.post(
            f"{self.base_url}/api/chat",
            json=self._payload(messages, stream=False),
            timeout=self.config.timeout_seconds,
        )
        response.raise_for_status()
        data = response.json()

        message = data.get("message") if isinstance(data, dict) else None
        if not isinstance(message, dict) or not isinstance(message.get("content"), str):
            raise MalformedResponseError("Response has no message content", self.backend)

        content = message["content"]
        self.logger.debug(f"Ollama response in {time.monotonic() - start_time:.2f}s (model: {self.config.model})")

        return BackendReply(
            content=content,
            tokens_in=token_count(data.get("prompt_eval_count")) or self.estimate_tokens(self._prompt_text(messages)),
            tokens_out=token_count(data.get("eval_count")) or self.estimate_tokens(content),
        )

    async def stream_chat(self, messages: Sequence[ConversationMessage], on_chunk: ChunkCallback) -> StreamUsage:
        """
        Stream a reply, invoking ``on_chunk`` once per text fragment in arrival order.

        Malformed units are skipped. Token counts come from the terminal unit
        when reported and are estimated from character length otherwise.

        Raises:
            BackendError: if the stream cannot be opened, breaks off or
                outlives ``timeout_seconds`` as a whole
        """
        fragments: List[str] = []
        terminal = []

        async def consume() -> None:
            async with self._http.stream(
                "POST",
                f"{self.base_url}/api/chat",
                json=self._payload(messages, stream=True),
                timeout=self.config.timeout_seconds,
            ) as response:
                if response.is_error:
                    await response.aread()
                    response.raise_for_status()

                async for line in response.aiter_lines():
                    unit = decode_stream_line(line)
                    if unit is None:
                        continue
                    if unit.text:
                        fragments.append(unit.text)
                        await emit_chunk(on_chunk, unit.text)
                    if unit.done:
                        terminal.append(unit)
                        break

        # httpx timeouts apply per read; the deadline covers the whole stream
        try:
            await asyncio.wait_for(consume(), timeout=self.config.timeout_seconds)
        except (httpx.HTTPError, asyncio.TimeoutError) as e:
            raise as_backend_error(self.backend, e) from e

        tokens_in: Optional[int] = None
        tokens_out: Optional[int] = None
        if terminal:
            tokens_in, tokens_out = terminal[0].tokens_in, terminal[0].tokens_out
        else:
            self.logger.warning("Stream ended without a terminal unit; using estimated token counts")

        return StreamUsage(
            tokens_in=tokens_in or self.estimate_tokens(self._prompt_text(messages)),
            tokens_out=tokens_out or self.estimate_tokens("".join(fragments)),
        )

    async def probe(self) -> bool:
        if not self.config.health_check:
            return True
        return await self._get_ok(f"{self.base_url}/api/tags")


class SidecarInterface(_HTTPBackendInterface):
    """
    Adapter for the lightweight sidecar specialist.

    The sidecar takes a single message plus an optional system prompt rather
    than a full conversation.
    """

    backend = Backend.SIDECAR

    def __init__(self, config: Optional[SidecarConfig] = None, http_client: Optional[httpx.AsyncClient] = None,
                 probe_timeout_seconds: float = 3.0):
        self.config = config or SidecarConfig()
        super().__init__(self.config.timeout_seconds, self.config.retry, probe_timeout_seconds, http_client)

    @property
    def model_identifier(self) -> str:
        return self.config.model

    @property
    def base_url(self) -> str:
        return self.config.base_url.rstrip("/")

    async def _send(self, messages: Sequence[ConversationMessage]) -> BackendReply:
        message = last_user_content(messages)
        response = await self._http.post(
            f"{self.base_url}/api/chat",
            json={"message": message, "system": system_content(messages)},
            timeout=self.config.timeout_seconds,
        )
        response.raise_for_status()
        data = response.json()

        if not isinstance(data, dict) or ("response" not in data and "text" not in data):
            raise MalformedResponseError("Response has neither 'response' nor 'text'", self.backend)

        text = data.get("response") or data.get("text") or ""
        if not isinstance(text, str):
            raise MalformedResponseError("Reply text is not a string", self.backend)

        return BackendReply(
            content=text,
            tokens_in=token_count(data.get("tokens_in")) or self.estimate_tokens(message),
            tokens_out=token_count(data.get("tokens_out")) or self.estimate_tokens(text),
        )

    async def probe(self) -> bool:
        if not self.config.enabled:
            return False
        return await self._get_ok(f"{self.base_url}/health")


class CloudInterface(BackendInterface):
    """
    Adapter for OpenAI-compatible cloud endpoints (standard and reasoning tiers).

    Without an API key the backend is never probed and every call fails.
    """

    def __init__(self, backend: Backend, config: Optional[CloudConfig] = None,
                 http_client: Optional[httpx.AsyncClient] = None, probe_timeout_seconds: float = 3.0):
        if not backend.is_cloud:
            raise ValueError(f"{backend} is not a cloud backend")
        self.backend = backend
        self.config = config or CloudConfig()
        super().__init__(self.config.timeout_seconds, self.config.retry, probe_timeout_seconds)
        self._owns_http = http_client is None

        if not self.config.configured:
            self.logger.warning(f"{backend.value}: API key not provided")
            self._client = None
        else:
            self._client = AsyncOpenAI(
                api_key=self.config.api_key,
                base_url=self.config.base_url,
                timeout=self.config.timeout_seconds,
                max_retries=0,
                http_client=http_client,
                default_headers={
                    "HTTP-Referer": self.config.referer,
                    "X-Title": self.config.app_title,
                },
            )

    @property
    def model_identifier(self) -> str:
        return self.config.model

    def _ensure_ready(self) -> None:
        if self._client is None:
            raise BackendError("API key not configured", self.backend)

    async def _send(self, messages: Sequence[ConversationMessage]) -> BackendReply:
        completion = await self._client.chat.completions.create(
            model=self.config.model,
            messages=[m.to_dict() for m in messages],
            max_tokens=self.config.max_tokens,
            temperature=self.config.temperature,
        )

        choices = getattr(completion, "choices", None)
        if not choices:
            raise MalformedResponseError("Response has no choices", self.backend)

        message = getattr(choices[0], "message", None)
        content = getattr(message, "content", None) or ""
        usage = getattr(completion, "usage", None)

        return BackendReply(
            content=content,
            tokens_in=token_count(getattr(usage, "prompt_tokens", None)) or self.estimate_tokens(self._prompt_text(messages)),
            tokens_out=token_count(getattr(usage, "completion_tokens", None)) or self.estimate_tokens(content),
        )

    async def probe(self) -> bool:
        if self._client is None:
            return False
        await self._client.with_options(timeout=self.probe_timeout_seconds).models.list()
        return True

    async def aclose(self) -> None:
        if self._client is not None and self._owns_http:
            await self._client.close()


class OfflineInterface(BackendInterface):
    """Terminal backend: never fails, always answers with a fixed apology."""

    backend = Backend.OFFLINE

    def __init__(self, message: str):
        super().__init__(timeout_seconds=1.0)
        self.message = message

    @property
    def model_identifier(self) -> str:
        return "builtin-fallback"

    async def call(self, messages: Sequence[ConversationMessage]) -> BackendReply:
        return BackendReply(
            content=self.message,
            tokens_in=max(1, self.estimate_tokens(last_user_content(messages))),
            tokens_out=max(1, self.estimate_tokens(self.message)),
        )

    async def probe(self) -> bool:
        return True
