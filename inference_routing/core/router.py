"""
Central Router implementation: backend selection, execution and fallback cascade.
"""

import time
from typing import Any, Dict, List, Optional, Sequence

from ..models import (
    Backend, ConversationMessage, Intent, RouterConfig, RoutingAttempt,
    RoutingRequest, RoutingResult, BackendReply, StreamUsage,
)
from ..utils import get_logger, RoutingLogger
from ..utils.error_handling import BackendError, as_backend_error
from .availability import AvailabilityOracle
from .classifier import IntentClassifier
from .credits import CreditCalculator
from .interfaces import (
    BackendInterface, CloudInterface, LocalLLMInterface, OfflineInterface,
    SidecarInterface, last_user_content,
)
from .streaming import ChunkCallback


class CentralRouter:
    """
    Central router for chat-style requests.

    Classifies each request, picks a backend (free tier first), calls it under
    a timeout and walks the fallback cascade on failure. ``execute`` always
    returns a ``RoutingResult``; when no backend can answer, the result comes
    from the offline backend. Every adapter attempt is logged and kept in a
    bounded routing log for audit.
    """

    def __init__(self, config: Optional[RouterConfig] = None,
                 local_llm: Optional[LocalLLMInterface] = None,
                 sidecar: Optional[SidecarInterface] = None,
                 cloud_standard: Optional[CloudInterface] = None,
                 cloud_reasoning: Optional[CloudInterface] = None,
                 availability: Optional[AvailabilityOracle] = None):
        self.config = config or RouterConfig()
        self.logger = get_logger(__name__)
        self.audit = RoutingLogger()

        probe_timeout = self.config.availability_config.probe_timeout_seconds

        # Initialize components
        self.classifier = IntentClassifier()
        self.credits = CreditCalculator(self.config.credit_config)
        self.local_llm = local_llm or LocalLLMInterface(
            self.config.local_llm_config, probe_timeout_seconds=probe_timeout)
        self.sidecar = sidecar or SidecarInterface(
            self.config.sidecar_config, probe_timeout_seconds=probe_timeout)
        self.cloud_standard = cloud_standard or CloudInterface(
            Backend.CLOUD_STANDARD, self.config.cloud_standard_config, probe_timeout_seconds=probe_timeout)
        self.cloud_reasoning = cloud_reasoning or CloudInterface(
            Backend.CLOUD_REASONING, self.config.cloud_reasoning_config, probe_timeout_seconds=probe_timeout)
        self.offline = OfflineInterface(self.config.offline_message)

        self._adapters: Dict[Backend, BackendInterface] = {
            Backend.LOCAL_FAST: self.local_llm,
            Backend.SIDECAR: self.sidecar,
            Backend.CLOUD_STANDARD: self.cloud_standard,
            Backend.CLOUD_REASONING: self.cloud_reasoning,
            Backend.OFFLINE: self.offline,
        }
        missing = set(Backend) - set(self._adapters)
        if missing:
            raise RuntimeError(f"No adapter for backends: {sorted(b.value for b in missing)}")

        self.availability = availability or AvailabilityOracle(
            {backend: adapter.probe for backend, adapter in self._adapters.items()},
            ttl_seconds=self.config.availability_config.ttl_seconds,
        )

        # Attempt log for audit trail
        self.routing_log: List[RoutingAttempt] = []
        self._max_log_entries = self.config.max_log_entries

        self._routing_stats = {
            'total_requests': 0,
            'successful_routes': 0,
            'fallback_routes': 0,
            'offline_routes': 0,
            'backend_usage': {backend.value: 0 for backend in Backend}
        }

        self.logger.info("CentralRouter initialized with all backends")

    async def __aenter__(self) -> "CentralRouter":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close HTTP clients owned by the adapters."""
        for adapter in self._adapters.values():
            await adapter.aclose()

    async def select_backend(self, intent: Intent, forced_backend: Optional[Backend] = None,
                             user_credit_balance: Optional[int] = None) -> Backend:
        """
        Pick the primary backend for a request.

        A forced backend is returned verbatim. Otherwise, first match wins:
        sidecar for automation intents, the local backend, the sidecar, and
        only then the cloud (reasoning before standard) if the caller's credit
        balance is unknown or positive.

        Args:
            intent: Classified intent of the request
            forced_backend: Backend requested explicitly by the caller
            user_credit_balance: Caller's credit balance, if known

        Returns:
            Backend: the primary backend
        """
        if forced_backend is not None:
            return forced_backend

        if intent is Intent.AUTOMATION and await self.availability.is_up(Backend.SIDECAR):
            return Backend.SIDECAR
        if await self.availability.is_up(Backend.LOCAL_FAST):
            return Backend.LOCAL_FAST
        if await self.availability.is_up(Backend.SIDECAR):
            return Backend.SIDECAR

        if user_credit_balance is not None and user_credit_balance <= 0:
            self.logger.info("Local backends down and no credits left; answering offline")
            return Backend.OFFLINE

        if await self.availability.is_up(Backend.CLOUD_REASONING):
            return Backend.CLOUD_REASONING
        if await self.availability.is_up(Backend.CLOUD_STANDARD):
            return Backend.CLOUD_STANDARD
        return Backend.OFFLINE

    async def execute(self, request: RoutingRequest) -> RoutingResult:
        """
        Route a request and return the terminal answer.

        Runtime failures never propagate: a failing backend leads to the next
        step of the cascade and ultimately to the offline backend.

        Args:
            request: The routing request

        Returns:
            RoutingResult: reply, backend used, token counts and cost

        Raises:
            ValueError: if the request has no messages
        """
        if not request.messages:
            raise ValueError("RoutingRequest.messages must not be empty")

        start_time = time.monotonic()
        self._routing_stats['total_requests'] += 1

        intent = self.classifier.classify(last_user_content(request.messages))
        messages = self._assemble_messages(request.messages, request.system_prompt)

        primary = await self.select_backend(intent, request.forced_backend, request.user_credit_balance)
        self.logger.info(
            f"Routing {intent.value} request to {primary.value}"
            f"{' (forced)' if request.forced_backend is not None else ''}"
        )

        attempts: List[RoutingAttempt] = []
        backend = primary
        while True:
            reply = await self._attempt(backend, messages, intent, attempts, request.agent_name)
            if reply is not None:
                break
            next_backend = await self._next_in_cascade(primary, backend)
            self.audit.log_fallback(backend.value, next_backend.value, attempts[-1].error_message or "")
            backend = next_backend

        if len(attempts) > 1:
            self._routing_stats['fallback_routes'] += 1
        if backend is Backend.OFFLINE:
            self._routing_stats['offline_routes'] += 1
        else:
            self._routing_stats['successful_routes'] += 1
        self._routing_stats['backend_usage'][backend.value] += 1

        result = RoutingResult(
            reply_text=reply.content,
            backend_used=backend,
            model_identifier=self._adapters[backend].model_identifier,
            tokens_in=reply.tokens_in,
            tokens_out=reply.tokens_out,
            latency_ms=self._elapsed_ms(start_time),
            credit_cost=self.credits.cost(backend, reply.tokens_in, reply.tokens_out),
            usd_cost_estimate=self.credits.usd_estimate(backend, reply.tokens_in, reply.tokens_out),
            intent=intent,
            attempts=attempts,
            metadata={
                'primary_backend': primary.value,
                'forced': request.forced_backend is not None,
                'agent_name': request.agent_name,
            },
        )

        self.audit.log_result({
            'intent': intent.value,
            'backend': backend.value,
            'model': result.model_identifier,
            'tokens_in': result.tokens_in,
            'tokens_out': result.tokens_out,
            'latency_ms': result.latency_ms,
            'credit_cost': result.credit_cost,
            'usd_cost_estimate': result.usd_cost_estimate,
            'attempts': len(attempts),
        })
        return result

    async def stream_call(self, messages: Sequence[ConversationMessage], on_chunk: ChunkCallback,
                          system_prompt: Optional[str] = None) -> StreamUsage:
        """
        Stream a reply from the local backend.

        Args:
            messages: Conversation to send
            on_chunk: Called once per text fragment, in arrival order
            system_prompt: Optional system message to prepend

        Returns:
            StreamUsage: accumulated token counts

        Raises:
            ValueError: if ``messages`` is empty
            BackendError: if the local backend is marked down or cannot be streamed from
        """
        if not messages:
            raise ValueError("messages must not be empty")

        intent = self.classifier.classify(last_user_content(messages))
        full_messages = self._assemble_messages(messages, system_prompt)
        start_time = time.monotonic()

        if not await self.availability.is_up(Backend.LOCAL_FAST):
            error = BackendError("Backend marked down; not streaming", Backend.LOCAL_FAST)
            self._log_attempt(RoutingAttempt(
                backend=Backend.LOCAL_FAST, intent=intent, latency_ms=self._elapsed_ms(start_time),
                success=False, model_identifier=self.local_llm.model_identifier, error_message=str(error),
            ))
            raise error

        try:
            usage = await self.local_llm.stream_chat(full_messages, on_chunk)
        except BackendError as e:
            self.availability.record(Backend.LOCAL_FAST, False)
            self._log_attempt(RoutingAttempt(
                backend=Backend.LOCAL_FAST, intent=intent, latency_ms=self._elapsed_ms(start_time),
                success=False, model_identifier=self.local_llm.model_identifier, error_message=str(e),
            ))
            raise

        self.availability.record(Backend.LOCAL_FAST, True)
        self._log_attempt(RoutingAttempt(
            backend=Backend.LOCAL_FAST, intent=intent, latency_ms=self._elapsed_ms(start_time),
            success=True, model_identifier=self.local_llm.model_identifier,
        ))
        return usage

    async def _attempt(self, backend: Backend, messages: Sequence[ConversationMessage], intent: Intent,
                       attempts: List[RoutingAttempt], agent_name: Optional[str] = None) -> Optional[BackendReply]:
        """Call one backend; return None on failure after recording it."""
        adapter = self._adapters[backend]
        start_time = time.monotonic()

        try:
            reply = await adapter.call(messages)
        except Exception as e:
            if not isinstance(e, BackendError):
                self.audit.log_error(e, {'backend': backend.value, 'intent': intent.value})
            error = as_backend_error(backend, e)
            self.availability.record(backend, False)
            attempt = RoutingAttempt(
                backend=backend, intent=intent, latency_ms=self._elapsed_ms(start_time), success=False,
                model_identifier=adapter.model_identifier, error_message=str(error),
            )
            attempts.append(attempt)
            self._log_attempt(attempt, agent_name)
            return None

        if backend is not Backend.OFFLINE:
            self.availability.record(backend, True)
        attempt = RoutingAttempt(
            backend=backend, intent=intent, latency_ms=self._elapsed_ms(start_time), success=True,
            model_identifier=adapter.model_identifier,
        )
        attempts.append(attempt)
        self._log_attempt(attempt, agent_name)
        return reply

    async def _next_in_cascade(self, primary: Backend, failed: Backend) -> Backend:
        """A failed cloud primary gets one retry on the local backend; everything else goes offline."""
        if failed is primary and primary.is_cloud and await self.availability.is_up(Backend.LOCAL_FAST):
            return Backend.LOCAL_FAST
        return Backend.OFFLINE

    def _assemble_messages(self, messages: Sequence[ConversationMessage],
                           system_prompt: Optional[str]) -> List[ConversationMessage]:
        full_messages: List[ConversationMessage] = []
        if system_prompt:
            full_messages.append(ConversationMessage.system(system_prompt))
        full_messages.extend(messages)
        return full_messages

    def _log_attempt(self, attempt: RoutingAttempt, agent_name: Optional[str] = None) -> None:
        self.routing_log.append(attempt)

        # Maintain log size limit
        if len(self.routing_log) > self._max_log_entries:
            self.routing_log = self.routing_log[-self._max_log_entries // 2:]

        self.audit.log_attempt(
            backend=attempt.backend.value,
            intent=attempt.intent.value,
            latency_ms=attempt.latency_ms,
            model=attempt.model_identifier,
            error=attempt.error_message,
            agent_name=agent_name,
        )

    @staticmethod
    def _elapsed_ms(start_time: float) -> int:
        return max(0, int((time.monotonic() - start_time) * 1000))

    def get_routing_statistics(self) -> Dict[str, Any]:
        """Get routing statistics and availability state."""
        total_requests = self._routing_stats['total_requests']

        stats = {
            'total_requests': total_requests,
            'successful_routes': self._routing_stats['successful_routes'],
            'fallback_routes': self._routing_stats['fallback_routes'],
            'offline_routes': self._routing_stats['offline_routes'],
            'success_rate': (self._routing_stats['successful_routes'] / total_requests * 100) if total_requests > 0 else 0,
            'fallback_rate': (self._routing_stats['fallback_routes'] / total_requests * 100) if total_requests > 0 else 0,
            'backend_usage': self._routing_stats['backend_usage'].copy(),
            'recent_attempts': len(self.routing_log),
            'log_capacity': self._max_log_entries,
            'availability': self.availability.snapshot(),
        }

        if total_requests > 0:
            stats['backend_usage_percentages'] = {
                backend: (count / total_requests * 100)
                for backend, count in self._routing_stats['backend_usage'].items()
            }

        return stats

    def get_recent_routing_decisions(self, limit: int = 10) -> List[Dict[str, Any]]:
        """Get recent backend attempts for debugging and analysis."""
        recent = self.routing_log[-limit:] if self.routing_log else []

        return [
            {
                'timestamp': attempt.timestamp.isoformat(),
                'backend': attempt.backend.value,
                'intent': attempt.intent.value,
                'model': attempt.model_identifier,
                'latency_ms': attempt.latency_ms,
                'success': attempt.success,
                'error': attempt.error_message,
            }
            for attempt in recent
        ]

    def clear_routing_log(self) -> None:
        """Clear the routing attempt log."""
        self.routing_log.clear()
        self.logger.info("Routing log cleared")

    async def is_healthy(self) -> bool:
        """True if at least one real (non-offline) backend is reachable."""
        for backend in (Backend.LOCAL_FAST, Backend.SIDECAR, Backend.CLOUD_REASONING, Backend.CLOUD_STANDARD):
            if await self.availability.is_up(backend):
                return True
        return False
