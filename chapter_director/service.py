"""Dispatch service — the entry point upstream pacing code calls.

    event = await service.generate_chapter_event(request, mode="live")

Per call: assemble the prompt once, pick the client for `mode` (each wrapped
in its own RateLimitedClient when a rate limit is configured), await it, then
notify the observer. Client errors propagate untouched and are never retried.
A sandbox request on a service without a sandbox client goes to the live
client; a live request without a live client is a ConfigurationError.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Literal, Protocol

from chapter_director.clients import DispatchClient, Sleep, sleep_millis
from chapter_director.errors import ConfigurationError
from chapter_director.models import DispatchRequest, NarrativeEventResponse
from chapter_director.prompts import PromptAssembler, PromptAssembly
from chapter_director.ratelimit import Clock, RateLimitConfig, RateLimitedClient, monotonic_clock

logger = logging.getLogger(__name__)

DispatchMode = Literal["sandbox", "live"]
DISPATCH_MODES: tuple[DispatchMode, ...] = ("sandbox", "live")

EventProvider = Callable[[DispatchRequest], Awaitable[NarrativeEventResponse]]


class DispatchObserver(Protocol):
    async def __call__(
        self, request: DispatchRequest, assembly: PromptAssembly, mode: DispatchMode
    ) -> None: ...


async def _ignore(request: DispatchRequest, assembly: PromptAssembly, mode: DispatchMode) -> None:
    return None


class DispatchService:
    """Routes dispatch requests to the sandbox or live client.

    Args:
        live_client:    Client used for mode "live". Optional only when the
                        service is sandbox-only.
        sandbox_client: Client used for mode "sandbox".
        assembler:      Prompt assembler; a default PromptAssembler if omitted.
        rate_limit:     When set, each client is wrapped in its own limiter.
        clock, sleep:   Passed to the limiters (milliseconds).
        observer:       Awaited after every successful dispatch. Exceptions it
                        raises are logged and swallowed.
    """

    def __init__(
        self,
        live_client: DispatchClient | None = None,
        sandbox_client: DispatchClient | None = None,
        assembler: PromptAssembler | None = None,
        rate_limit: RateLimitConfig | None = None,
        clock: Clock = monotonic_clock,
        sleep: Sleep = sleep_millis,
        observer: DispatchObserver | None = None,
    ) -> None:
        if live_client is None and sandbox_client is None:
            raise ConfigurationError("DispatchService needs at least one client")
        self._assembler = assembler or PromptAssembler()
        self._observer = observer or _ignore
        self._clients: dict[DispatchMode, DispatchClient] = {}
        for mode, client in (("live", live_client), ("sandbox", sandbox_client)):
            if client is None:
                continue
            if rate_limit is not None:
                client = RateLimitedClient(client, rate_limit, clock=clock, sleep=sleep)
            self._clients[mode] = client

    def client_for(self, mode: DispatchMode) -> DispatchClient:
        client = self._clients.get(mode)
        if client is None and mode == "sandbox":
            # sandbox requests fall through to the live client
            client = self._clients.get("live")
        if client is None:
            raise ConfigurationError(f"No {mode} client is configured")
        return client

    async def generate_chapter_event(
        self, request: DispatchRequest, mode: DispatchMode = "live"
    ) -> NarrativeEventResponse:
        assembly = self._assembler.assemble(request)
        client = self.client_for(mode)
        player_id = request.player_state.id

        try:
            response = await client.generate(assembly)
        except Exception as e:
            logger.warning(
                "chapter event failed player=%s mode=%s trigger=%s: %s",
                player_id, mode, request.trigger_reason, e,
            )
            raise

        logger.info(
            "chapter event dispatched player=%s mode=%s trigger=%s title=%r",
            player_id, mode, request.trigger_reason, response.title,
        )
        await self._notify(request, assembly, mode)
        return response

    async def _notify(
        self, request: DispatchRequest, assembly: PromptAssembly, mode: DispatchMode
    ) -> None:
        try:
            await self._observer(request, assembly, mode)
        except Exception:
            logger.exception("dispatch observer failed player=%s mode=%s",
                             request.player_state.id, mode)

    def as_event_provider(
        self, mode_provider: Callable[[], DispatchMode] = lambda: "live"
    ) -> EventProvider:
        """Adapt the service to a single-argument callable for pacing code.

        The mode is read on every call, so toggling it takes effect immediately.
        """
        async def provide(request: DispatchRequest) -> NarrativeEventResponse:
            return await self.generate_chapter_event(request, mode_provider())

        return provide
