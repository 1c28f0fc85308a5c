"""Dispatch clients — turn an assembled prompt into a narrative event.

Every client matches the protocol:

    async def generate(self, assembly: PromptAssembly) -> NarrativeEventResponse: ...

Implementations:

    SandboxClient  — serves pre-recorded fixtures, chosen by trigger reason.
    LiveClient     — real Gemini HTTP call (see chapter_director.live).

The service wraps whichever client a mode selects in a RateLimitedClient, so
implementations stay free of side effects beyond the call they encapsulate.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Protocol

from chapter_director.errors import ConfigurationError
from chapter_director.fixtures import FixtureDocument, SandboxFixture
from chapter_director.models import NarrativeEventResponse
from chapter_director.prompts import PromptAssembly

logger = logging.getLogger(__name__)

IdProvider = Callable[[], str]
Sleep = Callable[[float], Awaitable[None]]  # argument in milliseconds


async def sleep_millis(millis: float) -> None:
    await asyncio.sleep(millis / 1000)


# ---------------------------------------------------------------------------
# Protocol: every dispatch client must match this signature
# ---------------------------------------------------------------------------

class DispatchClient(Protocol):
    async def generate(self, assembly: PromptAssembly) -> NarrativeEventResponse: ...


# ---------------------------------------------------------------------------
# SandboxClient: deterministic responses from the fixture document
# ---------------------------------------------------------------------------

class SandboxClient:
    """Serves fixtures instead of calling a model.

    The fixture whose id equals the request's trigger reason wins; anything
    else (including no trigger reason) gets the document's first fixture.

    Args:
        document:     Loaded fixture document. Shared, never modified.
        delay_millis: Simulated network latency per call. 0 disables it.
        id_provider:  When set, each returned snippet id becomes
                      "<fixture snippet id>_<id_provider()>", so tests can
                      pin ids while production gets unique ones.
        sleep:        Awaitable taking milliseconds; injectable for tests.
    """

    def __init__(
        self,
        document: FixtureDocument,
        delay_millis: float = 0,
        id_provider: IdProvider | None = None,
        sleep: Sleep = sleep_millis,
    ) -> None:
        if not document.fixtures:
            raise ConfigurationError("SandboxClient requires at least one fixture")
        self._document = document
        self._delay_millis = delay_millis
        self._id_provider = id_provider
        self._sleep = sleep
        self._last_assembly: PromptAssembly | None = None
        self._last_fixture: SandboxFixture | None = None

    @property
    def last_assembly(self) -> PromptAssembly | None:
        """The most recent assembly, with the fixture's prompt overrides applied."""
        return self._last_assembly

    @property
    def last_fixture(self) -> SandboxFixture | None:
        return self._last_fixture

    def select(self, trigger_reason: str | None) -> SandboxFixture:
        return self._document.find(trigger_reason) or self._document.default

    async def generate(self, assembly: PromptAssembly) -> NarrativeEventResponse:
        if self._delay_millis > 0:
            await self._sleep(self._delay_millis)

        fixture = self.select(assembly.request.trigger_reason)
        overrides = fixture.prompt_overrides
        if overrides is not None:
            assembly = assembly.with_overrides(
                system_prompt=overrides.system_prompt,
                user_prompt=overrides.user_prompt,
            )
        self._last_assembly = assembly
        self._last_fixture = fixture
        logger.debug(
            "sandbox fixture=%s trigger=%s", fixture.id, assembly.request.trigger_reason
        )

        response = fixture.response.model_copy(deep=True)
        if self._id_provider is None:
            return response
        suffix = self._id_provider()
        return response.model_copy(update={
            "snippets": [
                s.model_copy(update={"id": f"{s.id}_{suffix}"}) for s in response.snippets
            ],
        })
