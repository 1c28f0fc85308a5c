"""Shared test doubles: a virtual clock and a recording dispatch client."""

import asyncio

from chapter_director.models import DispatchRequest, NarrativeEventResponse, PlayerNarrativeSnapshot
from chapter_director.prompts import PromptAssembler, PromptAssembly


class VirtualClock:
    """Millisecond clock that only moves when something sleeps on it."""

    def __init__(self, start: float = 0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    async def sleep(self, millis: float) -> None:
        self.now += millis
        await asyncio.sleep(0)


class RecordingClient:
    """Dispatch client that records the virtual time of every call."""

    def __init__(self, clock: VirtualClock, title: str = "Recorded") -> None:
        self._clock = clock
        self._title = title
        self.dispatch_times: list[float] = []
        self.assemblies: list[PromptAssembly] = []

    @property
    def invocations(self) -> int:
        return len(self.dispatch_times)

    async def generate(self, assembly: PromptAssembly) -> NarrativeEventResponse:
        self.dispatch_times.append(self._clock())
        self.assemblies.append(assembly)
        return NarrativeEventResponse(title=self._title, summary="", snippets=[])


def assembly_for(trigger_reason: str | None, player_id: str = "player") -> PromptAssembly:
    request = DispatchRequest(
        player_state=PlayerNarrativeSnapshot(id=player_id),
        trigger_reason=trigger_reason,
    )
    return PromptAssembler().assemble(request)
