"""Core domain models.

Every dispatch component operates on these types. Pydantic is used for
validation and serialisation at every data boundary: the snapshot coming in
from upstream pacing code, the fixture file, and the candidate text returned
by the live backend.

NarrativeEventResponse serialises with the snake_case wire names the live
prompt asks for (world_event_title, event_text, choice_options...). Decoding
also accepts the short names (title, summary, text) and camelCase, so
hand-written fixture files can use either. Always dump with by_alias=True.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

QuestStatus = Literal["available", "active", "completed", "failed", "abandoned"]


def _unwrap_entries(value: Any) -> Any:
    # Upstream saves wrap logs as {"entries": [...]}
    if isinstance(value, dict) and "entries" in value:
        return value["entries"]
    return value


# ---------------------------------------------------------------------------
# Player snapshot (input)
# ---------------------------------------------------------------------------

class ChoiceLogEntry(BaseModel):
    """One recorded player choice."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    tag: str
    timestamp_millis: int = Field(
        validation_alias=AliasChoices("timestamp_millis", "timestampMillis"),
    )


class QuestObjective(BaseModel):
    model_config = ConfigDict(frozen=True)

    objective_id: str
    description: str = ""
    target_quantity: int = Field(default=1, ge=0)
    current_progress: int = 0

    def is_complete(self) -> bool:
        return self.current_progress >= self.target_quantity


class QuestProgress(BaseModel):
    model_config = ConfigDict(frozen=True)

    quest_id: str
    status: QuestStatus = "active"
    objectives: tuple[QuestObjective, ...] = ()


class QuestLog(BaseModel):
    """Compact view of the player's quest journal."""

    model_config = ConfigDict(frozen=True)

    active_quests: tuple[QuestProgress, ...] = ()
    completed_quests: tuple[str, ...] = ()
    failed_quests: tuple[str, ...] = ()
    abandoned_quests: tuple[str, ...] = ()

    def is_empty(self) -> bool:
        return not (
            self.active_quests
            or self.completed_quests
            or self.failed_quests
            or self.abandoned_quests
        )


class StatusEffect(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    key: str
    expires_at_millis: int | None = Field(  # None = persistent
        default=None,
        validation_alias=AliasChoices("expires_at_millis", "expiresAtMillis"),
    )


class PlayerNarrativeSnapshot(BaseModel):
    """Serializable player state handed in by the caller. Never mutated here."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    choice_log: tuple[ChoiceLogEntry, ...] = ()
    quest_log: QuestLog = Field(default_factory=QuestLog)
    status_effects: tuple[StatusEffect, ...] = ()

    @field_validator("choice_log", "status_effects", mode="before")
    @classmethod
    def _unwrap_logs(cls, value: Any) -> Any:
        return _unwrap_entries(value)


class DispatchRequest(BaseModel):
    """A snapshot plus the reason upstream asked for a narrative event."""

    model_config = ConfigDict(frozen=True)

    player_state: PlayerNarrativeSnapshot
    trigger_reason: str | None = None


# ---------------------------------------------------------------------------
# Narrative event (output)
# ---------------------------------------------------------------------------

class NarrativeSnippet(BaseModel):
    """A single story beat with player-facing choices and their consequences."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    text: str = Field(
        validation_alias=AliasChoices("event_text", "text", "eventText"),
        serialization_alias="event_text",
    )
    choice_options: list[str] = Field(
        min_length=1,
        validation_alias=AliasChoices("choice_options", "choiceOptions"),
        serialization_alias="choice_options",
    )
    consequences: dict[str, Any] = Field(default_factory=dict)
    conditions: dict[str, Any] = Field(default_factory=dict)
    allowed_locations: list[str] = Field(  # empty = available everywhere
        default_factory=list,
        validation_alias=AliasChoices("allowed_locations", "allowedLocations"),
        serialization_alias="allowed_locations",
    )
    allowed_biomes: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("allowed_biomes", "allowedBiomes"),
        serialization_alias="allowed_biomes",
    )


class NarrativeEventResponse(BaseModel):
    """The contract returned to callers, identical for sandbox and live."""

    model_config = ConfigDict(populate_by_name=True)

    title: str = Field(
        validation_alias=AliasChoices("world_event_title", "title", "worldEventTitle"),
        serialization_alias="world_event_title",
    )
    summary: str = Field(
        default="",
        validation_alias=AliasChoices("world_event_summary", "summary", "worldEventSummary"),
        serialization_alias="world_event_summary",
    )
    snippets: list[NarrativeSnippet] = Field(default_factory=list)

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("title must not be blank")
        return value
