"""Prompt assembly — player snapshot + trigger reason → Gemini request.

Two Handlebars templates (rendered with pybars) produce the prompt text:

    system   house rules: game identity, the Butterfly Effect contract,
             tone, accessibility, the JSON output contract, the player id.
    user     the player context in a fixed field order:
             player_id, recent_choices, quest_log, status_effects,
             trigger_reason, then guidance.

Summaries (choice list, quest log, status effects) are formatted in Python
and interpolated with triple-stash so nothing is HTML-escaped. Assembly is
deterministic and does no I/O.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from typing import Any

import pybars
from pydantic import BaseModel, ConfigDict

from chapter_director.models import (
    ChoiceLogEntry,
    DispatchRequest,
    QuestLog,
    StatusEffect,
)
from chapter_director.wire import ROLE_SYSTEM, ROLE_USER, Content, GenerateContentRequest, Part

logger = logging.getLogger(__name__)

_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return compiled(context)
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


SYSTEM_TEMPLATE = """\
You are the AI Game Master for Jalmar Quest, a cozy text-based RPG starring Jalmar the button quail.
Honor these pillars:
- Butterfly Effect Engine: every choice has lasting consequence. Track every choice and seed long-term consequences.
- Tone: sincere tiny-hero adventure with playful, self-aware humor.
- Accessibility: produce narration that shines when narrated with TTS.

Output MUST be JSON matching ChapterEventResponse with keys world_event_title, world_event_summary, and snippets[].
Each snippet requires: id, event_text, choice_options (3 options), consequences (JSON keyed by option), conditions (JSON).
Return only the JSON object, no other text.

Supported locales: {{{locales}}} (default {{{default_locale}}}). Keep vocabulary quail-authentic.
Never contradict the player's established history. Current player id: {{{player_id}}}
"""

USER_TEMPLATE = """\
player_id: {{{player_id}}}
recent_choices:
{{{choices}}}
quest_log:
{{{quests}}}
status_effects:
{{{status}}}
trigger_reason: {{{trigger_reason}}}
Guidance: craft a short, vivid world event plus three branching options.
Each option should reference small-scale, authentic quail experiences that could scale into future consequences.
"""


class PromptAssembly(BaseModel):
    """Everything one dispatch needs. Built once per call, never persisted."""

    model_config = ConfigDict(frozen=True)

    request: DispatchRequest
    system_prompt: str
    user_prompt: str
    payload: GenerateContentRequest

    def with_overrides(
        self, system_prompt: str | None = None, user_prompt: str | None = None
    ) -> PromptAssembly:
        """Return a copy with the prompt text (and payload) replaced where given."""
        if system_prompt is None and user_prompt is None:
            return self
        system = system_prompt if system_prompt is not None else self.system_prompt
        user = user_prompt if user_prompt is not None else self.user_prompt
        contents = list(self.payload.contents)
        if user_prompt is not None and contents:
            contents[0] = Content(role=contents[0].role, parts=[Part(text=user)])
        payload = GenerateContentRequest(
            system_instruction=Content(
                role=self.payload.system_instruction.role,
                parts=[Part(text=system)] if system_prompt is not None
                else self.payload.system_instruction.parts,
            ),
            contents=contents,
        )
        return PromptAssembly(
            request=self.request,
            system_prompt=system,
            user_prompt=user,
            payload=payload,
        )


class PromptAssembler:
    """Turns a DispatchRequest into a PromptAssembly.

    Args:
        supported_locales: Locales advertised to the model; the first is the default.
        system_template:   Handlebars source for the system instruction.
        user_template:     Handlebars source for the user context block.
    """

    def __init__(
        self,
        supported_locales: Sequence[str] = ("en-US", "nb-NO"),
        system_template: str = SYSTEM_TEMPLATE,
        user_template: str = USER_TEMPLATE,
    ) -> None:
        if not supported_locales:
            raise ValueError("At least one supported locale is required")
        self._locales = list(supported_locales)
        self._system_template = system_template
        self._user_template = user_template

    def build_system_prompt(self, request: DispatchRequest) -> str:
        return render_prompt(self._system_template, {
            "locales": ", ".join(self._locales),
            "default_locale": self._locales[0],
            "player_id": request.player_state.id,
        })

    def build_user_prompt(self, request: DispatchRequest) -> str:
        state = request.player_state
        return render_prompt(self._user_template, {
            "player_id": state.id,
            "choices": summarize_choices(state.choice_log),
            "quests": summarize_quests(state.quest_log),
            "status": summarize_status(state.status_effects),
            "trigger_reason": request.trigger_reason or "unspecified",
        })

    def assemble(self, request: DispatchRequest) -> PromptAssembly:
        if not isinstance(request, DispatchRequest):
            raise TypeError(
                f"assemble() expects a DispatchRequest, got {type(request).__name__}"
            )
        system_prompt = self.build_system_prompt(request)
        user_prompt = self.build_user_prompt(request)
        payload = GenerateContentRequest(
            system_instruction=Content(role=ROLE_SYSTEM, parts=[Part(text=system_prompt)]),
            contents=[Content(role=ROLE_USER, parts=[Part(text=user_prompt)])],
        )
        logger.debug(
            "assembled prompt player=%s system_len=%d user_len=%d",
            request.player_state.id, len(system_prompt), len(user_prompt),
        )
        return PromptAssembly(
            request=request,
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            payload=payload,
        )


# ---------------------------------------------------------------------------
# Snapshot summaries
# ---------------------------------------------------------------------------

def summarize_choices(choice_log: Sequence[ChoiceLogEntry]) -> str:
    if not choice_log:
        return "- none recorded"
    return "\n".join(
        f"- tag: {entry.tag}, timestamp: {entry.timestamp_millis}" for entry in choice_log
    )


def summarize_quests(quest_log: QuestLog) -> str:
    if quest_log.is_empty():
        return "- no quests tracked"

    parts: list[str] = []
    if quest_log.active_quests:
        parts.append("Active:")
        for progress in quest_log.active_quests:
            done = sum(1 for o in progress.objectives if o.is_complete())
            parts.append(f"  - {progress.quest_id} ({done}/{len(progress.objectives)} objectives)")
    if quest_log.completed_quests:
        parts.append(f"Completed: {len(quest_log.completed_quests)} quests")
    if quest_log.failed_quests:
        parts.append(f"Failed: {len(quest_log.failed_quests)} quests")
    if quest_log.abandoned_quests:
        parts.append(f"Abandoned: {len(quest_log.abandoned_quests)} quests")
    return "\n".join(parts)


def summarize_status(status_effects: Sequence[StatusEffect]) -> str:
    if not status_effects:
        return "- no active effects"
    lines = []
    for effect in status_effects:
        expires = "persistent" if effect.expires_at_millis is None else str(effect.expires_at_millis)
        lines.append(f"- {effect.key} (expires: {expires})")
    return "\n".join(lines)
