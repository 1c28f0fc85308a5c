"""Sandbox fixture store.

A fixture document is a JSON file of pre-recorded narrative events:

    {
      "metadata": {"default_mode": "sandbox", "notes": "..."},
      "fixtures": [
        {"id": "<trigger reason>", "response": {<NarrativeEventResponse>},
         "notes": "...", "prompt_overrides": {"system_prompt": "...", "user_prompt": "..."}}
      ]
    }

It is loaded once at startup and treated as read-only afterwards. A missing or
unparsable file raises ConfigurationError immediately. Sandbox mode is
useless without fixtures, so there is no silent fallback.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from chapter_director.errors import ConfigurationError
from chapter_director.models import NarrativeEventResponse

logger = logging.getLogger(__name__)

PACKAGE_DIR = Path(__file__).parent
DEFAULT_RESOURCE_PATH = "resources/sandbox_prompt.json"

ResourceReader = Callable[[str], str | None]


class FixtureMetadata(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    default_mode: str | None = Field(
        default=None,
        validation_alias=AliasChoices("default_mode", "defaultMode"),
        serialization_alias="default_mode",
    )
    notes: str | None = None


class PromptOverrides(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    system_prompt: str | None = Field(
        default=None, validation_alias=AliasChoices("system_prompt", "systemPrompt"),
    )
    user_prompt: str | None = Field(
        default=None, validation_alias=AliasChoices("user_prompt", "userPrompt"),
    )


class SandboxFixture(BaseModel):
    """One (fixture id → response) pair. The id doubles as a trigger reason."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    response: NarrativeEventResponse
    notes: str | None = None
    prompt_overrides: PromptOverrides | None = Field(
        default=None, validation_alias=AliasChoices("prompt_overrides", "promptOverrides"),
    )


class FixtureDocument(BaseModel):
    model_config = ConfigDict(frozen=True)

    fixtures: tuple[SandboxFixture, ...] = Field(min_length=1)
    metadata: FixtureMetadata = Field(default_factory=FixtureMetadata)

    def find(self, fixture_id: str | None) -> SandboxFixture | None:
        if fixture_id is None:
            return None
        for fixture in self.fixtures:
            if fixture.id == fixture_id:
                return fixture
        return None

    @property
    def default(self) -> SandboxFixture:
        return self.fixtures[0]


# ---------------------------------------------------------------------------
# Readers: path -> text, or None when the resource does not exist
# ---------------------------------------------------------------------------

def package_reader(path: str) -> str | None:
    """Read a resource bundled inside the chapter_director package."""
    resource = PACKAGE_DIR / path
    if not resource.is_file():
        return None
    return resource.read_text(encoding="utf-8")


def file_reader(path: str) -> str | None:
    """Read a plain filesystem path."""
    resource = Path(path)
    if not resource.is_file():
        return None
    return resource.read_text(encoding="utf-8")


class FixtureLoader:
    """Loads a FixtureDocument.

    Args:
        resource_path:   Path handed to the reader. Defaults to the bundled file.
        resource_reader: Callable returning the raw JSON text, or None if the
                         resource is missing. Defaults to package_reader.
    """

    def __init__(
        self,
        resource_path: str = DEFAULT_RESOURCE_PATH,
        resource_reader: ResourceReader | None = None,
    ) -> None:
        self._path = resource_path
        self._reader = resource_reader or package_reader

    @property
    def resource_path(self) -> str:
        return self._path

    def load(self) -> FixtureDocument:
        try:
            raw = self._reader(self._path)
        except OSError as e:
            raise ConfigurationError(
                f"Sandbox fixture resource could not be read: {self._path}"
            ) from e
        except UnicodeDecodeError as e:
            raise ConfigurationError(
                f"Failed to parse sandbox fixtures at {self._path}: not valid UTF-8 ({e})"
            ) from e
        if raw is None:
            raise ConfigurationError(f"Sandbox fixture resource not found: {self._path}")

        try:
            document = FixtureDocument.model_validate_json(raw)
        except ValidationError as e:
            raise ConfigurationError(
                f"Failed to parse sandbox fixtures at {self._path}: {e}"
            ) from e

        logger.info(
            "loaded %d sandbox fixtures from %s", len(document.fixtures), self._path
        )
        return document
