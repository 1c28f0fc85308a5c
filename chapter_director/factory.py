"""Builds a DispatchService from a DirectorConfig.

Client resolution:

    sandbox  built when mode is "sandbox" or a fixture path is configured;
             fixtures load eagerly so a missing file aborts startup.
    live     LiveClient when Gemini settings exist, otherwise the sandbox
             client (config validation guarantees one of them exists).

The configured rate limit applies to both clients, each with its own window.
"""

from __future__ import annotations

import logging

from chapter_director.clients import DispatchClient, SandboxClient
from chapter_director.config import DirectorConfig
from chapter_director.fixtures import FixtureLoader, file_reader
from chapter_director.live import LiveClient
from chapter_director.prompts import PromptAssembler
from chapter_director.service import DispatchObserver, DispatchService

logger = logging.getLogger(__name__)


def fixture_loader_for(config: DirectorConfig) -> FixtureLoader:
    if config.sandbox_fixtures_path is None:
        return FixtureLoader()
    return FixtureLoader(
        resource_path=str(config.sandbox_fixtures_path),
        resource_reader=file_reader,
    )


def create_sandbox_client(config: DirectorConfig) -> SandboxClient | None:
    if config.mode != "sandbox" and config.sandbox_fixtures_path is None:
        return None
    document = fixture_loader_for(config).load()
    return SandboxClient(document, delay_millis=config.sandbox_delay_millis)


def create_service(
    config: DirectorConfig,
    assembler: PromptAssembler | None = None,
    observer: DispatchObserver | None = None,
) -> DispatchService:
    sandbox = create_sandbox_client(config)

    live: DispatchClient | None = sandbox
    if config.live is not None:
        live = LiveClient(config.live)
    else:
        logger.info("no Gemini settings; live mode will serve sandbox fixtures")

    return DispatchService(
        live_client=live,
        sandbox_client=sandbox,
        assembler=assembler,
        rate_limit=config.rate_limit,
        observer=observer,
    )
