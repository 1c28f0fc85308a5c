import pytest

from chapter_director.fixtures import FixtureDocument, FixtureLoader
from chapter_director.models import (
    ChoiceLogEntry,
    DispatchRequest,
    NarrativeEventResponse,
    NarrativeSnippet,
    PlayerNarrativeSnapshot,
    QuestLog,
    QuestObjective,
    QuestProgress,
    StatusEffect,
)
from chapter_director.prompts import PromptAssembler, PromptAssembly
from tests.helpers import VirtualClock


@pytest.fixture
def clock() -> VirtualClock:
    return VirtualClock()


@pytest.fixture
def snapshot() -> PlayerNarrativeSnapshot:
    """A player mid-quest with two choices and two status effects."""
    return PlayerNarrativeSnapshot(
        id="player-123",
        choice_log=[
            ChoiceLogEntry(tag="brave_waddle", timestamp_millis=42),
            ChoiceLogEntry(tag="shared_seeds", timestamp_millis=97),
        ],
        quest_log=QuestLog(
            active_quests=[
                QuestProgress(
                    quest_id="feathered_favor",
                    objectives=[
                        QuestObjective(objective_id="collect_feathers", target_quantity=5, current_progress=5),
                        QuestObjective(objective_id="return_to_elder", target_quantity=1),
                    ],
                ),
            ],
            completed_quests=["first_steps"],
        ),
        status_effects=[
            StatusEffect(key="seed_glow", expires_at_millis=999),
            StatusEffect(key="well_fed"),
        ],
    )


@pytest.fixture
def dispatch_request(snapshot: PlayerNarrativeSnapshot) -> DispatchRequest:
    return DispatchRequest(player_state=snapshot, trigger_reason="milestone")


@pytest.fixture
def assembler() -> PromptAssembler:
    return PromptAssembler()


@pytest.fixture
def assembly(assembler: PromptAssembler, dispatch_request: DispatchRequest) -> PromptAssembly:
    return assembler.assemble(dispatch_request)


@pytest.fixture
def fixture_document() -> FixtureDocument:
    return FixtureLoader().load()


@pytest.fixture
def sample_event() -> NarrativeEventResponse:
    return NarrativeEventResponse(
        title="A Tiny Triumph",
        summary="Jalmar finds a glimmering seed.",
        snippets=[
            NarrativeSnippet(
                id="snippet-1",
                text="A chance discovery.",
                choice_options=["Pocket it", "Share it", "Ignore it"],
                consequences={"Pocket it": {"add_choice_tags": ["gain_seed"]}},
                conditions={},
            ),
        ],
    )
