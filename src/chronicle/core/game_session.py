import logging
from typing import Any, Dict, List

from pydantic import BaseModel

from src.chronicle.config import Settings, settings
from src.chronicle.core.dice import RandomSource, SeededRandom
from src.chronicle.core.resolution_engine import ResolutionEngine, parse_intent
from src.chronicle.core.rules_engine import RulesEngine
from src.chronicle.core.state_manager import StateManager
from src.chronicle.llm.relevance import RelevanceClassifier, SubstringClassifier
from src.chronicle.memory import Consequence, ContextPacket, ScheduledEvent, StoryMemory
from src.chronicle.models import Intent, Resolution, WorldState

logger = logging.getLogger(__name__)


class Observation(BaseModel):
    """What a narrated player action set off in story memory."""
    consequences: List[Consequence] = []
    events: List[ScheduledEvent] = []

    @property
    def is_empty(self) -> bool:
        return not self.consequences and not self.events


class GameSession:
    """
    One running session: world state, rules resolution and story memory,
    tied to a single logical turn counter.

    The session owns its collaborators; nothing here is shared between sessions.
    """

    def __init__(
        self,
        state_manager: StateManager,
        resolution_engine: ResolutionEngine,
        memory: StoryMemory,
        classifier: RelevanceClassifier,
    ):
        self.state = state_manager
        self.engine = resolution_engine
        self.memory = memory
        self.classifier = classifier

    @property
    def turn(self) -> int:
        return self.state.get_current_state().turn

    def submit(self, intent: Intent | Dict[str, Any]) -> Resolution:
        """Resolve an intent, or a raw tool-call payload describing one."""
        if isinstance(intent, dict):
            intent = parse_intent(intent)
        return self.engine.resolve(intent)

    def observe_action(self, text: str) -> Observation:
        """Fire the consequences and condition events the player's action matches."""
        fired = self.memory.check_relevance(text, self.classifier)
        events = self.memory.check_event_conditions(text, self.classifier)
        observation = Observation(
            consequences=[self.memory.get_consequence(cid) for cid in fired],
            events=events,
        )
        if not observation.is_empty:
            logger.info(
                "Action at turn %d fired %d consequences and %d events",
                self.turn, len(observation.consequences), len(observation.events),
            )
        return observation

    def end_turn(self) -> List[ScheduledEvent]:
        """Advance the logical turn; returns the scheduled events now due."""
        turn = self.state.advance_clock()
        due = self.memory.tick(turn)
        logger.debug("Turn %d begins, %d events due", turn, len(due))
        return due

    def context(self, budget_n: int | None = None) -> ContextPacket:
        return self.memory.build_context(budget_n)

    # ============================================================
    # PERSISTENCE
    # ============================================================

    def snapshot(self) -> Dict[str, Any]:
        return {"world": self.state.snapshot(), "memory": self.memory.snapshot()}

    @classmethod
    def restore(
        cls,
        data: Dict[str, Any],
        rng: RandomSource | None = None,
        classifier: RelevanceClassifier | None = None,
        config: Settings | None = None,
    ) -> "GameSession":
        config = config or settings
        state_manager = StateManager.restore(data["world"], strict=config.strict_invariants)
        memory = StoryMemory.restore(data["memory"], config)
        return cls(
            state_manager=state_manager,
            resolution_engine=ResolutionEngine(RulesEngine(rng or SeededRandom()), state_manager),
            memory=memory,
            classifier=classifier or SubstringClassifier(),
        )


def initialize_game_session(
    initial_state: WorldState | None = None,
    rng: RandomSource | None = None,
    classifier: RelevanceClassifier | None = None,
    config: Settings | None = None,
) -> GameSession:
    """Instantiate all session components and return the GameSession."""
    config = config or settings

    state_manager = StateManager(initial_state=initial_state or WorldState(), strict=config.strict_invariants)
    rules_engine = RulesEngine(rng or SeededRandom())
    resolution_engine = ResolutionEngine(rules_engine=rules_engine, state_manager=state_manager)
    memory = StoryMemory(config)
    memory.turn = state_manager.get_current_state().turn

    return GameSession(
        state_manager=state_manager,
        resolution_engine=resolution_engine,
        memory=memory,
        classifier=classifier or SubstringClassifier(),
    )
