# src/chronicle/memory/story_memory.py
import difflib
import logging
from typing import Any, Dict, Iterable, List

from src.chronicle.config import Settings, settings
from src.chronicle.core.exceptions import UnknownEntityError
from src.chronicle.llm.relevance import RelevanceClassifier, TriggerCandidate
from src.chronicle.memory.fact_index import FactIndex
from src.chronicle.memory.models import (
    AfterTurns,
    AtTurn,
    Consequence,
    ConsequenceStatus,
    ContextPacket,
    EntityType,
    EventStatus,
    EventTrigger,
    FactCategory,
    FactSource,
    KnowledgeEntry,
    KnowledgeSource,
    OnCondition,
    Relationship,
    RelationshipType,
    ScheduledEvent,
    Severity,
    StoryEntity,
    StoryFact,
    VerificationStatus,
    Visibility,
)
from src.chronicle.storage.graph import EdgeType, NodeType, WorldGraph

logger = logging.getLogger(__name__)

ID_PREFIXES = {
    "entity": "ent",
    "fact": "fact",
    "relationship": "rel",
    "consequence": "csq",
    "knowledge": "know",
    "event": "evt",
}


def _clamp(importance: float) -> float:
    return max(0.0, min(1.0, importance))


class StoryMemory:
    """
    Long-horizon narrative memory for one campaign.

    Everything is append-only: facts are superseded rather than edited,
    consequences and events change status but are never removed. Importance
    decays once per tick; anything below the floor stays stored but is left
    out of retrieval. Entities, relationships, fact involvement and knowledge
    are mirrored into a WorldGraph for neighbourhood queries.
    """

    def __init__(self, config: Settings | None = None):
        self.config = config or settings
        self.turn = 0

        self._entities: Dict[str, StoryEntity] = {}
        self._facts: Dict[str, StoryFact] = {}
        self._relationships: Dict[str, Relationship] = {}
        self._consequences: Dict[str, Consequence] = {}
        self._knowledge: Dict[str, KnowledgeEntry] = {}
        self._events: Dict[str, ScheduledEvent] = {}

        self._names: Dict[str, str] = {}              # lowercased name or alias -> entity id
        self._index = FactIndex()
        self._counters = {kind: 0 for kind in ID_PREFIXES}
        self.graph = WorldGraph()

    def _next_id(self, kind: str) -> str:
        self._counters[kind] += 1
        return f"{ID_PREFIXES[kind]}_{self._counters[kind]}"

    # ============================================================
    # ENTITIES
    # ============================================================

    def add_entity(
        self,
        name: str,
        entity_type: EntityType,
        description: str = "",
        aliases: Iterable[str] = (),
    ) -> str:
        """Register an entity. A name already in use returns the existing id."""
        existing = self._names.get(name.strip().lower())
        if existing is not None:
            logger.debug("Entity '%s' already known as %s", name, existing)
            for alias in aliases:
                self.add_alias(existing, alias)
            return existing

        entity_id = self._next_id("entity")
        entity = StoryEntity(
            id=entity_id,
            name=name.strip(),
            entity_type=entity_type,
            description=description,
            created_turn=self.turn,
            last_mentioned_turn=self.turn,
        )
        self._entities[entity_id] = entity
        self._names[entity.name.lower()] = entity_id
        for alias in aliases:
            self.add_alias(entity_id, alias)

        self.graph.add_entity(entity_id, entity.name, entity_type.value)
        logger.debug("Added entity %s '%s' (%s)", entity_id, entity.name, entity_type.value)
        return entity_id

    def add_alias(self, entity_id: str, alias: str) -> None:
        entity = self.get_entity(entity_id)
        key = alias.strip().lower()
        if not key or key in self._names:
            return
        entity.aliases.append(alias.strip())
        self._names[key] = entity_id

    def mention(self, entity_id: str) -> None:
        self.get_entity(entity_id).last_mentioned_turn = self.turn

    def get_entity(self, entity_id: str) -> StoryEntity:
        try:
            return self._entities[entity_id]
        except KeyError:
            raise UnknownEntityError("entity", entity_id) from None

    def entities(self) -> List[StoryEntity]:
        return list(self._entities.values())

    def find_entity_by_name(self, text: str) -> str | None:
        """
        Resolve free text to an entity id.

        Case-insensitive exact match on a name or alias first, then
        containment either way (longest name wins), then the closest
        difflib match at or above the fuzzy cutoff.
        """
        needle = text.strip().lower()
        if not needle:
            return None
        if needle in self._names:
            return self._names[needle]

        contained = [key for key in self._names if key in needle or needle in key]
        if contained:
            best = max(contained, key=len)
            logger.debug("Entity '%s' resolved by containment to '%s'", text, best)
            return self._names[best]

        close = difflib.get_close_matches(needle, list(self._names), n=1, cutoff=self.config.fuzzy_match_cutoff)
        if close:
            logger.debug("Entity '%s' resolved by fuzzy match to '%s'", text, close[0])
            return self._names[close[0]]
        return None

    # ============================================================
    # FACTS
    # ============================================================

    def add_fact(
        self,
        subject_id: str,
        content: str,
        category: FactCategory,
        importance: float = 0.5,
        related_entity_ids: Iterable[str] = (),
        source: FactSource = FactSource.DM_NARRATION,
        supersedes: str | None = None,
    ) -> str:
        """Record a fact. `supersedes` retires an older fact without touching its content."""
        self.mention(subject_id)
        related = list(dict.fromkeys(related_entity_ids))
        for entity_id in related:
            self.mention(entity_id)
        old = self.get_fact(supersedes) if supersedes is not None else None

        fact_id = self._next_id("fact")
        fact = StoryFact(
            id=fact_id,
            subject_id=subject_id,
            category=category,
            content=content,
            importance=_clamp(importance),
            related_entity_ids=related,
            created_turn=self.turn,
            source=source,
            seq=self._counters["fact"],
        )
        self._facts[fact_id] = fact
        self._index.add(fact)
        self.graph.add_fact(fact_id, subject_id, category.value, related)

        if old is not None:
            if old.superseded_by is None:
                self._index.remove(old)
                old.superseded_by = fact_id
            self.graph.supersede_fact(fact_id, old.id)
            logger.debug("Fact %s supersedes %s", fact_id, old.id)

        logger.debug("Added fact %s about %s (%s, %.2f)", fact_id, subject_id, category.value, fact.importance)
        return fact_id

    def get_fact(self, fact_id: str) -> StoryFact:
        try:
            return self._facts[fact_id]
        except KeyError:
            raise UnknownEntityError("fact", fact_id) from None

    def facts_about(self, entity_id: str, include_superseded: bool = False) -> List[StoryFact]:
        """Facts whose subject is, or which involve, the entity. Best first."""
        self.get_entity(entity_id)
        facts = [self._facts[fid] for fid in self.graph.get_facts_about(entity_id)]
        if not include_superseded:
            facts = [f for f in facts if f.is_current]
        return sorted(facts, key=lambda f: f.sort_key)

    # ============================================================
    # RELATIONSHIPS
    # ============================================================

    def add_relationship(
        self,
        source_id: str,
        target_id: str,
        relationship_type: RelationshipType | str,
        bidirectional: bool = False,
        description: str | None = None,
        importance: float = 0.5,
    ) -> str:
        self.get_entity(source_id)
        self.get_entity(target_id)
        label = relationship_type.value if isinstance(relationship_type, RelationshipType) else relationship_type

        relationship_id = self._next_id("relationship")
        self._relationships[relationship_id] = Relationship(
            id=relationship_id,
            source_id=source_id,
            target_id=target_id,
            relationship_type=label,
            bidirectional=bidirectional,
            description=description,
            importance=_clamp(importance),
            created_turn=self.turn,
        )
        self.graph.add_relationship(relationship_id, source_id, target_id, label, bidirectional)
        logger.debug("Added relationship %s: %s -[%s]-> %s", relationship_id, source_id, label, target_id)
        return relationship_id

    def relationships_of(self, entity_id: str) -> List[Relationship]:
        self.get_entity(entity_id)
        return [
            r for r in self._relationships.values()
            if r.source_id == entity_id or r.target_id == entity_id
        ]

    def related_entities(self, entity_id: str, depth: int = 1) -> List[str]:
        """Entity ids reachable through relationships within `depth` hops."""
        self.get_entity(entity_id)
        return self.graph.get_neighborhood(
            entity_id, depth=depth, edge_types=[EdgeType.RELATIONSHIP], node_type=NodeType.ENTITY
        )

    # ============================================================
    # CONSEQUENCES
    # ============================================================

    def register_consequence(
        self,
        trigger: str,
        outcome: str,
        severity: Severity = Severity.MODERATE,
        related_entity_ids: Iterable[str] = (),
        importance: float | None = None,
        expires_turn: int | None = None,
    ) -> str:
        related = list(dict.fromkeys(related_entity_ids))
        for entity_id in related:
            self.get_entity(entity_id)

        consequence_id = self._next_id("consequence")
        self._consequences[consequence_id] = Consequence(
            id=consequence_id,
            trigger=trigger,
            outcome=outcome,
            severity=severity,
            related_entity_ids=related,
            importance=_clamp(severity.default_importance if importance is None else importance),
            created_turn=self.turn,
            expires_turn=expires_turn,
        )
        self.graph.add_narrative_node(consequence_id, NodeType.CONSEQUENCE, related)
        logger.debug("Registered consequence %s: '%s'", consequence_id, trigger)
        return consequence_id

    def get_consequence(self, consequence_id: str) -> Consequence:
        try:
            return self._consequences[consequence_id]
        except KeyError:
            raise UnknownEntityError("consequence", consequence_id) from None

    def pending_consequences(self) -> List[Consequence]:
        """Pending consequences, most important first."""
        pending = [c for c in self._consequences.values() if c.is_pending]
        return sorted(pending, key=lambda c: (-c.importance, -c.created_turn))

    def resolve_consequence(self, consequence_id: str) -> None:
        consequence = self.get_consequence(consequence_id)
        consequence.status = ConsequenceStatus.RESOLVED
        logger.info("Consequence %s resolved", consequence_id)

    def check_relevance(self, action_text: str, classifier: RelevanceClassifier) -> List[str]:
        """Ask the classifier which pending consequences the action fires, and fire them."""
        pending = self.pending_consequences()
        if not pending:
            return []

        candidates = [TriggerCandidate(description=c.trigger, id=c.id) for c in pending]
        known = {c.id for c in pending}
        fired = [cid for cid in dict.fromkeys(classifier.classify(action_text, candidates)) if cid in known]

        for consequence_id in fired:
            consequence = self._consequences[consequence_id]
            consequence.status = ConsequenceStatus.TRIGGERED
            consequence.triggered_turn = self.turn
            logger.info("Consequence %s triggered: %s", consequence_id, consequence.outcome)
        return fired

    # ============================================================
    # KNOWLEDGE
    # ============================================================

    def record_knowledge(
        self,
        knower_id: str,
        content: str,
        fact_id: str | None = None,
        source: KnowledgeSource = KnowledgeSource.UNKNOWN,
        source_entity_id: str | None = None,
        verification: VerificationStatus = VerificationStatus.UNVERIFIED,
        context: str | None = None,
    ) -> str:
        self.get_entity(knower_id)
        if fact_id is not None:
            self.get_fact(fact_id)
        if source_entity_id is not None:
            self.get_entity(source_entity_id)

        knowledge_id = self._next_id("knowledge")
        self._knowledge[knowledge_id] = KnowledgeEntry(
            id=knowledge_id,
            knower_id=knower_id,
            content=content,
            fact_id=fact_id,
            learned_turn=self.turn,
            source=source,
            source_entity_id=source_entity_id,
            verification=verification,
            context=context,
        )
        if fact_id is not None:
            self.graph.entity_learns(knower_id, fact_id, knowledge_id)
        logger.debug("%s learned %s", knower_id, knowledge_id)
        return knowledge_id

    def get_knowledge(self, knowledge_id: str) -> KnowledgeEntry:
        try:
            return self._knowledge[knowledge_id]
        except KeyError:
            raise UnknownEntityError("knowledge", knowledge_id) from None

    def knowledge_of(self, entity_id: str, include_superseded: bool = False) -> List[KnowledgeEntry]:
        self.get_entity(entity_id)
        return [
            k for k in self._knowledge.values()
            if k.knower_id == entity_id and (include_superseded or k.is_current)
        ]

    def who_knows(self, fact_id: str) -> List[str]:
        """Entities currently holding knowledge of the fact."""
        self.get_fact(fact_id)
        return self.graph.get_knowers(fact_id)

    def supersede_knowledge(
        self,
        knowledge_id: str,
        content: str,
        fact_id: str | None = None,
        source: KnowledgeSource | None = None,
        verification: VerificationStatus = VerificationStatus.UNVERIFIED,
    ) -> str:
        """Replace what an entity believes. The old entry is kept but no longer current."""
        old = self.get_knowledge(knowledge_id)
        new_id = self.record_knowledge(
            old.knower_id,
            content,
            fact_id=fact_id,
            source=source or old.source,
            source_entity_id=old.source_entity_id,
            verification=verification,
            context=old.context,
        )
        old.is_current = False
        self.graph.entity_forgets(old.knower_id, knowledge_id)
        logger.debug("Knowledge %s superseded by %s", knowledge_id, new_id)
        return new_id

    def update_verification(self, knowledge_id: str, verification: VerificationStatus) -> None:
        self.get_knowledge(knowledge_id).verification = verification

    # ============================================================
    # SCHEDULED EVENTS
    # ============================================================

    def schedule_event(
        self,
        description: str,
        trigger: EventTrigger,
        repeat_every: int | None = None,
        location: str | None = None,
        involved_entity_ids: Iterable[str] = (),
        visibility: Visibility = Visibility.PUBLIC,
    ) -> str:
        involved = list(dict.fromkeys(involved_entity_ids))
        for entity_id in involved:
            self.get_entity(entity_id)

        match trigger:
            case AtTurn(turn=turn):
                due_turn = turn
            case AfterTurns(turns=turns):
                due_turn = self.turn + turns
            case OnCondition():
                due_turn = None

        event_id = self._next_id("event")
        self._events[event_id] = ScheduledEvent(
            id=event_id,
            description=description,
            trigger=trigger,
            due_turn=due_turn,
            repeat_every=repeat_every,
            location=location,
            involved_entity_ids=involved,
            visibility=visibility,
            scheduled_turn=self.turn,
        )
        self.graph.add_narrative_node(event_id, NodeType.EVENT, involved)
        logger.debug("Scheduled event %s (due %s)", event_id, due_turn)
        return event_id

    def get_event(self, event_id: str) -> ScheduledEvent:
        try:
            return self._events[event_id]
        except KeyError:
            raise UnknownEntityError("event", event_id) from None

    def pending_events(self) -> List[ScheduledEvent]:
        return [e for e in self._events.values() if e.is_pending]

    def cancel_event(self, event_id: str) -> None:
        self.get_event(event_id).status = EventStatus.CANCELLED
        logger.info("Event %s cancelled", event_id)

    def _fire_event(self, event: ScheduledEvent) -> None:
        event.times_triggered += 1
        event.last_triggered_turn = self.turn
        if event.repeat_every is not None:
            if event.due_turn is not None:
                event.due_turn = self.turn + event.repeat_every
        else:
            event.status = EventStatus.TRIGGERED
        logger.info("Event %s triggered: %s", event.id, event.description)

    def check_event_conditions(self, action_text: str, classifier: RelevanceClassifier) -> List[ScheduledEvent]:
        """Fire condition-triggered events the classifier matches against the action."""
        waiting = {e.id: e for e in self.pending_events() if isinstance(e.trigger, OnCondition)}
        if not waiting:
            return []

        candidates = [TriggerCandidate(description=e.trigger.condition, id=e.id) for e in waiting.values()]
        fired = []
        for event_id in dict.fromkeys(classifier.classify(action_text, candidates)):
            if event_id in waiting:
                self._fire_event(waiting[event_id])
                fired.append(waiting[event_id])
        return fired

    # ============================================================
    # CLOCK
    # ============================================================

    def tick(self, turn: int | None = None) -> List[ScheduledEvent]:
        """
        Advance the clock by one tick.

        Decays every fact and consequence once, expires pending consequences
        whose expiry turn has passed, and fires turn-based events that are due.

        Args:
            turn: The new turn number. Defaults to the current turn plus one.

        Returns:
            The events that fired, in scheduling order.
        """
        new_turn = self.turn + 1 if turn is None else turn
        if new_turn < self.turn:
            raise ValueError(f"Cannot move the clock back from turn {self.turn} to {new_turn}")
        self.turn = new_turn

        self._index.decay(self.config.volatile_decay_rate, self.config.stable_decay_rate)
        consequence_factor = 1.0 - self.config.consequence_decay_rate
        for consequence in self._consequences.values():
            consequence.importance *= consequence_factor
            if consequence.is_pending and consequence.expires_turn is not None and consequence.expires_turn < self.turn:
                consequence.status = ConsequenceStatus.EXPIRED
                logger.info("Consequence %s expired", consequence.id)

        due = [
            e for e in self.pending_events()
            if e.due_turn is not None and e.due_turn <= self.turn
        ]
        for event in due:
            self._fire_event(event)
        return due

    # ============================================================
    # RETRIEVAL
    # ============================================================

    def retrieve_context(self, budget_n: int | None = None) -> List[StoryFact]:
        """Top facts by importance, newest first on ties, skipping anything below the floor."""
        budget = self.config.context_budget if budget_n is None else budget_n
        facts = self._index.top(budget, self.config.importance_floor)
        logger.debug("Retrieved %d/%d facts (budget %d)", len(facts), len(self._index), budget)
        return facts

    def build_context(self, budget_n: int | None = None) -> ContextPacket:
        facts = self.retrieve_context(budget_n)
        consequences = [
            c for c in self.pending_consequences()
            if c.importance >= self.config.importance_floor
        ]
        names = {
            entity_id: self._entities[entity_id].name
            for entity_id in dict.fromkeys(f.subject_id for f in facts)
        }
        return ContextPacket(turn=self.turn, facts=facts, consequences=consequences, entity_names=names)

    # ============================================================
    # PERSISTENCE
    # ============================================================

    def snapshot(self) -> Dict[str, Any]:
        """JSON-safe copy of everything, including the clock and id counters."""
        def dump(records):
            return [r.model_dump(mode="json") for r in records.values()]

        return {
            "turn": self.turn,
            "counters": dict(self._counters),
            "entities": dump(self._entities),
            "facts": dump(self._facts),
            "relationships": dump(self._relationships),
            "consequences": dump(self._consequences),
            "knowledge": dump(self._knowledge),
            "events": dump(self._events),
            "graph": self.graph.export_to_json(),
        }

    @classmethod
    def restore(cls, data: Dict[str, Any], config: Settings | None = None) -> "StoryMemory":
        memory = cls(config)
        memory.turn = data["turn"]
        memory._counters.update(data["counters"])

        for raw in data["entities"]:
            entity = StoryEntity.model_validate(raw)
            memory._entities[entity.id] = entity
            memory._names[entity.name.lower()] = entity.id
            for alias in entity.aliases:
                memory._names.setdefault(alias.lower(), entity.id)
        for raw in data["facts"]:
            fact = StoryFact.model_validate(raw)
            memory._facts[fact.id] = fact
            if fact.is_current:
                memory._index.add(fact)
        for raw in data["relationships"]:
            relationship = Relationship.model_validate(raw)
            memory._relationships[relationship.id] = relationship
        for raw in data["consequences"]:
            consequence = Consequence.model_validate(raw)
            memory._consequences[consequence.id] = consequence
        for raw in data["knowledge"]:
            entry = KnowledgeEntry.model_validate(raw)
            memory._knowledge[entry.id] = entry
        for raw in data["events"]:
            event = ScheduledEvent.model_validate(raw)
            memory._events[event.id] = event

        memory.graph.import_from_json(data["graph"])
        return memory

    def get_stats(self) -> Dict[str, Any]:
        return {
            "turn": self.turn,
            "entities": len(self._entities),
            "facts": len(self._facts),
            "current_facts": len(self._index),
            "pending_consequences": len(self.pending_consequences()),
            "pending_events": len(self.pending_events()),
            "graph": self.graph.get_stats(),
        }
