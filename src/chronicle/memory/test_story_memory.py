"""
Tests for story memory: entities, facts, decay, retrieval, consequences,
knowledge, scheduled events and snapshot/restore.
"""

import pytest

from src.chronicle.config import Settings
from src.chronicle.core.exceptions import UnknownEntityError
from src.chronicle.llm.relevance import SubstringClassifier
from src.chronicle.memory import (
    AfterTurns,
    AtTurn,
    ConsequenceStatus,
    EntityType,
    EventStatus,
    FactCategory,
    KnowledgeSource,
    OnCondition,
    RelationshipType,
    Severity,
    StoryMemory,
    VerificationStatus,
)


def make_memory(**overrides) -> StoryMemory:
    return StoryMemory(Settings(**overrides))


def test_entities_and_name_lookup():
    memory = make_memory()
    baron = memory.add_entity("Baron Aldric", EntityType.NPC, aliases=["the Baron"])
    village = memory.add_entity("Riverside", EntityType.LOCATION)

    assert baron == "ent_1" and village == "ent_2"
    assert memory.add_entity("baron aldric", EntityType.NPC) == baron

    assert memory.find_entity_by_name("BARON ALDRIC") == baron
    assert memory.find_entity_by_name("the baron") == baron
    assert memory.find_entity_by_name("Aldric") == baron              # containment
    assert memory.find_entity_by_name("Riversde") == village          # fuzzy
    assert memory.find_entity_by_name("Dragon") is None
    print("✓ Exact, containment and fuzzy name lookup")


def test_unknown_ids_raise():
    memory = make_memory()
    with pytest.raises(UnknownEntityError):
        memory.get_entity("ent_9")
    with pytest.raises(UnknownEntityError):
        memory.add_fact("ent_9", "Has a limp", FactCategory.APPEARANCE)


def test_superseded_fact_leaves_retrieval_but_keeps_content():
    memory = make_memory()
    mira = memory.add_entity("Mira", EntityType.NPC)
    old = memory.add_fact(mira, "Lives in the mill", FactCategory.LOCATION, importance=0.6)
    new = memory.add_fact(mira, "Moved to the lighthouse", FactCategory.LOCATION, importance=0.6, supersedes=old)

    assert [f.id for f in memory.retrieve_context()] == [new]
    assert memory.get_fact(old).content == "Lives in the mill"
    assert memory.get_fact(old).superseded_by == new
    assert [f.id for f in memory.facts_about(mira, include_superseded=True)] == [new, old]


@pytest.mark.parametrize("category, rate", [
    (FactCategory.EVENT, 0.02),
    (FactCategory.SECRET, 0.02),
    (FactCategory.LOCATION, 0.01),
    (FactCategory.APPEARANCE, 0.01),
])
@pytest.mark.parametrize("ticks", [1, 5, 40])
def test_importance_decays_geometrically(category, rate, ticks):
    memory = make_memory()
    subject = memory.add_entity("Mira", EntityType.NPC)
    fact_id = memory.add_fact(subject, "Something", category, importance=0.8)
    for _ in range(ticks):
        memory.tick()
    assert memory.get_fact(fact_id).importance == pytest.approx(0.8 * (1 - rate) ** ticks)


def test_facts_below_floor_are_kept_but_not_retrieved():
    memory = make_memory(importance_floor=0.05)
    subject = memory.add_entity("Mira", EntityType.NPC)
    faint = memory.add_fact(subject, "Hummed a tune once", FactCategory.EVENT, importance=0.051)
    memory.tick()
    assert memory.retrieve_context() == []
    assert memory.get_fact(faint).importance < 0.05


def test_retrieval_order_and_budget():
    memory = make_memory()
    subject = memory.add_entity("Mira", EntityType.NPC)
    categories = list(FactCategory)
    for i in range(60):
        memory.add_fact(subject, f"fact {i}", categories[i % len(categories)], importance=(i % 7) / 7 + 0.1)
        if i % 10 == 0:
            memory.tick()

    facts = memory.retrieve_context(30)
    assert len(facts) <= 30
    importances = [f.importance for f in facts]
    assert importances == sorted(importances, reverse=True)
    assert memory.retrieve_context(0) == []
    print("✓ Retrieval respects the budget and importance order")


def test_ties_go_to_the_newer_fact():
    memory = make_memory()
    subject = memory.add_entity("Mira", EntityType.NPC)
    first = memory.add_fact(subject, "Old news", FactCategory.STATUS, importance=0.5)
    memory.turn = 3
    second = memory.add_fact(subject, "Fresh news", FactCategory.STATUS, importance=0.5)
    third = memory.add_fact(subject, "Same turn, later", FactCategory.STATUS, importance=0.5)
    assert [f.id for f in memory.retrieve_context()] == [third, second, first]


def test_ghost_ship_consequence_fires_on_mention():
    memory = make_memory()
    consequence_id = memory.register_consequence(
        "mentions the ghost ship",
        "The sailor goes pale and leaves the tavern",
        severity=Severity.MAJOR,
    )
    assert memory.get_consequence(consequence_id).importance == pytest.approx(0.7)

    classifier = SubstringClassifier()
    assert memory.check_relevance("I order another ale", classifier) == []

    memory.turn = 4
    fired = memory.check_relevance("I ask the sailor about the ghost ship", classifier)
    assert fired == [consequence_id]
    consequence = memory.get_consequence(consequence_id)
    assert consequence.status is ConsequenceStatus.TRIGGERED
    assert consequence.triggered_turn == 4

    # Fired consequences stay on record but never fire twice
    assert memory.check_relevance("The ghost ship again!", classifier) == []
    assert memory.pending_consequences() == []
    print("✓ Ghost ship consequence triggered")


class MadeUpIds:
    def classify(self, text, candidates):
        return ["csq_404", candidates[0].id, candidates[0].id]


def test_unknown_ids_from_classifier_are_ignored():
    memory = make_memory()
    consequence_id = memory.register_consequence("enters Riverside", "The guards recognise the party")
    assert memory.check_relevance("We walk into the village", MadeUpIds()) == [consequence_id]


def test_consequences_expire_and_decay():
    memory = make_memory()
    lasting = memory.register_consequence("insults the baron", "Bounty posted")
    fleeting = memory.register_consequence("returns the ring", "Reward", expires_turn=2)

    memory.tick()
    memory.tick()
    assert memory.get_consequence(fleeting).is_pending
    memory.tick()
    assert memory.get_consequence(fleeting).status is ConsequenceStatus.EXPIRED
    assert memory.get_consequence(lasting).importance == pytest.approx(0.5 * 0.99 ** 3)

    memory.resolve_consequence(lasting)
    assert memory.build_context().consequences == []


def test_build_context_includes_pending_consequences():
    memory = make_memory()
    baron = memory.add_entity("Baron Aldric", EntityType.NPC)
    memory.add_fact(baron, "Owes the guild money", FactCategory.SECRET, importance=0.9)
    memory.register_consequence("insults the baron", "Bounty posted", severity=Severity.CRITICAL)

    packet = memory.build_context()
    assert packet.entity_names == {baron: "Baron Aldric"}
    prompt = packet.to_prompt()
    assert "Baron Aldric: Owes the guild money" in prompt
    assert "If insults the baron: Bounty posted" in prompt


def test_knowledge_tracking():
    memory = make_memory()
    mira = memory.add_entity("Mira", EntityType.NPC)
    baron = memory.add_entity("Baron Aldric", EntityType.NPC)
    secret = memory.add_fact(baron, "Owes the guild money", FactCategory.SECRET)

    rumour = memory.record_knowledge(
        mira, "The baron is broke", fact_id=secret,
        source=KnowledgeSource.ENTITY, source_entity_id=baron,
    )
    assert memory.who_knows(secret) == [mira]
    assert [k.id for k in memory.knowledge_of(mira)] == [rumour]

    corrected = memory.supersede_knowledge(rumour, "The baron owes the guild", verification=VerificationStatus.VERIFIED)
    assert [k.id for k in memory.knowledge_of(mira)] == [corrected]
    assert len(memory.knowledge_of(mira, include_superseded=True)) == 2
    assert memory.get_knowledge(rumour).is_current is False
    assert memory.who_knows(secret) == []

    memory.update_verification(corrected, VerificationStatus.OUTDATED)
    assert memory.get_knowledge(corrected).verification is VerificationStatus.OUTDATED


def test_related_entities_follow_relationships():
    memory = make_memory()
    baron = memory.add_entity("Baron Aldric", EntityType.NPC)
    guard = memory.add_entity("Captain Voss", EntityType.NPC)
    guild = memory.add_entity("Thieves' Guild", EntityType.ORGANIZATION)
    memory.add_relationship(guard, baron, RelationshipType.EMPLOYER)
    memory.add_relationship(baron, guild, "owes money to", importance=0.8)
    memory.add_fact(baron, "Met Mira at the fair", FactCategory.EVENT)

    assert memory.related_entities(baron) == sorted([guard, guild])
    assert memory.related_entities(guard, depth=2) == sorted([baron, guild])
    assert len(memory.relationships_of(baron)) == 2


def test_scheduled_events():
    memory = make_memory()
    memory.turn = 2
    caravan = memory.schedule_event("The caravan arrives", AfterTurns(turns=3))
    bells = memory.schedule_event("The temple bells ring", AtTurn(turn=4), repeat_every=4)
    storm = memory.schedule_event("A storm rolls in", AtTurn(turn=10))

    assert memory.get_event(caravan).due_turn == 5
    assert memory.tick() == []                                   # turn 3
    assert [e.id for e in memory.tick()] == [bells]              # turn 4
    assert [e.id for e in memory.tick()] == [caravan]            # turn 5
    assert memory.get_event(caravan).status is EventStatus.TRIGGERED

    bell_event = memory.get_event(bells)
    assert bell_event.is_pending and bell_event.due_turn == 8
    assert [e.id for e in memory.tick(8)] == [bells]
    assert memory.get_event(bells).times_triggered == 2

    memory.cancel_event(storm)
    assert [e.id for e in memory.tick(12)] == [bells]

    with pytest.raises(ValueError):
        memory.tick(11)


def test_condition_events_use_the_classifier():
    memory = make_memory()
    ambush = memory.schedule_event("Bandits ambush the party", OnCondition(condition="enters the forest"))
    classifier = SubstringClassifier()

    assert memory.check_event_conditions("I walk into town", classifier) == []
    assert memory.tick(50) == []
    fired = memory.check_event_conditions("The party enters the forest", classifier)
    assert [e.id for e in fired] == [ambush]
    assert memory.get_event(ambush).status is EventStatus.TRIGGERED


def test_snapshot_restore_round_trip():
    memory = make_memory()
    baron = memory.add_entity("Baron Aldric", EntityType.NPC, aliases=["the Baron"])
    mira = memory.add_entity("Mira", EntityType.NPC)
    fact = memory.add_fact(baron, "Owes the guild money", FactCategory.SECRET, importance=0.9)
    memory.add_relationship(mira, baron, RelationshipType.ENEMY, bidirectional=True)
    memory.record_knowledge(mira, "The baron is broke", fact_id=fact)
    memory.register_consequence("insults the baron", "Bounty posted")
    memory.schedule_event("Feast day", AfterTurns(turns=2))
    memory.tick()

    restored = StoryMemory.restore(memory.snapshot(), memory.config)
    assert restored.snapshot() == memory.snapshot()
    assert restored.find_entity_by_name("the baron") == baron
    assert restored.who_knows(fact) == [mira]
    assert restored.related_entities(mira) == [baron]
    assert [f.id for f in restored.retrieve_context()] == [fact]

    # Counters carry over so new ids never collide
    assert restored.add_entity("Captain Voss", EntityType.NPC) == "ent_3"
    assert [e.description for e in restored.tick()] == ["Feast day"]
    print("✓ Snapshot/restore reproduces ids, importance and the clock")
