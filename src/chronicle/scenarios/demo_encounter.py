"""
Demo encounter utility for generating a sample session.
"""
from typing import Dict

from src.chronicle.memory import EntityType, FactCategory, OnCondition, RelationshipType, Severity, StoryMemory
from src.chronicle.models import Attribute, Attributes, Character, Skill, WorldState

# Attack profiles used by the scripted demo: (attack bonus, damage)
WEAPONS = {
    "player": (5, "1d12+3"),      # Greataxe
    "goblin": (4, "1d6+2"),       # Scimitar
}


def create_demo_encounter() -> WorldState:
    """
    Creates a demo encounter: Ron (level 3 barbarian) vs 3 goblins
    in a dark cathedral chamber.

    Returns:
        WorldState: A populated world ready for StartCombat
    """

    # ==================== PLAYER ====================

    player = Character(
        id="player",
        name="Ron",
        attributes=Attributes(STR=17, DEX=13, CON=16, INT=8, WIS=12, CHA=10),
        max_hp=35,
        hp=35,
        ac=14,
        save_proficiencies=[Attribute.STR, Attribute.CON],
        skill_proficiencies=[Skill.ATHLETICS, Skill.INTIMIDATION, Skill.PERCEPTION],
        speed=40,
        location="cathedral_nave",
        hit_die=12,
        hit_dice_total=3,
        hit_dice_remaining=3,
    )

    # ==================== GOBLINS ====================

    goblins = [
        Character(
            id=f"goblin_{n}",
            name=f"Goblin {label}",
            attributes=Attributes(STR=8, DEX=14, CON=10, INT=10, WIS=8, CHA=8),
            max_hp=7,
            hp=7,
            ac=15,
            skill_proficiencies=[Skill.STEALTH],
            location="cathedral_nave",
            hostile=True,
            hit_die=6,
        )
        for n, label in ((1, "Sneak"), (2, "Snarl"), (3, "Skulker"))
    ]

    return WorldState(characters={c.id: c for c in [player, *goblins]})


def seed_story_memory(memory: StoryMemory) -> Dict[str, str]:
    """Registers the cathedral's backstory. Returns ids by short name."""
    ids = {
        "cathedral": memory.add_entity("Cathedral of the Drowned Saint", EntityType.LOCATION, aliases=["the cathedral"]),
        "priest": memory.add_entity("Father Odric", EntityType.NPC, description="A priest who fled the cathedral"),
        "warband": memory.add_entity("Black Tooth Warband", EntityType.ORGANIZATION),
        "relic": memory.add_entity("Chalice of Tides", EntityType.ITEM),
    }
    memory.add_relationship(ids["warband"], ids["cathedral"], RelationshipType.LOCATED_IN)
    memory.add_relationship(ids["priest"], ids["warband"], RelationshipType.ENEMY, bidirectional=True)

    memory.add_fact(ids["cathedral"], "Flooded crypt beneath the altar", FactCategory.LOCATION, importance=0.6)
    stolen = memory.add_fact(
        ids["relic"], "Stolen by the goblins on the night of the flood", FactCategory.EVENT,
        importance=0.8, related_entity_ids=[ids["warband"]],
    )
    memory.add_fact(ids["priest"], "Wants the chalice returned quietly", FactCategory.MOTIVATION, importance=0.7)
    memory.record_knowledge(ids["priest"], "The goblins took the chalice", fact_id=stolen)

    memory.register_consequence(
        "mentions the chalice",
        "The surviving goblin bolts for the crypt with the relic",
        severity=Severity.MAJOR,
        related_entity_ids=[ids["relic"], ids["warband"]],
    )
    memory.schedule_event(
        "The crypt floods again and the lower doors seal",
        OnCondition(condition="opens the crypt"),
        location="cathedral_nave",
        involved_entity_ids=[ids["cathedral"]],
    )
    return ids
