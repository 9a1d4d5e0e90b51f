from typing import List
from pydantic import BaseModel, Field

from src.chronicle.models.schemas import Attribute, Condition, Skill, INCAPACITATING

# ============================================================
# CHARACTER
# ============================================================

class Attributes(BaseModel):                # Set of attribute scores for a creature (1..30)
    STR: int = Field(default=10, ge=1, le=30)
    DEX: int = Field(default=10, ge=1, le=30)
    CON: int = Field(default=10, ge=1, le=30)
    INT: int = Field(default=10, ge=1, le=30)
    WIS: int = Field(default=10, ge=1, le=30)
    CHA: int = Field(default=10, ge=1, le=30)

    def score(self, attribute: Attribute) -> int:
        return getattr(self, attribute.value)


class ActiveCondition(BaseModel):
    condition: Condition
    remaining: int | None = None            # Turns left; None lasts until removed
    source: str | None = None


class DeathSaves(BaseModel):
    successes: int = Field(default=0, ge=0, le=3)
    failures: int = Field(default=0, ge=0, le=3)

    def reset(self) -> None:
        self.successes = 0
        self.failures = 0


class Character(BaseModel):
    """A player character, NPC or monster as the rules engine sees it."""
    id: str
    name: str
    attributes: Attributes = Field(default_factory=Attributes)
    max_hp: int = Field(ge=1)
    hp: int = Field(ge=0)
    temp_hp: int = Field(default=0, ge=0)
    ac: int = 10
    proficiency_bonus: int = 2
    save_proficiencies: List[Attribute] = []
    skill_proficiencies: List[Skill] = []
    initiative_bonus: int | None = None     # Defaults to the DEX modifier
    speed: int = 30
    # Dynamic state (combat)
    conditions: List[ActiveCondition] = []
    death_saves: DeathSaves = Field(default_factory=DeathSaves)
    stable: bool = False
    dead: bool = False
    concentration: str | None = None        # Name of the spell being concentrated on
    # Roleplay / position
    location: str | None = None
    hostile: bool = False
    hit_die: int = 8
    hit_dice_total: int = 1
    hit_dice_remaining: int = 1

    def modifier(self, attribute: Attribute) -> int:
        return (self.attributes.score(attribute) - 10) // 2

    @property
    def initiative_modifier(self) -> int:
        if self.initiative_bonus is not None:
            return self.initiative_bonus
        return self.modifier(Attribute.DEX)

    def has_condition(self, condition: Condition) -> bool:
        return any(c.condition is condition for c in self.conditions)

    def get_condition(self, condition: Condition) -> ActiveCondition | None:
        return next((c for c in self.conditions if c.condition is condition), None)

    @property
    def condition_set(self) -> set[Condition]:
        return {c.condition for c in self.conditions}

    @property
    def is_incapacitated(self) -> bool:
        return bool(self.condition_set & INCAPACITATING)

    @property
    def is_conscious(self) -> bool:
        return not self.dead and self.hp > 0 and not self.has_condition(Condition.UNCONSCIOUS)

    @property
    def is_dying(self) -> bool:
        """At 0 HP, not yet stable or dead."""
        return self.hp == 0 and not self.stable and not self.dead
