from typing import Annotated, Any, Dict, List, Literal, Union
from pydantic import BaseModel, ConfigDict, Field

from src.chronicle.models.schemas import Attribute, Condition, RestType, Skill
from src.chronicle.models.effects import Effect

# ========================================================================================
# INTENTS: Formal proposals to alter state. Validated, then resolved into Effects.
# ========================================================================================

class IntentBase(BaseModel):
    model_config = ConfigDict(frozen=True)

class RollModifiers(IntentBase):
    advantage: bool = False                 # Requested by the caller; conditions are added on top
    disadvantage: bool = False

# Checks
class AbilityCheck(RollModifiers):
    kind: Literal["ability_check"] = "ability_check"
    actor_id: str
    ability: Attribute
    dc: int

class SkillCheck(RollModifiers):
    kind: Literal["skill_check"] = "skill_check"
    actor_id: str
    skill: Skill
    dc: int

class SavingThrow(RollModifiers):
    kind: Literal["saving_throw"] = "saving_throw"
    actor_id: str
    ability: Attribute
    dc: int

# Combat
class Attack(RollModifiers):
    kind: Literal["attack"] = "attack"
    actor_id: str
    target_id: str
    attack_bonus: int
    damage: str                             # Dice notation, e.g. 1d8+3
    weapon: str | None = None

class CastSpell(IntentBase):
    kind: Literal["cast_spell"] = "cast_spell"
    actor_id: str
    spell: str
    target_ids: List[str] = []
    concentration: bool = False
    save_dc: int | None = None
    save_ability: Attribute | None = None
    damage: str | None = None
    half_on_save: bool = True
    condition: Condition | None = None      # Applied to targets that fail the save
    condition_duration: int | None = None

class ApplyDamage(IntentBase):
    kind: Literal["apply_damage"] = "apply_damage"
    target_id: str
    amount: int
    critical: bool = False
    source: str | None = None

class ApplyHealing(IntentBase):
    kind: Literal["apply_healing"] = "apply_healing"
    target_id: str
    amount: int
    source: str | None = None

class ApplyCondition(IntentBase):
    kind: Literal["apply_condition"] = "apply_condition"
    target_id: str
    condition: Condition
    duration: int | None = None             # Turns; ticks down at the start of the target's turn
    source: str | None = None

class RemoveCondition(IntentBase):
    kind: Literal["remove_condition"] = "remove_condition"
    target_id: str
    condition: Condition

class DeathSave(IntentBase):
    kind: Literal["death_save"] = "death_save"
    actor_id: str

class ConcentrationCheck(RollModifiers):
    kind: Literal["concentration_check"] = "concentration_check"
    actor_id: str
    damage: int

# Exploration & flow
class Move(IntentBase):
    kind: Literal["move"] = "move"
    actor_id: str
    destination: str

class Rest(IntentBase):
    kind: Literal["rest"] = "rest"
    actor_id: str
    rest_type: RestType
    hit_dice: int = 0                       # Short rest only: how many hit dice to spend

class StartCombat(IntentBase):
    kind: Literal["start_combat"] = "start_combat"
    participant_ids: List[str]

class NextTurn(IntentBase):
    kind: Literal["next_turn"] = "next_turn"

class EndCombat(IntentBase):
    kind: Literal["end_combat"] = "end_combat"
    reason: str = "ended"

class RollDice(IntentBase):
    kind: Literal["roll_dice"] = "roll_dice"
    notation: str
    purpose: str = "roll"
    actor_id: str | None = None


Intent = Annotated[
    Union[
        Attack, AbilityCheck, SkillCheck, SavingThrow, CastSpell,
        ApplyDamage, ApplyHealing, ApplyCondition, RemoveCondition,
        DeathSave, ConcentrationCheck, Move, Rest,
        StartCombat, NextTurn, EndCombat, RollDice,
    ],
    Field(discriminator="kind"),
]

# ============================================================
# RESOLUTION
# ============================================================

class Resolution(BaseModel):
    """
    The outcome of resolving a single Intent.
    Effects are in the order they were applied; the summary holds structured,
    language-free facts for the narrator (e.g. {"hit": True, "damage": 6}).
    """
    intent: Intent
    effects: List[Effect] = []
    summary: Dict[str, Any] = {}

    def effects_of(self, effect_type: type) -> list:
        return [e for e in self.effects if isinstance(e, effect_type)]
