from typing import Annotated, List, Literal, Union
from pydantic import BaseModel, ConfigDict, Field

from src.chronicle.models.schemas import Condition, RestType

# ========================================================================================
# EFFECTS: Already-applied, observable state changes. Append-only output of a resolution.
# ========================================================================================

class EffectBase(BaseModel):
    model_config = ConfigDict(frozen=True)

# Dice & rolls
class DiceRolled(EffectBase):
    kind: Literal["dice_rolled"] = "dice_rolled"
    purpose: str                            # "attack", "damage", "save", "death_save", ...
    notation: str
    rolls: List[int]                        # Kept faces
    dropped: List[int] = []
    modifier: int = 0
    total: int
    natural: int | None = None
    actor_id: str | None = None

class AttackHit(EffectBase):
    kind: Literal["attack_hit"] = "attack_hit"
    attacker_id: str
    target_id: str
    total: int
    target_ac: int
    critical: bool = False

class AttackMissed(EffectBase):
    kind: Literal["attack_missed"] = "attack_missed"
    attacker_id: str
    target_id: str
    total: int
    target_ac: int
    fumble: bool = False

class CheckSucceeded(EffectBase):
    kind: Literal["check_succeeded"] = "check_succeeded"
    character_id: str
    check: str                              # "athletics", "DEX save", "CON save (concentration)", ...
    total: int
    dc: int

class CheckFailed(EffectBase):
    kind: Literal["check_failed"] = "check_failed"
    character_id: str
    check: str
    total: int                              # 0 when the check failed automatically
    dc: int
    automatic: bool = False

# Hit points & conditions
class HpChanged(EffectBase):
    kind: Literal["hp_changed"] = "hp_changed"
    character_id: str
    old_hp: int
    new_hp: int
    temp_hp_absorbed: int = 0
    cause: str                              # "damage" or "healing"

class ConditionApplied(EffectBase):
    kind: Literal["condition_applied"] = "condition_applied"
    character_id: str
    condition: Condition
    duration: int | None = None

class ConditionRemoved(EffectBase):
    kind: Literal["condition_removed"] = "condition_removed"
    character_id: str
    condition: Condition

# Combat flow
class CombatStarted(EffectBase):
    kind: Literal["combat_started"] = "combat_started"
    participant_ids: List[str]

class InitiativeRolled(EffectBase):
    kind: Literal["initiative_rolled"] = "initiative_rolled"
    character_id: str
    total: int
    modifier: int

class TurnAdvanced(EffectBase):
    kind: Literal["turn_advanced"] = "turn_advanced"
    round: int
    actor_id: str

class CombatEnded(EffectBase):
    kind: Literal["combat_ended"] = "combat_ended"
    reason: str

# Dying
class DeathSaveRecorded(EffectBase):
    kind: Literal["death_save_recorded"] = "death_save_recorded"
    character_id: str
    roll: int
    successes: int
    failures: int

class Stabilized(EffectBase):
    kind: Literal["stabilized"] = "stabilized"
    character_id: str

class CharacterDied(EffectBase):
    kind: Literal["character_died"] = "character_died"
    character_id: str
    cause: str                              # "massive_damage", "death_saves", "damage_at_zero"

# Concentration
class ConcentrationStarted(EffectBase):
    kind: Literal["concentration_started"] = "concentration_started"
    character_id: str
    spell: str

class ConcentrationBroken(EffectBase):
    kind: Literal["concentration_broken"] = "concentration_broken"
    character_id: str
    spell: str

class ConcentrationMaintained(EffectBase):
    kind: Literal["concentration_maintained"] = "concentration_maintained"
    character_id: str
    spell: str
    dc: int

# Exploration
class LocationChanged(EffectBase):
    kind: Literal["location_changed"] = "location_changed"
    character_id: str
    old_location: str | None
    new_location: str

class RestCompleted(EffectBase):
    kind: Literal["rest_completed"] = "rest_completed"
    character_id: str
    rest_type: RestType
    hp_restored: int
    hit_dice_spent: int = 0
    hit_dice_recovered: int = 0


Effect = Annotated[
    Union[
        DiceRolled, AttackHit, AttackMissed, CheckSucceeded, CheckFailed,
        HpChanged, ConditionApplied, ConditionRemoved,
        CombatStarted, InitiativeRolled, TurnAdvanced, CombatEnded,
        DeathSaveRecorded, Stabilized, CharacterDied,
        ConcentrationStarted, ConcentrationBroken, ConcentrationMaintained,
        LocationChanged, RestCompleted,
    ],
    Field(discriminator="kind"),
]
