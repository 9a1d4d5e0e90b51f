from .schemas import (
    Attribute,
    Skill,
    SKILL_ATTRIBUTES,
    Condition,
    INCAPACITATING,
    RestType,
)

from .character import (
    Attributes,
    ActiveCondition,
    DeathSaves,
    Character,
)

from .state import (
    Combatant,
    CombatState,
    WorldState,
)

from .effects import (
    DiceRolled,
    AttackHit,
    AttackMissed,
    CheckSucceeded,
    CheckFailed,
    HpChanged,
    ConditionApplied,
    ConditionRemoved,
    CombatStarted,
    InitiativeRolled,
    TurnAdvanced,
    CombatEnded,
    DeathSaveRecorded,
    Stabilized,
    CharacterDied,
    ConcentrationStarted,
    ConcentrationBroken,
    ConcentrationMaintained,
    LocationChanged,
    RestCompleted,
    Effect,
)

from .actions import (
    AbilityCheck,
    SkillCheck,
    SavingThrow,
    Attack,
    CastSpell,
    ApplyDamage,
    ApplyHealing,
    ApplyCondition,
    RemoveCondition,
    DeathSave,
    ConcentrationCheck,
    Move,
    Rest,
    StartCombat,
    NextTurn,
    EndCombat,
    RollDice,
    Intent,
    Resolution,
)

__all__ = [
    # Schemas
    "Attribute",
    "Skill",
    "SKILL_ATTRIBUTES",
    "Condition",
    "INCAPACITATING",
    "RestType",

    # Characters & state
    "Attributes",
    "ActiveCondition",
    "DeathSaves",
    "Character",
    "Combatant",
    "CombatState",
    "WorldState",

    # Effects
    "DiceRolled",
    "AttackHit",
    "AttackMissed",
    "CheckSucceeded",
    "CheckFailed",
    "HpChanged",
    "ConditionApplied",
    "ConditionRemoved",
    "CombatStarted",
    "InitiativeRolled",
    "TurnAdvanced",
    "CombatEnded",
    "DeathSaveRecorded",
    "Stabilized",
    "CharacterDied",
    "ConcentrationStarted",
    "ConcentrationBroken",
    "ConcentrationMaintained",
    "LocationChanged",
    "RestCompleted",
    "Effect",

    # Intents
    "AbilityCheck",
    "SkillCheck",
    "SavingThrow",
    "Attack",
    "CastSpell",
    "ApplyDamage",
    "ApplyHealing",
    "ApplyCondition",
    "RemoveCondition",
    "DeathSave",
    "ConcentrationCheck",
    "Move",
    "Rest",
    "StartCombat",
    "NextTurn",
    "EndCombat",
    "RollDice",
    "Intent",
    "Resolution",
]
