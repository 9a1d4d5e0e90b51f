from enum import Enum

# Enum Classes
class Attribute(str, Enum):         # Attributes (D&D standard six)
    STR = 'STR'
    DEX = 'DEX'
    CON = 'CON'
    INT = 'INT'
    WIS = 'WIS'
    CHA = 'CHA'

class Skill(str, Enum):             # Skills and the attribute each one keys off
    ACROBATICS = "acrobatics"
    ANIMAL_HANDLING = "animal_handling"
    ARCANA = "arcana"
    ATHLETICS = "athletics"
    DECEPTION = "deception"
    HISTORY = "history"
    INSIGHT = "insight"
    INTIMIDATION = "intimidation"
    INVESTIGATION = "investigation"
    MEDICINE = "medicine"
    NATURE = "nature"
    PERCEPTION = "perception"
    PERFORMANCE = "performance"
    PERSUASION = "persuasion"
    RELIGION = "religion"
    SLEIGHT_OF_HAND = "sleight_of_hand"
    STEALTH = "stealth"
    SURVIVAL = "survival"

    @property
    def attribute(self) -> Attribute:
        return SKILL_ATTRIBUTES[self]

SKILL_ATTRIBUTES: dict[Skill, Attribute] = {
    Skill.ACROBATICS: Attribute.DEX,
    Skill.ANIMAL_HANDLING: Attribute.WIS,
    Skill.ARCANA: Attribute.INT,
    Skill.ATHLETICS: Attribute.STR,
    Skill.DECEPTION: Attribute.CHA,
    Skill.HISTORY: Attribute.INT,
    Skill.INSIGHT: Attribute.WIS,
    Skill.INTIMIDATION: Attribute.CHA,
    Skill.INVESTIGATION: Attribute.INT,
    Skill.MEDICINE: Attribute.WIS,
    Skill.NATURE: Attribute.INT,
    Skill.PERCEPTION: Attribute.WIS,
    Skill.PERFORMANCE: Attribute.CHA,
    Skill.PERSUASION: Attribute.CHA,
    Skill.RELIGION: Attribute.INT,
    Skill.SLEIGHT_OF_HAND: Attribute.DEX,
    Skill.STEALTH: Attribute.DEX,
    Skill.SURVIVAL: Attribute.WIS,
}

class Condition(str, Enum):         # Standard conditions
    BLINDED = "blinded"
    CHARMED = "charmed"
    DEAFENED = "deafened"
    EXHAUSTION = "exhaustion"
    FRIGHTENED = "frightened"
    GRAPPLED = "grappled"
    INCAPACITATED = "incapacitated"
    INVISIBLE = "invisible"
    PARALYZED = "paralyzed"
    PETRIFIED = "petrified"
    POISONED = "poisoned"
    PRONE = "prone"
    RESTRAINED = "restrained"
    STUNNED = "stunned"
    UNCONSCIOUS = "unconscious"

    @property
    def is_incapacitating(self) -> bool:
        return self in INCAPACITATING

INCAPACITATING = frozenset({
    Condition.INCAPACITATED,
    Condition.PARALYZED,
    Condition.PETRIFIED,
    Condition.STUNNED,
    Condition.UNCONSCIOUS,
})

# Condition -> mechanics lookups used by the rules engine
CHECK_DISADVANTAGE = frozenset({Condition.POISONED, Condition.FRIGHTENED, Condition.EXHAUSTION})
ATTACK_DISADVANTAGE = frozenset({
    Condition.POISONED, Condition.FRIGHTENED, Condition.PRONE,
    Condition.RESTRAINED, Condition.BLINDED,
})
ATTACK_ADVANTAGE = frozenset({Condition.INVISIBLE})
ATTACKED_WITH_ADVANTAGE = frozenset({
    Condition.BLINDED, Condition.RESTRAINED, Condition.PARALYZED,
    Condition.STUNNED, Condition.UNCONSCIOUS, Condition.PRONE,
})
AUTO_CRIT_WHEN_HIT = frozenset({Condition.PARALYZED, Condition.UNCONSCIOUS})
AUTO_FAIL_STR_DEX_SAVES = frozenset({
    Condition.PARALYZED, Condition.STUNNED, Condition.UNCONSCIOUS, Condition.PETRIFIED,
})
IMMOBILIZING = frozenset({Condition.GRAPPLED, Condition.RESTRAINED})

class RestType(str, Enum):
    SHORT = "short"
    LONG = "long"
