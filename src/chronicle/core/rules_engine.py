import logging
from enum import Enum

from src.chronicle.core.dice import Advantage, DiceExpression, DiceResult, RandomSource, evaluate, parse
from src.chronicle.models import Attribute, Character, Condition, Skill
from src.chronicle.models.schemas import (
    ATTACK_ADVANTAGE,
    ATTACK_DISADVANTAGE,
    ATTACKED_WITH_ADVANTAGE,
    AUTO_CRIT_WHEN_HIT,
    AUTO_FAIL_STR_DEX_SAVES,
    CHECK_DISADVANTAGE,
)

logger = logging.getLogger(__name__)

DEATH_SAVE_DC = 10
CONCENTRATION_MIN_DC = 10

# ============================================================
# RULES ENGINE
# ============================================================

class DeathSaveOutcome(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    DOUBLE_FAILURE = "double_failure"       # Natural 1
    REVIVE = "revive"                       # Natural 20


class RulesEngine:
    """
    Central logic for game mechanics: modifiers, advantage from conditions,
    d20 tests and dice rolls. Reads characters, never mutates them.
    """

    def __init__(self, rng: RandomSource):
        self.rng = rng

    # --------------------------------------------------------
    # Numbers
    # --------------------------------------------------------

    def calculate_modifier(self, attribute_value: int) -> int:
        """
        Calculates standard D&D style modifier: (val - 10) // 2
        e.g., 10 -> 0, 12 -> +1, 8 -> -1
        """
        return (attribute_value - 10) // 2

    def check_bonus(self, character: Character, ability: Attribute, proficient: bool = False) -> int:
        bonus = self.calculate_modifier(character.attributes.score(ability))
        if proficient:
            bonus += character.proficiency_bonus
        return bonus

    def skill_bonus(self, character: Character, skill: Skill) -> int:
        return self.check_bonus(character, skill.attribute, skill in character.skill_proficiencies)

    def save_bonus(self, character: Character, ability: Attribute) -> int:
        return self.check_bonus(character, ability, ability in character.save_proficiencies)

    @staticmethod
    def concentration_dc(damage: int) -> int:
        return max(CONCENTRATION_MIN_DC, damage // 2)

    # --------------------------------------------------------
    # Advantage from conditions
    # --------------------------------------------------------

    def check_advantage(self, character: Character, requested: Advantage = Advantage.NONE) -> Advantage:
        """Ability and skill checks."""
        conditions = character.condition_set
        disadvantage = bool(conditions & CHECK_DISADVANTAGE)
        return requested.combine(Advantage.from_flags(False, disadvantage))

    def save_advantage(
        self,
        character: Character,
        ability: Attribute,
        requested: Advantage = Advantage.NONE,
    ) -> Advantage:
        disadvantage = ability is Attribute.DEX and character.has_condition(Condition.RESTRAINED)
        return requested.combine(Advantage.from_flags(False, disadvantage))

    def attack_advantage(
        self,
        attacker: Character,
        target: Character,
        requested: Advantage = Advantage.NONE,
    ) -> Advantage:
        attacker_conditions = attacker.condition_set
        advantage = bool(attacker_conditions & ATTACK_ADVANTAGE) or bool(target.condition_set & ATTACKED_WITH_ADVANTAGE)
        disadvantage = bool(attacker_conditions & ATTACK_DISADVANTAGE)
        return requested.combine(Advantage.from_flags(advantage, disadvantage))

    def auto_fails_save(self, character: Character, ability: Attribute) -> bool:
        if ability not in (Attribute.STR, Attribute.DEX):
            return False
        return bool(character.condition_set & AUTO_FAIL_STR_DEX_SAVES)

    def hit_is_critical(self, target: Character) -> bool:
        """Any hit on a paralyzed or unconscious target is a critical."""
        return bool(target.condition_set & AUTO_CRIT_WHEN_HIT)

    # --------------------------------------------------------
    # Rolls
    # --------------------------------------------------------

    def roll(self, dice: str | DiceExpression, advantage: Advantage = Advantage.NONE) -> DiceResult:
        """Parse (if needed) and roll a dice expression with the engine's random source."""
        expression = parse(dice) if isinstance(dice, str) else dice
        if advantage is not Advantage.NONE:
            expression = expression.with_advantage(advantage)
        result = evaluate(expression, self.rng)
        logger.debug("Rolled %s", result)
        return result

    def d20_test(self, bonus: int, dc: int, advantage: Advantage = Advantage.NONE) -> tuple[DiceResult, bool]:
        """
        1d20 + bonus against a DC. Meeting the DC is a success; natural 1 and 20
        have no special meaning here.
        """
        result = self.roll(_d20(bonus), advantage)
        return result, result.total >= dc

    def attack_roll(
        self,
        attack_bonus: int,
        target_ac: int,
        advantage: Advantage = Advantage.NONE,
    ) -> tuple[DiceResult, bool, bool]:
        """
        Returns (result, hit, critical). A natural 20 always hits and crits,
        a natural 1 always misses.
        """
        result = self.roll(_d20(attack_bonus), advantage)
        if result.natural == 20:
            return result, True, True
        if result.natural == 1:
            return result, False, False
        return result, result.total >= target_ac, False

    def initiative_roll(self, character: Character) -> DiceResult:
        return self.roll(_d20(character.initiative_modifier))

    def death_save(self) -> tuple[DiceResult, DeathSaveOutcome]:
        result = self.roll("1d20")
        match result.natural:
            case 20:
                outcome = DeathSaveOutcome.REVIVE
            case 1:
                outcome = DeathSaveOutcome.DOUBLE_FAILURE
            case n if n >= DEATH_SAVE_DC:
                outcome = DeathSaveOutcome.SUCCESS
            case _:
                outcome = DeathSaveOutcome.FAILURE
        return result, outcome


def _d20(bonus: int) -> str:
    return f"1d20{bonus:+d}" if bonus else "1d20"
