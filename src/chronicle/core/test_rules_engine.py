"""
Tests for the rules engine: modifiers, condition-driven advantage and d20 tests.
"""

import pytest

from src.chronicle.core.dice import Advantage, FixedRolls
from src.chronicle.core.rules_engine import DeathSaveOutcome, RulesEngine
from src.chronicle.models import ActiveCondition, Attribute, Attributes, Character, Condition, Skill


def make_character(conditions=(), **kwargs) -> Character:
    data = {"id": "hero", "name": "Hero", "max_hp": 20, "hp": 20}
    data.update(kwargs)
    character = Character(**data)
    character.conditions = [ActiveCondition(condition=c) for c in conditions]
    return character


@pytest.mark.parametrize("score, modifier", [(1, -5), (8, -1), (9, -1), (10, 0), (11, 0), (12, 1), (20, 5), (30, 10)])
def test_calculate_modifier(score, modifier):
    assert RulesEngine(FixedRolls([])).calculate_modifier(score) == modifier


def test_skill_and_save_bonuses():
    rules = RulesEngine(FixedRolls([]))
    rogue = make_character(
        attributes=Attributes(DEX=16, INT=8),
        proficiency_bonus=3,
        skill_proficiencies=[Skill.STEALTH],
        save_proficiencies=[Attribute.DEX],
    )
    assert rules.skill_bonus(rogue, Skill.STEALTH) == 6
    assert rules.skill_bonus(rogue, Skill.ACROBATICS) == 3
    assert rules.skill_bonus(rogue, Skill.ARCANA) == -1
    assert rules.save_bonus(rogue, Attribute.DEX) == 6
    assert rules.save_bonus(rogue, Attribute.WIS) == 0
    print("✓ Proficiency applies only where the character is proficient")


@pytest.mark.parametrize("damage, dc", [(1, 10), (19, 10), (20, 10), (21, 10), (22, 11), (100, 50)])
def test_concentration_dc(damage, dc):
    assert RulesEngine.concentration_dc(damage) == dc


def test_check_disadvantage_from_conditions():
    rules = RulesEngine(FixedRolls([]))
    for condition in (Condition.POISONED, Condition.FRIGHTENED, Condition.EXHAUSTION):
        assert rules.check_advantage(make_character([condition])) is Advantage.DISADVANTAGE
    assert rules.check_advantage(make_character([Condition.PRONE])) is Advantage.NONE
    # Requested advantage cancels condition disadvantage
    assert rules.check_advantage(make_character([Condition.POISONED]), Advantage.ADVANTAGE) is Advantage.NONE


def test_save_advantage_and_auto_fail():
    rules = RulesEngine(FixedRolls([]))
    restrained = make_character([Condition.RESTRAINED])
    assert rules.save_advantage(restrained, Attribute.DEX) is Advantage.DISADVANTAGE
    assert rules.save_advantage(restrained, Attribute.WIS) is Advantage.NONE

    for condition in (Condition.PARALYZED, Condition.STUNNED, Condition.UNCONSCIOUS, Condition.PETRIFIED):
        held = make_character([condition])
        assert rules.auto_fails_save(held, Attribute.STR)
        assert rules.auto_fails_save(held, Attribute.DEX)
        assert not rules.auto_fails_save(held, Attribute.CON)
    print("✓ Save modifiers from conditions")


def test_attack_advantage_sources():
    rules = RulesEngine(FixedRolls([]))
    plain = make_character()

    assert rules.attack_advantage(make_character([Condition.INVISIBLE]), plain) is Advantage.ADVANTAGE
    assert rules.attack_advantage(plain, make_character([Condition.PRONE])) is Advantage.ADVANTAGE
    assert rules.attack_advantage(make_character([Condition.BLINDED]), plain) is Advantage.DISADVANTAGE
    # Blinded attacker vs restrained target: both apply and cancel
    assert rules.attack_advantage(make_character([Condition.BLINDED]),
                                  make_character([Condition.RESTRAINED])) is Advantage.NONE

    assert rules.hit_is_critical(make_character([Condition.UNCONSCIOUS]))
    assert not rules.hit_is_critical(make_character([Condition.PRONE]))


@pytest.mark.parametrize("ac", range(1, 51))
def test_natural_20_always_hits_natural_1_always_misses(ac):
    _, hit, critical = RulesEngine(FixedRolls([20])).attack_roll(-10, ac)
    assert hit and critical

    _, hit, critical = RulesEngine(FixedRolls([1])).attack_roll(100, ac)
    assert not hit and not critical


def test_d20_test_meets_dc():
    rules = RulesEngine(FixedRolls([10, 9]))
    result, success = rules.d20_test(bonus=5, dc=15)
    assert success and result.total == 15
    result, success = rules.d20_test(bonus=5, dc=15)
    assert not success


def test_checks_ignore_natural_20_and_1():
    _, success = RulesEngine(FixedRolls([20])).d20_test(bonus=0, dc=25)
    assert not success
    _, success = RulesEngine(FixedRolls([1])).d20_test(bonus=30, dc=25)
    assert success


@pytest.mark.parametrize("roll, outcome", [
    (20, DeathSaveOutcome.REVIVE),
    (10, DeathSaveOutcome.SUCCESS),
    (9, DeathSaveOutcome.FAILURE),
    (1, DeathSaveOutcome.DOUBLE_FAILURE),
])
def test_death_save_outcomes(roll, outcome):
    _, result = RulesEngine(FixedRolls([roll])).death_save()
    assert result is outcome


def test_initiative_uses_dex_unless_overridden():
    rules = RulesEngine(FixedRolls([10, 10]))
    quick = make_character(attributes=Attributes(DEX=18))
    assert rules.initiative_roll(quick).total == 14
    quick.initiative_bonus = 7
    assert rules.initiative_roll(quick).total == 17
