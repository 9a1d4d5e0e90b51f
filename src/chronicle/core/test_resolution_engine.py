#!/usr/bin/env python3
"""
End-to-end tests for Intent -> Resolution, driven by forced dice.
Run with: pytest src/chronicle/core/test_resolution_engine.py
"""

import pytest

from src.chronicle.core.dice import FixedRolls
from src.chronicle.core.exceptions import RejectionReason, ValidationError
from src.chronicle.core.resolution_engine import ResolutionEngine, parse_intent
from src.chronicle.core.rules_engine import RulesEngine
from src.chronicle.core.state_manager import StateManager
from src.chronicle.models import (
    AbilityCheck,
    ApplyCondition,
    ApplyDamage,
    ApplyHealing,
    Attack,
    AttackHit,
    AttackMissed,
    Attribute,
    Attributes,
    CastSpell,
    Character,
    CheckFailed,
    CheckSucceeded,
    CombatEnded,
    ConcentrationCheck,
    Condition,
    DeathSave,
    DiceRolled,
    EndCombat,
    HpChanged,
    Move,
    NextTurn,
    RemoveCondition,
    Rest,
    RestType,
    RollDice,
    SavingThrow,
    Skill,
    SkillCheck,
    StartCombat,
    WorldState,
)


def build(rolls, *characters):
    """Engine over a fresh world holding the given characters, rolling the forced dice."""
    state = StateManager(WorldState(), strict=True)
    for character in characters:
        state.add_character(character)
    rng = FixedRolls(rolls)
    return ResolutionEngine(RulesEngine(rng), state), state, rng


def hero(**kwargs) -> Character:
    data = {"id": "hero", "name": "Hero", "max_hp": 20, "hp": 20, "ac": 14}
    data.update(kwargs)
    return Character(**data)


def goblin(**kwargs) -> Character:
    data = {"id": "goblin", "name": "Goblin", "max_hp": 10, "hp": 10, "ac": 15, "hostile": True}
    data.update(kwargs)
    return Character(**data)


# ============================================================
# ATTACKS
# ============================================================

def test_attack_scenario_hit_for_six():
    """AC 15 / 10 HP target, +5 attack forced to 15, 1d8+3 forced to 3."""
    engine, state, _ = build([15, 3], hero(), goblin())
    resolution = engine.resolve(Attack(actor_id="hero", target_id="goblin", attack_bonus=5, damage="1d8+3"))

    kinds = [e.kind for e in resolution.effects]
    assert kinds == ["dice_rolled", "attack_hit", "dice_rolled", "hp_changed"]
    hp_change = resolution.effects[3]
    assert (hp_change.old_hp, hp_change.new_hp) == (10, 4)
    assert resolution.summary["hit"] is True
    assert resolution.summary["critical"] is False
    assert resolution.summary["damage"] == 6
    assert state.get_character("goblin").hp == 4
    print("✓ Scenario: hit for 6, goblin at 4 HP")


def test_natural_20_doubles_dice_not_modifier():
    engine, _, _ = build([20, 3, 5], hero(), goblin(ac=30, max_hp=40, hp=40))
    resolution = engine.resolve(Attack(actor_id="hero", target_id="goblin", attack_bonus=0, damage="1d8+3"))
    assert resolution.summary["critical"]
    assert resolution.summary["damage"] == 11
    damage = resolution.effects[2]
    assert damage.notation == "2d8+3"


def test_natural_1_misses_anything():
    engine, state, rng = build([1], hero(), goblin(ac=1))
    resolution = engine.resolve(Attack(actor_id="hero", target_id="goblin", attack_bonus=50, damage="1d8"))
    assert isinstance(resolution.effects[-1], AttackMissed)
    assert resolution.effects[-1].fumble
    assert state.get_character("goblin").hp == 10
    assert rng.remaining == 0


def test_poisoned_attacker_rolls_with_disadvantage():
    attacker = hero()
    engine, state, _ = build([18, 4], attacker, goblin())
    state.add_condition("hero", Condition.POISONED)
    resolution = engine.resolve(Attack(actor_id="hero", target_id="goblin", attack_bonus=5, damage="1d6"))
    roll = resolution.effects[0]
    assert roll.natural == 4 and roll.dropped == [18]
    assert isinstance(resolution.effects[1], AttackMissed)


def test_hit_on_unconscious_target_is_critical():
    engine, state, _ = build([2, 10, 2, 2], hero(), goblin(hp=0))
    state.add_condition("goblin", Condition.UNCONSCIOUS)
    # Advantage from the unconscious target: rolls 2 and 10, keeps 10
    resolution = engine.resolve(Attack(actor_id="hero", target_id="goblin", attack_bonus=5, damage="1d4"))
    hit = resolution.effects[1]
    assert isinstance(hit, AttackHit) and hit.critical
    # Damage at 0 HP from a critical: two death-save failures
    assert state.get_character("goblin").death_saves.failures == 2


# ============================================================
# CHECKS & SAVES
# ============================================================

def test_skill_check_with_proficiency():
    rogue = hero(attributes=Attributes(DEX=16), skill_proficiencies=[Skill.STEALTH])
    engine, _, _ = build([10], rogue)
    resolution = engine.resolve(SkillCheck(actor_id="hero", skill=Skill.STEALTH, dc=15))
    assert isinstance(resolution.effects[-1], CheckSucceeded)
    assert resolution.summary == {"success": True, "total": 15, "dc": 15}


def test_ability_check_adds_no_proficiency():
    engine, _, _ = build([12], hero(attributes=Attributes(STR=14)))
    resolution = engine.resolve(AbilityCheck(actor_id="hero", ability=Attribute.STR, dc=15))
    assert isinstance(resolution.effects[-1], CheckFailed)
    assert resolution.effects[-1].check == "STR check"


def test_paralyzed_creature_fails_dex_save_without_rolling():
    engine, state, rng = build([], hero())
    state.add_condition("hero", Condition.PARALYZED)
    resolution = engine.resolve(SavingThrow(actor_id="hero", ability=Attribute.DEX, dc=5))
    assert len(resolution.effects) == 1
    failed = resolution.effects[0]
    assert isinstance(failed, CheckFailed) and failed.automatic and failed.total == 0


def test_restrained_dex_save_has_disadvantage():
    engine, state, _ = build([17, 6], hero())
    state.add_condition("hero", Condition.RESTRAINED)
    resolution = engine.resolve(SavingThrow(actor_id="hero", ability=Attribute.DEX, dc=10))
    assert resolution.effects[0].natural == 6
    assert resolution.summary["success"] is False


# ============================================================
# DYING
# ============================================================

def test_death_save_scenario_8_then_1():
    engine, state, _ = build([8, 1, 15], hero(hp=0))
    first = engine.resolve(DeathSave(actor_id="hero"))
    assert first.summary["failures"] == 1

    second = engine.resolve(DeathSave(actor_id="hero"))
    assert second.summary["failures"] == 3
    assert second.summary["dead"] is True
    assert second.effects[-1].kind == "character_died"

    with pytest.raises(ValidationError) as exc_info:
        engine.resolve(DeathSave(actor_id="hero"))
    assert exc_info.value.reason is RejectionReason.ACTOR_DEAD
    print("✓ Scenario: death saves [8, 1] kill, third save rejected")


def test_natural_1_death_save_counts_twice():
    engine, _, _ = build([1], hero(hp=0))
    resolution = engine.resolve(DeathSave(actor_id="hero"))
    assert resolution.summary["failures"] == 2


def test_natural_20_death_save_revives():
    engine, state, _ = build([20], hero(hp=0))
    state.add_condition("hero", Condition.UNCONSCIOUS)
    state.get_character("hero").death_saves.failures = 2
    resolution = engine.resolve(DeathSave(actor_id="hero"))
    character = state.get_character("hero")
    assert character.hp == 1
    assert character.death_saves.failures == 0
    assert not character.has_condition(Condition.UNCONSCIOUS)
    assert "condition_removed" in [e.kind for e in resolution.effects]


def test_death_save_rejections():
    engine, state, _ = build([], hero())
    with pytest.raises(ValidationError) as exc_info:
        engine.resolve(DeathSave(actor_id="hero"))
    assert exc_info.value.reason is RejectionReason.NOT_DYING

    state.get_character("hero").hp = 0
    state.get_character("hero").stable = True
    with pytest.raises(ValidationError) as exc_info:
        engine.resolve(DeathSave(actor_id="hero"))
    assert exc_info.value.reason is RejectionReason.ALREADY_STABLE


# ============================================================
# CONCENTRATION & SPELLS
# ============================================================

def test_concentration_check_failure_breaks():
    engine, state, _ = build([5], hero(concentration="bless"))
    resolution = engine.resolve(ConcentrationCheck(actor_id="hero", damage=22))
    assert resolution.summary["dc"] == 11
    assert resolution.effects[-1].kind == "concentration_broken"
    assert state.get_character("hero").concentration is None


def test_concentration_check_success_maintains():
    engine, state, _ = build([15], hero(concentration="bless"))
    resolution = engine.resolve(ConcentrationCheck(actor_id="hero", damage=4))
    assert resolution.effects[-1].kind == "concentration_maintained"
    assert resolution.effects[-1].dc == 10
    assert state.get_character("hero").concentration == "bless"


def test_concentration_check_requires_concentration():
    engine, _, _ = build([15], hero())
    with pytest.raises(ValidationError) as exc_info:
        engine.resolve(ConcentrationCheck(actor_id="hero", damage=4))
    assert exc_info.value.reason is RejectionReason.NOT_CONCENTRATING


def test_area_spell_halves_damage_on_save():
    a = goblin(id="a", name="A", max_hp=30, hp=30)
    b = goblin(id="b", name="B", max_hp=30, hp=30)
    # 8d6 all threes = 24, then A saves on 15, B fails on 5
    engine, state, _ = build([3] * 8 + [15, 5], hero(), a, b)
    resolution = engine.resolve(CastSpell(
        actor_id="hero", spell="fireball", target_ids=["a", "b"],
        save_dc=13, save_ability=Attribute.DEX, damage="8d6",
    ))
    assert resolution.summary["targets"]["a"] == {"saved": True, "damage": 12}
    assert resolution.summary["targets"]["b"] == {"saved": False, "damage": 24}
    assert state.get_character("a").hp == 18
    assert state.get_character("b").hp == 6


def test_concentration_spell_replaces_previous_and_applies_condition():
    engine, state, _ = build([4], hero(concentration="bless"), goblin())
    resolution = engine.resolve(CastSpell(
        actor_id="hero", spell="hold person", target_ids=["goblin"], concentration=True,
        save_dc=13, save_ability=Attribute.WIS, condition=Condition.PARALYZED, condition_duration=10,
    ))
    kinds = [e.kind for e in resolution.effects]
    assert kinds[:2] == ["concentration_broken", "concentration_started"]
    assert kinds[-1] == "condition_applied"
    assert state.get_character("goblin").has_condition(Condition.PARALYZED)
    assert state.get_character("hero").concentration == "hold person"


# ============================================================
# COMBAT FLOW
# ============================================================

def test_initiative_order_and_ties():
    a = hero(id="a", name="A", initiative_bonus=2)
    b = hero(id="b", name="B", initiative_bonus=2)
    c = goblin(id="c", name="C", initiative_bonus=0)
    engine, state, _ = build([10, 10, 12], a, b, c)
    resolution = engine.resolve(StartCombat(participant_ids=["a", "b", "c"]))

    assert resolution.summary["order"] == ["a", "b", "c"]
    kinds = [e.kind for e in resolution.effects]
    assert kinds == ["combat_started", "initiative_rolled", "initiative_rolled", "initiative_rolled"]
    assert state.combat.round == 1
    assert state.combat.current_actor_id == "a"

    with pytest.raises(ValidationError) as exc_info:
        engine.resolve(StartCombat(participant_ids=["a"]))
    assert exc_info.value.reason is RejectionReason.COMBAT_ACTIVE


def test_next_turn_wraps_and_skips_the_dead():
    a, b, c = hero(id="a", name="A"), hero(id="b", name="B"), goblin(id="c", name="C")
    engine, state, _ = build([15, 10, 5], a, b, c)
    engine.resolve(StartCombat(participant_ids=["a", "b", "c"]))

    assert engine.resolve(NextTurn()).summary == {"round": 1, "actor_id": "b"}
    state.get_character("c").dead = True
    assert engine.resolve(NextTurn()).summary == {"round": 2, "actor_id": "a"}


def test_condition_duration_ticks_on_own_turn():
    engine, state, _ = build([15, 5], hero(), goblin())
    engine.resolve(StartCombat(participant_ids=["hero", "goblin"]))
    engine.resolve(ApplyCondition(target_id="goblin", condition=Condition.FRIGHTENED, duration=1))

    resolution = engine.resolve(NextTurn())
    assert [e.kind for e in resolution.effects] == ["turn_advanced", "condition_removed"]
    assert not state.get_character("goblin").conditions


def test_combat_ends_when_hostiles_fall():
    engine, state, _ = build([15, 5, 19, 8], hero(), goblin())
    engine.resolve(StartCombat(participant_ids=["hero", "goblin"]))
    resolution = engine.resolve(Attack(actor_id="hero", target_id="goblin", attack_bonus=5, damage="1d8+3"))

    assert isinstance(resolution.effects[-1], CombatEnded)
    assert resolution.effects[-1].reason == "hostiles_defeated"
    assert state.combat is None


def test_end_and_next_turn_need_combat():
    engine, _, _ = build([], hero())
    for intent in (NextTurn(), EndCombat()):
        with pytest.raises(ValidationError) as exc_info:
            engine.resolve(intent)
        assert exc_info.value.reason is RejectionReason.NO_COMBAT


# ============================================================
# HEALING, CONDITIONS, MOVEMENT, RESTS
# ============================================================

def test_healing_dead_character_rejected():
    engine, state, _ = build([], hero(hp=0, dead=True))
    with pytest.raises(ValidationError) as exc_info:
        engine.resolve(ApplyHealing(target_id="hero", amount=5))
    assert exc_info.value.reason is RejectionReason.TARGET_DEAD


def test_removing_absent_condition_is_a_no_op():
    engine, _, _ = build([], hero())
    resolution = engine.resolve(RemoveCondition(target_id="hero", condition=Condition.PRONE))
    assert resolution.effects == []
    assert resolution.summary["removed"] is False


def test_move_rules():
    engine, state, _ = build([], hero(location="tavern"))
    resolution = engine.resolve(Move(actor_id="hero", destination="docks"))
    assert resolution.effects[0].old_location == "tavern"
    assert state.get_character("hero").location == "docks"

    state.add_condition("hero", Condition.GRAPPLED)
    with pytest.raises(ValidationError) as exc_info:
        engine.resolve(Move(actor_id="hero", destination="tavern"))
    assert exc_info.value.reason is RejectionReason.CANNOT_MOVE

    state.add_condition("hero", Condition.STUNNED)
    with pytest.raises(ValidationError) as exc_info:
        engine.resolve(Move(actor_id="hero", destination="tavern"))
    assert exc_info.value.reason is RejectionReason.ACTOR_INCAPACITATED


def test_restrained_actor_cannot_move():
    engine, state, _ = build([], hero())
    state.add_condition("hero", Condition.RESTRAINED)
    with pytest.raises(ValidationError) as exc_info:
        engine.resolve(Move(actor_id="hero", destination="docks"))
    assert exc_info.value.reason is RejectionReason.CANNOT_MOVE


def test_actor_at_zero_hp_cannot_act():
    engine, state, rng = build([15, 3], hero(hp=0), goblin())
    intents = [
        Attack(actor_id="hero", target_id="goblin", attack_bonus=5, damage="1d8"),
        Move(actor_id="hero", destination="docks"),
        Rest(actor_id="hero", rest_type=RestType.SHORT),
    ]
    for intent in intents:
        with pytest.raises(ValidationError) as exc_info:
            engine.resolve(intent)
        assert exc_info.value.reason is RejectionReason.ACTOR_INCAPACITATED

    # Even with the condition stripped by hand, 0 HP still blocks acting
    state.get_character("hero").conditions.clear()
    with pytest.raises(ValidationError) as exc_info:
        engine.resolve(intents[0])
    assert exc_info.value.reason is RejectionReason.ACTOR_INCAPACITATED
    assert rng.remaining == 2
    print("✓ A character at 0 HP cannot attack, move or rest")


def test_removing_condition_from_dead_target_rejected():
    engine, state, _ = build([], hero(), goblin())
    state.add_condition("goblin", Condition.POISONED)
    state.apply_damage("goblin", 30)
    with pytest.raises(ValidationError) as exc_info:
        engine.resolve(RemoveCondition(target_id="goblin", condition=Condition.POISONED))
    assert exc_info.value.reason is RejectionReason.TARGET_DEAD
    assert state.get_character("goblin").has_condition(Condition.POISONED)


def test_short_rest_spends_hit_dice():
    fighter = hero(max_hp=30, hp=5, attributes=Attributes(CON=14), hit_die=10,
                   hit_dice_total=3, hit_dice_remaining=3)
    engine, state, _ = build([3, 6], fighter)
    resolution = engine.resolve(Rest(actor_id="hero", rest_type=RestType.SHORT, hit_dice=2))
    character = state.get_character("hero")
    assert character.hp == 18
    assert character.hit_dice_remaining == 1
    assert resolution.effects[-1].hit_dice_spent == 2

    with pytest.raises(ValidationError) as exc_info:
        engine.resolve(Rest(actor_id="hero", rest_type=RestType.SHORT, hit_dice=2))
    assert exc_info.value.reason is RejectionReason.INSUFFICIENT_RESOURCE


def test_long_rest_restores_everything():
    tired = hero(hp=3, hit_dice_total=4, hit_dice_remaining=0)
    engine, state, _ = build([], tired)
    state.add_condition("hero", Condition.EXHAUSTION)
    resolution = engine.resolve(Rest(actor_id="hero", rest_type=RestType.LONG))
    character = state.get_character("hero")
    assert character.hp == character.max_hp
    assert character.hit_dice_remaining == 2
    assert not character.has_condition(Condition.EXHAUSTION)
    assert resolution.effects[-1].hit_dice_recovered == 2


def test_rest_rejected_in_combat():
    engine, _, _ = build([10, 10], hero(), goblin())
    engine.resolve(StartCombat(participant_ids=["hero", "goblin"]))
    with pytest.raises(ValidationError) as exc_info:
        engine.resolve(Rest(actor_id="hero", rest_type=RestType.LONG))
    assert exc_info.value.reason is RejectionReason.COMBAT_ACTIVE


# ============================================================
# VALIDATION
# ============================================================

def test_rejection_happens_before_rolling():
    engine, state, rng = build([15, 3], hero(), goblin())
    with pytest.raises(ValidationError) as exc_info:
        engine.resolve(Attack(actor_id="ghost", target_id="goblin", attack_bonus=5, damage="1d8"))
    assert exc_info.value.reason is RejectionReason.UNKNOWN_ACTOR
    assert exc_info.value.intent.actor_id == "ghost"

    with pytest.raises(ValidationError) as exc_info:
        engine.resolve(Attack(actor_id="hero", target_id="goblin", attack_bonus=5, damage="1d8+banana"))
    assert exc_info.value.reason is RejectionReason.INVALID_VALUE

    with pytest.raises(ValidationError) as exc_info:
        engine.resolve(ApplyDamage(target_id="nobody", amount=3))
    assert exc_info.value.reason is RejectionReason.UNKNOWN_TARGET

    assert rng.remaining == 2
    assert state.get_character("goblin").hp == 10


def test_roll_dice_only_reports():
    engine, _, _ = build([4, 4], hero())
    resolution = engine.resolve(RollDice(notation="2d6", purpose="loot", actor_id="hero"))
    assert len(resolution.effects) == 1
    assert isinstance(resolution.effects[0], DiceRolled)
    assert resolution.summary == {"total": 8}


def test_parse_intent_from_tool_call_payload():
    intent = parse_intent({"kind": "attack", "actor_id": "hero", "target_id": "goblin",
                           "attack_bonus": 5, "damage": "1d8+3"})
    assert isinstance(intent, Attack)

    intent = parse_intent({"kind": "apply_condition", "target_id": "hero", "condition": "prone"})
    assert intent.condition is Condition.PRONE

    with pytest.raises(ValidationError) as exc_info:
        parse_intent({"kind": "fly", "actor_id": "hero"})
    assert exc_info.value.reason is RejectionReason.MALFORMED

    with pytest.raises(ValidationError):
        parse_intent({"kind": "attack", "actor_id": "hero"})


def test_damage_intent_effect_order():
    engine, _, _ = build([], hero(hp=4))
    resolution = engine.resolve(ApplyDamage(target_id="hero", amount=4))
    assert [type(e) for e in resolution.effects][:1] == [HpChanged]
    assert resolution.summary == {"damage": 4, "hp": 0, "dead": False}
