import logging
from typing import Any, Dict, List, assert_never

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from src.chronicle.core.dice import Advantage, DiceExpression, DiceResult, parse
from src.chronicle.core.exceptions import ParseError, RejectionReason, ValidationError
from src.chronicle.core.rules_engine import RulesEngine
from src.chronicle.core.state_manager import StateManager
from src.chronicle.models.schemas import IMMOBILIZING
from src.chronicle.models import (
    AbilityCheck,
    ApplyCondition,
    ApplyDamage,
    ApplyHealing,
    Attack,
    AttackHit,
    AttackMissed,
    Attribute,
    CastSpell,
    Character,
    CharacterDied,
    CheckFailed,
    CheckSucceeded,
    Combatant,
    ConcentrationCheck,
    ConcentrationMaintained,
    Condition,
    DeathSave,
    DiceRolled,
    Effect,
    EndCombat,
    HpChanged,
    Intent,
    Move,
    NextTurn,
    RemoveCondition,
    Resolution,
    Rest,
    RestType,
    RollDice,
    SavingThrow,
    SkillCheck,
    StartCombat,
)

logger = logging.getLogger(__name__)

_intent_adapter = TypeAdapter(Intent)


def parse_intent(payload: dict) -> Intent:
    """
    Build an Intent from a tool-call style JSON object ({"kind": "attack", ...}).

    Raises:
        ValidationError: with reason MALFORMED if the payload does not fit any Intent.
    """
    try:
        return _intent_adapter.validate_python(payload)
    except PydanticValidationError as e:
        raise ValidationError(RejectionReason.MALFORMED, f"Malformed intent: {e}") from e


class ResolutionEngine:
    """
    Turns Intents into Resolutions. No LLM calls here -
    this is pure game logic.

    Every Intent is validated against the current world state before any dice
    are rolled; a rejected Intent raises ValidationError and leaves the world
    untouched.
    """

    def __init__(self, rules_engine: RulesEngine, state_manager: StateManager):
        self.rules = rules_engine
        self.state = state_manager

    def resolve(self, intent: Intent) -> Resolution:
        try:
            expressions = self._validate(intent)
        except ValidationError as e:
            e.intent = intent
            logger.info("Intent rejected (%s): %s", e.reason.value, e)
            raise

        effects, summary = self._execute(intent, expressions)

        if any(isinstance(e, (HpChanged, CharacterDied)) for e in effects):
            effects.extend(self._check_combat_end())

        logger.info("Resolved %s: %d effects", intent.kind, len(effects))
        return Resolution(intent=intent, effects=effects, summary=summary)

    # ============================================================
    # VALIDATION
    # ============================================================

    def _validate(self, intent: Intent) -> Dict[str, DiceExpression]:
        """Raise ValidationError if the intent cannot be resolved. Returns parsed dice expressions."""
        expressions: Dict[str, DiceExpression] = {}
        match intent:
            case Attack():
                self._able_actor(intent.actor_id)
                self._living_target(intent.target_id)
                expressions["damage"] = self._parse(intent.damage)
            case AbilityCheck() | SkillCheck():
                self._able_actor(intent.actor_id)
                self._positive_dc(intent.dc)
            case SavingThrow():
                self._living_actor(intent.actor_id)
                self._positive_dc(intent.dc)
            case CastSpell():
                self._able_actor(intent.actor_id)
                if len(set(intent.target_ids)) != len(intent.target_ids):
                    raise ValidationError(RejectionReason.INVALID_VALUE, f"Duplicate targets for {intent.spell}")
                for target_id in intent.target_ids:
                    self._living_target(target_id)
                if (intent.save_dc is None) != (intent.save_ability is None):
                    raise ValidationError(RejectionReason.INVALID_VALUE,
                                          "save_dc and save_ability must be given together")
                if intent.save_dc is not None:
                    self._positive_dc(intent.save_dc)
                if intent.damage is not None:
                    expressions["damage"] = self._parse(intent.damage)
            case ApplyDamage() | ApplyHealing():
                self._living_target(intent.target_id)
                if intent.amount < 0:
                    raise ValidationError(RejectionReason.INVALID_VALUE, f"Amount must be >= 0, got {intent.amount}")
            case ApplyCondition():
                self._living_target(intent.target_id)
                if intent.duration is not None and intent.duration < 1:
                    raise ValidationError(RejectionReason.INVALID_VALUE, f"Duration must be >= 1, got {intent.duration}")
            case RemoveCondition():
                self._living_target(intent.target_id)
            case DeathSave():
                actor = self._living_actor(intent.actor_id)
                if actor.stable:
                    raise ValidationError(RejectionReason.ALREADY_STABLE, f"{actor.name} is already stable")
                if actor.hp > 0:
                    raise ValidationError(RejectionReason.NOT_DYING, f"{actor.name} is not dying")
            case ConcentrationCheck():
                actor = self._living_actor(intent.actor_id)
                if actor.concentration is None:
                    raise ValidationError(RejectionReason.NOT_CONCENTRATING, f"{actor.name} is not concentrating")
                if intent.damage < 0:
                    raise ValidationError(RejectionReason.INVALID_VALUE, f"Damage must be >= 0, got {intent.damage}")
            case Move():
                actor = self._able_actor(intent.actor_id)
                if actor.condition_set & IMMOBILIZING:
                    raise ValidationError(RejectionReason.CANNOT_MOVE, f"{actor.name} cannot move (speed 0)")
                if not intent.destination.strip():
                    raise ValidationError(RejectionReason.INVALID_VALUE, "Destination must not be empty")
            case Rest():
                actor = self._able_actor(intent.actor_id)
                if self.state.combat is not None:
                    raise ValidationError(RejectionReason.COMBAT_ACTIVE, "Cannot rest during combat")
                if intent.hit_dice < 0:
                    raise ValidationError(RejectionReason.INVALID_VALUE, f"hit_dice must be >= 0, got {intent.hit_dice}")
                if intent.rest_type is RestType.SHORT and intent.hit_dice > actor.hit_dice_remaining:
                    raise ValidationError(
                        RejectionReason.INSUFFICIENT_RESOURCE,
                        f"{actor.name} has {actor.hit_dice_remaining} hit dice, wants {intent.hit_dice}",
                    )
            case StartCombat():
                if self.state.combat is not None:
                    raise ValidationError(RejectionReason.COMBAT_ACTIVE, "Combat is already active")
                if not intent.participant_ids:
                    raise ValidationError(RejectionReason.INVALID_VALUE, "Combat needs at least one participant")
                if len(set(intent.participant_ids)) != len(intent.participant_ids):
                    raise ValidationError(RejectionReason.INVALID_VALUE, "Duplicate combat participants")
                for participant_id in intent.participant_ids:
                    self._living_actor(participant_id)
            case NextTurn() | EndCombat():
                if self.state.combat is None:
                    raise ValidationError(RejectionReason.NO_COMBAT, "No combat is active")
            case RollDice():
                if intent.actor_id is not None:
                    self._actor(intent.actor_id)
                expressions["roll"] = self._parse(intent.notation)
            case _:
                assert_never(intent)
        return expressions

    def _actor(self, character_id: str) -> Character:
        character = self.state.get_character(character_id)
        if character is None:
            raise ValidationError(RejectionReason.UNKNOWN_ACTOR, f"Unknown actor '{character_id}'")
        return character

    def _living_actor(self, character_id: str) -> Character:
        character = self._actor(character_id)
        if character.dead:
            raise ValidationError(RejectionReason.ACTOR_DEAD, f"{character.name} is dead")
        return character

    def _able_actor(self, character_id: str) -> Character:
        character = self._living_actor(character_id)
        if character.is_incapacitated or character.hp == 0:
            raise ValidationError(RejectionReason.ACTOR_INCAPACITATED, f"{character.name} is incapacitated")
        return character

    def _target(self, character_id: str) -> Character:
        character = self.state.get_character(character_id)
        if character is None:
            raise ValidationError(RejectionReason.UNKNOWN_TARGET, f"Unknown target '{character_id}'")
        return character

    def _living_target(self, character_id: str) -> Character:
        character = self._target(character_id)
        if character.dead:
            raise ValidationError(RejectionReason.TARGET_DEAD, f"{character.name} is dead")
        return character

    def _positive_dc(self, dc: int) -> None:
        if dc < 1:
            raise ValidationError(RejectionReason.INVALID_VALUE, f"DC must be >= 1, got {dc}")

    def _parse(self, notation: str) -> DiceExpression:
        try:
            return parse(notation)
        except ParseError as e:
            raise ValidationError(RejectionReason.INVALID_VALUE, str(e)) from e

    # ============================================================
    # EXECUTION
    # ============================================================

    def _execute(self, intent: Intent, expressions: Dict[str, DiceExpression]) -> tuple[List[Effect], Dict[str, Any]]:
        match intent:
            case Attack():
                return self._attack(intent, expressions["damage"])
            case AbilityCheck():
                actor = self.state.require_character(intent.actor_id)
                return self._check(
                    actor,
                    label=f"{intent.ability.value} check",
                    bonus=self.rules.check_bonus(actor, intent.ability),
                    dc=intent.dc,
                    advantage=self.rules.check_advantage(actor, _requested(intent)),
                )
            case SkillCheck():
                actor = self.state.require_character(intent.actor_id)
                return self._check(
                    actor,
                    label=intent.skill.value,
                    bonus=self.rules.skill_bonus(actor, intent.skill),
                    dc=intent.dc,
                    advantage=self.rules.check_advantage(actor, _requested(intent)),
                )
            case SavingThrow():
                actor = self.state.require_character(intent.actor_id)
                effects, success, total = self._saving_throw(actor, intent.ability, intent.dc, _requested(intent))
                return effects, {"success": success, "total": total, "dc": intent.dc}
            case CastSpell():
                return self._cast_spell(intent, expressions.get("damage"))
            case ApplyDamage():
                effects = self.state.apply_damage(intent.target_id, intent.amount, critical=intent.critical)
                return effects, {"damage": intent.amount, **self._vitals(intent.target_id)}
            case ApplyHealing():
                effects = self.state.apply_healing(intent.target_id, intent.amount)
                return effects, {"healing": intent.amount, **self._vitals(intent.target_id)}
            case ApplyCondition():
                effects = self.state.add_condition(intent.target_id, intent.condition, intent.duration, intent.source)
                return effects, {"condition": intent.condition.value, "applied": bool(effects)}
            case RemoveCondition():
                effects = self.state.remove_condition(intent.target_id, intent.condition)
                return effects, {"condition": intent.condition.value, "removed": bool(effects)}
            case DeathSave():
                return self._death_save(intent)
            case ConcentrationCheck():
                return self._concentration_check(intent)
            case Move():
                effects = self.state.move_character(intent.actor_id, intent.destination)
                return effects, {"location": intent.destination}
            case Rest():
                return self._rest(intent)
            case StartCombat():
                return self._start_combat(intent)
            case NextTurn():
                effects = self.state.advance_turn()
                combat = self.state.combat
                return effects, {"round": combat.round, "actor_id": combat.current_actor_id}
            case EndCombat():
                return self.state.end_combat(intent.reason), {"reason": intent.reason}
            case RollDice():
                result = self.rules.roll(expressions["roll"])
                return [_dice_effect(intent.purpose, result, intent.actor_id)], {"total": result.total}
            case _:
                assert_never(intent)

    def _attack(self, intent: Attack, damage: DiceExpression) -> tuple[List[Effect], Dict[str, Any]]:
        attacker = self.state.require_character(intent.actor_id)
        target = self.state.require_character(intent.target_id)
        advantage = self.rules.attack_advantage(attacker, target, _requested(intent))

        result, hit, critical = self.rules.attack_roll(intent.attack_bonus, target.ac, advantage)
        effects: List[Effect] = [_dice_effect("attack", result, attacker.id)]
        summary: Dict[str, Any] = {
            "hit": hit,
            "critical": False,
            "damage": 0,
            "attack_total": result.total,
            "natural": result.natural,
            "target_ac": target.ac,
        }

        if not hit:
            effects.append(AttackMissed(attacker_id=attacker.id, target_id=target.id, total=result.total,
                                        target_ac=target.ac, fumble=result.natural == 1))
            return effects, summary

        critical = critical or self.rules.hit_is_critical(target)
        effects.append(AttackHit(attacker_id=attacker.id, target_id=target.id, total=result.total,
                                 target_ac=target.ac, critical=critical))

        damage_roll = self.rules.roll(damage.doubled_dice() if critical else damage)
        amount = max(0, damage_roll.total)
        effects.append(_dice_effect("damage", damage_roll, attacker.id))
        effects.extend(self.state.apply_damage(target.id, amount, critical=critical))

        summary.update(critical=critical, damage=amount, **self._vitals(target.id))
        return effects, summary

    def _check(
        self,
        actor: Character,
        label: str,
        bonus: int,
        dc: int,
        advantage: Advantage,
    ) -> tuple[List[Effect], Dict[str, Any]]:
        result, success = self.rules.d20_test(bonus, dc, advantage)
        effects: List[Effect] = [_dice_effect("check", result, actor.id)]
        if success:
            effects.append(CheckSucceeded(character_id=actor.id, check=label, total=result.total, dc=dc))
        else:
            effects.append(CheckFailed(character_id=actor.id, check=label, total=result.total, dc=dc))
        return effects, {"success": success, "total": result.total, "dc": dc}

    def _saving_throw(
        self,
        character: Character,
        ability: Attribute,
        dc: int,
        requested: Advantage = Advantage.NONE,
        label: str | None = None,
    ) -> tuple[List[Effect], bool, int]:
        """Returns (effects, success, total). STR/DEX saves fail with no roll for some conditions."""
        label = label or f"{ability.value} save"
        if self.rules.auto_fails_save(character, ability):
            return [CheckFailed(character_id=character.id, check=label, total=0, dc=dc, automatic=True)], False, 0

        advantage = self.rules.save_advantage(character, ability, requested)
        result, success = self.rules.d20_test(self.rules.save_bonus(character, ability), dc, advantage)
        effects: List[Effect] = [_dice_effect("save", result, character.id)]
        if success:
            effects.append(CheckSucceeded(character_id=character.id, check=label, total=result.total, dc=dc))
        else:
            effects.append(CheckFailed(character_id=character.id, check=label, total=result.total, dc=dc))
        return effects, success, result.total

    def _cast_spell(self, intent: CastSpell, damage: DiceExpression | None) -> tuple[List[Effect], Dict[str, Any]]:
        effects: List[Effect] = []
        if intent.concentration:
            effects.extend(self.state.set_concentration(intent.actor_id, intent.spell))

        # One damage roll is shared by every target
        damage_total = 0
        if damage is not None and intent.target_ids:
            damage_roll = self.rules.roll(damage)
            damage_total = max(0, damage_roll.total)
            effects.append(_dice_effect("damage", damage_roll, intent.actor_id))

        outcomes: Dict[str, Dict[str, Any]] = {}
        for target_id in intent.target_ids:
            target = self.state.require_character(target_id)
            saved = None
            if intent.save_dc is not None:
                save_effects, saved, _ = self._saving_throw(target, intent.save_ability, intent.save_dc)
                effects.extend(save_effects)

            amount = damage_total
            if saved:
                amount = damage_total // 2 if intent.half_on_save else 0
            if damage is not None:
                effects.extend(self.state.apply_damage(target_id, amount))

            if intent.condition is not None and not saved and not target.dead:
                effects.extend(self.state.add_condition(target_id, intent.condition,
                                                        intent.condition_duration, source=intent.spell))
            outcomes[target_id] = {"saved": saved, "damage": amount if damage is not None else 0}

        return effects, {"spell": intent.spell, "concentration": intent.concentration, "targets": outcomes}

    def _death_save(self, intent: DeathSave) -> tuple[List[Effect], Dict[str, Any]]:
        result, outcome = self.rules.death_save()
        effects: List[Effect] = [_dice_effect("death_save", result, intent.actor_id)]
        effects.extend(self.state.record_death_save(intent.actor_id, outcome, result.natural))
        actor = self.state.require_character(intent.actor_id)
        return effects, {
            "roll": result.natural,
            "outcome": outcome.value,
            "successes": actor.death_saves.successes,
            "failures": actor.death_saves.failures,
            "stable": actor.stable,
            "dead": actor.dead,
        }

    def _concentration_check(self, intent: ConcentrationCheck) -> tuple[List[Effect], Dict[str, Any]]:
        actor = self.state.require_character(intent.actor_id)
        spell = actor.concentration
        dc = self.rules.concentration_dc(intent.damage)
        effects, success, total = self._saving_throw(
            actor, Attribute.CON, dc, _requested(intent), label="CON save (concentration)",
        )
        if success:
            effects.append(ConcentrationMaintained(character_id=actor.id, spell=spell, dc=dc))
        else:
            effects.extend(self.state.set_concentration(actor.id, None))
        return effects, {"maintained": success, "dc": dc, "total": total, "spell": spell}

    def _rest(self, intent: Rest) -> tuple[List[Effect], Dict[str, Any]]:
        actor = self.state.require_character(intent.actor_id)
        effects: List[Effect] = []
        healing = 0
        if intent.rest_type is RestType.SHORT:
            con = actor.modifier(Attribute.CON)
            notation = f"1d{actor.hit_die}{con:+d}" if con else f"1d{actor.hit_die}"
            for _ in range(intent.hit_dice):
                result = self.rules.roll(notation)
                healing += max(0, result.total)
                effects.append(_dice_effect("hit_die", result, actor.id))
        effects.extend(self.state.rest(actor.id, intent.rest_type, healing=healing, hit_dice_spent=intent.hit_dice))
        return effects, {"rest_type": intent.rest_type.value, **self._vitals(actor.id)}

    def _start_combat(self, intent: StartCombat) -> tuple[List[Effect], Dict[str, Any]]:
        rolled = []
        for index, character_id in enumerate(intent.participant_ids):
            character = self.state.require_character(character_id)
            result = self.rules.initiative_roll(character)
            rolled.append((index, Combatant(character_id=character_id, initiative=result.total,
                                            modifier=character.initiative_modifier)))

        # Higher total first, then higher modifier, then the order participants were given in
        rolled.sort(key=lambda pair: (-pair[1].initiative, -pair[1].modifier, pair[0]))
        order = [combatant for _, combatant in rolled]
        effects = self.state.begin_combat(order)
        return effects, {"order": [c.character_id for c in order], "round": 1}

    # ============================================================
    # HELPERS
    # ============================================================

    def _check_combat_end(self) -> List[Effect]:
        """Combat ends once no hostile combatant remains conscious."""
        combat = self.state.combat
        if combat is None:
            return []
        participants = [self.state.require_character(i) for i in combat.participant_ids]
        if not any(c.hostile for c in participants):
            return []
        if self.state.get_conscious_hostiles(among=combat.participant_ids):
            return []
        return self.state.end_combat("hostiles_defeated")

    def _vitals(self, character_id: str) -> Dict[str, Any]:
        character = self.state.require_character(character_id)
        return {"hp": character.hp, "dead": character.dead}


def _requested(intent: Any) -> Advantage:
    return Advantage.from_flags(intent.advantage, intent.disadvantage)


def _dice_effect(purpose: str, result: DiceResult, actor_id: str | None = None) -> DiceRolled:
    return DiceRolled(
        purpose=purpose,
        notation=result.notation,
        rolls=result.rolls,
        dropped=[value for group in result.groups for value in group.dropped],
        modifier=result.modifier,
        total=result.total,
        natural=result.natural,
        actor_id=actor_id,
    )
