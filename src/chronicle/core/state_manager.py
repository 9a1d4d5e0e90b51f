# src/chronicle/core/state_manager.py

import logging
from typing import List

from src.chronicle.config import settings
from src.chronicle.core.exceptions import InvariantViolation
from src.chronicle.core.rules_engine import DeathSaveOutcome
from src.chronicle.models import (
    ActiveCondition,
    Character,
    CharacterDied,
    CombatEnded,
    Combatant,
    CombatStarted,
    CombatState,
    ConcentrationBroken,
    ConcentrationStarted,
    Condition,
    ConditionApplied,
    ConditionRemoved,
    DeathSaveRecorded,
    Effect,
    HpChanged,
    InitiativeRolled,
    LocationChanged,
    RestCompleted,
    RestType,
    Stabilized,
    TurnAdvanced,
    WorldState,
)

logger = logging.getLogger(__name__)

MAX_DEATH_SAVES = 3


class StateManager:
    """
    Central controller for accessing and mutating the WorldState.
    Ensures all state changes are centralized, logged, and valid.

    Every mutator returns the Effects it applied, in order.
    """
    def __init__(self, initial_state: WorldState | None = None, strict: bool | None = None):
        self._state = initial_state or WorldState()
        self.strict = settings.strict_invariants if strict is None else strict
        for character in self._state.characters.values():
            self._settle(character)

    def get_current_state(self) -> WorldState:
        """Return the current snapshot of the world state."""
        return self._state

    # ============================================================
    # QUERIES
    # ============================================================

    def get_character(self, character_id: str) -> Character | None:
        return self._state.characters.get(character_id)

    def require_character(self, character_id: str) -> Character:
        character = self.get_character(character_id)
        if character is None:
            raise InvariantViolation(f"No character with id '{character_id}'")
        return character

    @property
    def combat(self) -> CombatState | None:
        return self._state.combat

    def get_conscious_hostiles(self, among: List[str] | None = None) -> List[Character]:
        """Hostile characters still able to fight, optionally limited to the given ids."""
        ids = among if among is not None else list(self._state.characters)
        return [
            c for c in (self._state.characters[i] for i in ids if i in self._state.characters)
            if c.hostile and c.is_conscious
        ]

    # ============================================================
    # SETUP
    # ============================================================

    def add_character(self, character: Character) -> Character:
        if character.id in self._state.characters:
            self._violation(f"Duplicate character id '{character.id}'")
        if character.hp > character.max_hp:
            self._violation(f"{character.id}: hp {character.hp} exceeds max_hp {character.max_hp}")
            character.hp = character.max_hp
        self._state.characters[character.id] = character
        self._settle(character)
        logger.info("Character added: %s (%s) hp=%d/%d", character.id, character.name, character.hp, character.max_hp)
        return character

    def advance_clock(self) -> int:
        self._state.turn += 1
        return self._state.turn

    # ============================================================
    # HIT POINTS
    # ============================================================

    def apply_damage(self, character_id: str, amount: int, critical: bool = False) -> List[Effect]:
        """
        Temporary HP absorbs first, then HP, clamped at 0.

        Dropping to 0 with excess damage >= max HP kills outright; otherwise the
        character falls unconscious. Damage taken while already at 0 HP adds a
        death-save failure (two on a critical) or kills if it is >= max HP.
        """
        character = self.require_character(character_id)
        if not self._alive(character, "apply damage"):
            return []
        if amount < 0:
            self._violation(f"Negative damage {amount} to {character_id}")
            amount = 0

        effects: List[Effect] = []
        absorbed = min(character.temp_hp, amount)
        character.temp_hp -= absorbed
        remaining = amount - absorbed

        old_hp = character.hp
        new_hp = max(0, old_hp - remaining)
        character.hp = new_hp
        effects.append(HpChanged(
            character_id=character_id, old_hp=old_hp, new_hp=new_hp,
            temp_hp_absorbed=absorbed, cause="damage",
        ))
        logger.info("Damage applied: %s took %d (%d absorbed) hp %d -> %d", character_id, amount, absorbed, old_hp, new_hp)

        if remaining == 0:
            return effects

        if old_hp == 0:
            character.stable = False
            if remaining >= character.max_hp:
                effects.extend(self._kill(character, "damage_at_zero"))
                return effects
            effects.extend(self._add_death_save_failures(character, 2 if critical else 1, roll=0))
            return effects

        if new_hp == 0:
            excess = remaining - old_hp
            if excess >= character.max_hp:
                effects.extend(self._kill(character, "massive_damage"))
            else:
                effects.extend(self.add_condition(character_id, Condition.UNCONSCIOUS, source="0 hp"))
        return effects

    def apply_healing(self, character_id: str, amount: int) -> List[Effect]:
        character = self.require_character(character_id)
        if not self._alive(character, "heal"):
            return []
        if amount < 0:
            self._violation(f"Negative healing {amount} to {character_id}")
            amount = 0

        old_hp = character.hp
        new_hp = min(character.max_hp, old_hp + amount)
        character.hp = new_hp
        effects: List[Effect] = [HpChanged(character_id=character_id, old_hp=old_hp, new_hp=new_hp, cause="healing")]
        logger.info("Healing applied: %s hp %d -> %d", character_id, old_hp, new_hp)
        if old_hp == 0 and new_hp > 0:
            effects.extend(self._regain_consciousness(character))
        return effects

    def grant_temp_hp(self, character_id: str, amount: int) -> None:
        """Temporary HP does not stack; the higher value wins."""
        character = self.require_character(character_id)
        character.temp_hp = max(character.temp_hp, amount)

    # ============================================================
    # CONDITIONS
    # ============================================================

    def add_condition(
        self,
        character_id: str,
        condition: Condition,
        duration: int | None = None,
        source: str | None = None,
    ) -> List[Effect]:
        """Applying a condition the character already has refreshes its duration."""
        character = self.require_character(character_id)
        if not self._alive(character, f"apply {condition.value}"):
            return []

        existing = character.get_condition(condition)
        if existing is not None:
            if existing.remaining == duration:
                return []
            existing.remaining = duration
            existing.source = source or existing.source
            logger.info("Condition refreshed: %s %s (%s turns)", character_id, condition.value, duration)
            return [ConditionApplied(character_id=character_id, condition=condition, duration=duration)]

        character.conditions.append(ActiveCondition(condition=condition, remaining=duration, source=source))
        logger.info("Condition applied: %s %s (%s turns)", character_id, condition.value, duration)
        effects: List[Effect] = [ConditionApplied(character_id=character_id, condition=condition, duration=duration)]

        # An incapacitated creature cannot keep concentrating
        if condition.is_incapacitating and character.concentration:
            effects.extend(self.set_concentration(character_id, None))
        return effects

    def remove_condition(self, character_id: str, condition: Condition) -> List[Effect]:
        character = self.require_character(character_id)
        if not self._alive(character, f"remove {condition.value}"):
            return []
        existing = character.get_condition(condition)
        if existing is None:
            return []
        character.conditions.remove(existing)
        logger.info("Condition removed: %s %s", character_id, condition.value)
        return [ConditionRemoved(character_id=character_id, condition=condition)]

    def tick_conditions(self, character_id: str) -> List[Effect]:
        """Called at the start of the character's turn."""
        character = self.require_character(character_id)
        if not self._alive(character, "tick conditions"):
            return []
        effects: List[Effect] = []
        for active in list(character.conditions):
            if active.remaining is None:
                continue
            active.remaining -= 1
            if active.remaining <= 0:
                effects.extend(self.remove_condition(character_id, active.condition))
        return effects

    # ============================================================
    # DYING
    # ============================================================

    def record_death_save(self, character_id: str, outcome: DeathSaveOutcome, roll: int) -> List[Effect]:
        character = self.require_character(character_id)
        if not self._alive(character, "record a death save"):
            return []
        if character.hp > 0 or character.stable:
            self._violation(f"{character_id} is not dying (hp={character.hp}, stable={character.stable})")
            return []

        saves = character.death_saves
        match outcome:
            case DeathSaveOutcome.REVIVE:
                saves.reset()
                effects: List[Effect] = [DeathSaveRecorded(character_id=character_id, roll=roll, successes=0, failures=0)]
                character.hp = 1
                effects.append(HpChanged(character_id=character_id, old_hp=0, new_hp=1, cause="death_save"))
                logger.info("Death save: %s rolled a natural 20 and regains 1 hp", character_id)
                effects.extend(self._regain_consciousness(character))
                return effects
            case DeathSaveOutcome.SUCCESS:
                saves.successes += 1
                effects = [DeathSaveRecorded(character_id=character_id, roll=roll,
                                             successes=saves.successes, failures=saves.failures)]
                logger.info("Death save: %s success (%d/%d)", character_id, saves.successes, MAX_DEATH_SAVES)
                if saves.successes >= MAX_DEATH_SAVES:
                    character.stable = True
                    saves.reset()
                    effects.append(Stabilized(character_id=character_id))
                    logger.info("%s is stable", character_id)
                return effects
            case DeathSaveOutcome.FAILURE | DeathSaveOutcome.DOUBLE_FAILURE:
                count = 2 if outcome is DeathSaveOutcome.DOUBLE_FAILURE else 1
                return self._add_death_save_failures(character, count, roll)

    def _add_death_save_failures(self, character: Character, count: int, roll: int) -> List[Effect]:
        saves = character.death_saves
        saves.failures = min(MAX_DEATH_SAVES, saves.failures + count)
        effects: List[Effect] = [DeathSaveRecorded(character_id=character.id, roll=roll,
                                                   successes=saves.successes, failures=saves.failures)]
        logger.info("Death save: %s failure x%d (%d/%d)", character.id, count, saves.failures, MAX_DEATH_SAVES)
        if saves.failures >= MAX_DEATH_SAVES:
            effects.extend(self._kill(character, "death_saves"))
        return effects

    def _regain_consciousness(self, character: Character) -> List[Effect]:
        character.death_saves.reset()
        character.stable = False
        return self.remove_condition(character.id, Condition.UNCONSCIOUS)

    def _kill(self, character: Character, cause: str) -> List[Effect]:
        effects: List[Effect] = []
        if character.concentration:
            effects.extend(self.set_concentration(character.id, None))
        character.hp = 0
        character.stable = False
        character.dead = True
        logger.info("Character died: %s (%s)", character.id, cause)
        effects.append(CharacterDied(character_id=character.id, cause=cause))
        return effects

    # ============================================================
    # CONCENTRATION
    # ============================================================

    def set_concentration(self, character_id: str, spell: str | None) -> List[Effect]:
        """Start concentrating on `spell` (breaking any current one), or stop with None."""
        character = self.require_character(character_id)
        effects: List[Effect] = []
        current = character.concentration
        if current is not None and current != spell:
            character.concentration = None
            effects.append(ConcentrationBroken(character_id=character_id, spell=current))
            logger.info("Concentration broken: %s on %s", character_id, current)
        if spell is not None and current != spell:
            character.concentration = spell
            effects.append(ConcentrationStarted(character_id=character_id, spell=spell))
            logger.info("Concentration started: %s on %s", character_id, spell)
        return effects

    # ============================================================
    # COMBAT
    # ============================================================

    def begin_combat(self, order: List[Combatant]) -> List[Effect]:
        if self._state.combat is not None:
            self._violation("Combat is already active")
            return []
        self._state.combat = CombatState(order=order)
        logger.info("Combat started: %s", ", ".join(f"{c.character_id}({c.initiative})" for c in order))
        effects: List[Effect] = [CombatStarted(participant_ids=[c.character_id for c in order])]
        effects.extend(
            InitiativeRolled(character_id=c.character_id, total=c.initiative, modifier=c.modifier)
            for c in order
        )
        return effects

    def advance_turn(self) -> List[Effect]:
        """Move to the next living combatant; wrapping past the end starts a new round."""
        combat = self._state.combat
        if combat is None:
            self._violation("No active combat to advance")
            return []

        index = combat.current_index
        for _ in range(len(combat.order)):
            index += 1
            if index >= len(combat.order):
                index = 0
                combat.round += 1
            if not self._state.characters[combat.order[index].character_id].dead:
                break
        combat.current_index = index

        actor_id = combat.current_actor_id
        logger.info("Turn advanced: round %d, %s to act", combat.round, actor_id)
        effects: List[Effect] = [TurnAdvanced(round=combat.round, actor_id=actor_id)]
        if not self._state.characters[actor_id].dead:
            effects.extend(self.tick_conditions(actor_id))
        return effects

    def end_combat(self, reason: str) -> List[Effect]:
        if self._state.combat is None:
            self._violation("No active combat to end")
            return []
        self._state.combat = None
        logger.info("Combat ended: %s", reason)
        return [CombatEnded(reason=reason)]

    # ============================================================
    # EXPLORATION
    # ============================================================

    def move_character(self, character_id: str, destination: str) -> List[Effect]:
        character = self.require_character(character_id)
        if not self._alive(character, "move"):
            return []
        old = character.location
        character.location = destination
        logger.info("Location changed: %s %s -> %s", character_id, old, destination)
        return [LocationChanged(character_id=character_id, old_location=old, new_location=destination)]

    def rest(self, character_id: str, rest_type: RestType, healing: int = 0, hit_dice_spent: int = 0) -> List[Effect]:
        """
        Short rest: heal by the already-rolled hit dice total.
        Long rest: full HP, regain half the hit dice (min 1), lose Exhaustion, reset death saves.
        """
        character = self.require_character(character_id)
        if not self._alive(character, "rest"):
            return []

        effects: List[Effect] = []
        old_hp = character.hp
        recovered = 0
        match rest_type:
            case RestType.SHORT:
                if hit_dice_spent > character.hit_dice_remaining:
                    self._violation(f"{character_id} spent {hit_dice_spent} hit dice but has {character.hit_dice_remaining}")
                    hit_dice_spent = character.hit_dice_remaining
                character.hit_dice_remaining -= hit_dice_spent
                character.hp = min(character.max_hp, old_hp + max(0, healing))
            case RestType.LONG:
                hit_dice_spent = 0
                character.hp = character.max_hp
                recovered = min(max(1, character.hit_dice_total // 2),
                                character.hit_dice_total - character.hit_dice_remaining)
                character.hit_dice_remaining += recovered
                character.death_saves.reset()
                effects.extend(self.remove_condition(character_id, Condition.EXHAUSTION))

        if old_hp == 0 and character.hp > 0:
            effects.extend(self._regain_consciousness(character))
        if character.hp != old_hp:
            effects.insert(0, HpChanged(character_id=character_id, old_hp=old_hp, new_hp=character.hp, cause="rest"))
        effects.append(RestCompleted(
            character_id=character_id,
            rest_type=rest_type,
            hp_restored=character.hp - old_hp,
            hit_dice_spent=hit_dice_spent,
            hit_dice_recovered=recovered,
        ))
        logger.info("%s rest: %s hp %d -> %d", rest_type.value.capitalize(), character_id, old_hp, character.hp)
        return effects

    # ============================================================
    # PERSISTENCE
    # ============================================================

    def snapshot(self) -> dict:
        return self._state.model_dump(mode="json")

    @classmethod
    def restore(cls, data: dict, strict: bool | None = None) -> "StateManager":
        return cls(initial_state=WorldState.model_validate(data), strict=strict)

    # ============================================================
    # INVARIANTS
    # ============================================================

    def _settle(self, character: Character) -> None:
        """A living character at 0 HP is unconscious."""
        if character.hp == 0 and not character.dead and not character.has_condition(Condition.UNCONSCIOUS):
            character.conditions.append(ActiveCondition(condition=Condition.UNCONSCIOUS))
            logger.info("Character %s loaded at 0 hp; marked unconscious", character.id)

    def _alive(self, character: Character, action: str) -> bool:
        """Dead characters are immutable."""
        if character.dead:
            self._violation(f"Cannot {action}: {character.id} is dead")
            return False
        return True

    def _violation(self, message: str) -> None:
        """Raise in strict mode; otherwise log and let the caller clamp."""
        if self.strict:
            raise InvariantViolation(message)
        logger.error("Invariant violation (clamped): %s", message)
