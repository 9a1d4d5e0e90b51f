"""Entry point: plays a scripted demo encounter through a GameSession."""

from src.chronicle.config import settings
from src.chronicle.core import RejectionReason, SeededRandom, ValidationError
from src.chronicle.core.game_session import GameSession, initialize_game_session
from src.chronicle.llm import OllamaClient, select_classifier
from src.chronicle.models import Attack, DeathSave, NextTurn, StartCombat
from src.chronicle.scenarios import WEAPONS, create_demo_encounter, seed_story_memory
from src.chronicle.utils.logging import setup_logging

MAX_TURNS = 40


# ─────────────────────────────────────────────────────────────────────────────
# Scripted turns
# ─────────────────────────────────────────────────────────────────────────────
def take_turn(session: GameSession, actor_id: str) -> None:
    """The current actor attacks the nearest enemy, or rolls a death save while dying."""
    actor = session.state.require_character(actor_id)
    if actor.is_dying:
        resolution = session.submit(DeathSave(actor_id=actor_id))
        print(f"  {actor.name} rolls a death save: {resolution.summary}")
        return

    enemies = [
        c for c in session.state.get_current_state().characters.values()
        if c.hostile != actor.hostile and c.is_conscious
    ]
    if not enemies:
        return

    target = enemies[0]
    attack_bonus, damage = WEAPONS["goblin" if actor.hostile else "player"]
    try:
        resolution = session.submit(Attack(
            actor_id=actor_id, target_id=target.id, attack_bonus=attack_bonus, damage=damage,
        ))
    except ValidationError as e:
        print(f"  {actor.name} cannot act ({e.reason.value})")
        return

    if resolution.summary["hit"]:
        print(f"  {actor.name} hits {target.name} for {resolution.summary['damage']} (hp {resolution.summary['hp']})")
    else:
        print(f"  {actor.name} misses {target.name}")


def run_encounter(session: GameSession) -> None:
    participants = list(session.state.get_current_state().characters)
    resolution = session.submit(StartCombat(participant_ids=participants))
    print(f"Initiative: {resolution.summary}")

    for _ in range(MAX_TURNS):
        combat = session.state.combat
        if combat is None:
            break
        take_turn(session, combat.current_actor_id)
        if session.state.combat is None:
            break
        try:
            session.submit(NextTurn())
        except ValidationError as e:
            if e.reason is not RejectionReason.NO_COMBAT:
                raise
            break
        session.end_turn()

    print(session.state.get_current_state().summary())


def main() -> None:
    """Main entry point."""
    logger = setup_logging(
        level=settings.log_level,
        log_file=settings.log_file,
        enable_color=settings.enable_color,
    )
    logger.info("Starting Chronicle demo")
    logger.debug("Configuration: %s", settings)

    classifier = select_classifier(OllamaClient())
    session = initialize_game_session(create_demo_encounter(), rng=SeededRandom(7), classifier=classifier)
    seed_story_memory(session.memory)

    run_encounter(session)

    observation = session.observe_action("I hold up the chalice and ask who stole it")
    for consequence in observation.consequences:
        print(f"Consequence: {consequence.outcome}")

    print(session.context().to_prompt())


if __name__ == "__main__":
    main()
