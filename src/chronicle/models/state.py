from typing import Dict, List
from pydantic import BaseModel, Field

from src.chronicle.models.character import Character

# ============================================================
# COMBAT
# ============================================================

class Combatant(BaseModel):
    character_id: str
    initiative: int                         # d20 + initiative modifier
    modifier: int                           # Tie-breaker


class CombatState(BaseModel):
    """Initiative order, whose turn it is, and the round counter."""
    order: List[Combatant]
    current_index: int = 0
    round: int = 1

    @property
    def current_actor_id(self) -> str:
        return self.order[self.current_index].character_id

    @property
    def participant_ids(self) -> List[str]:
        return [c.character_id for c in self.order]

# ============================================================
# WORLD STATE
# ============================================================

class WorldState(BaseModel):
    """Aggregate root - everything the rules engine mutates"""
    characters: Dict[str, Character] = {}
    combat: CombatState | None = None
    turn: int = 0

    @property
    def in_combat(self) -> bool:
        return self.combat is not None

    def summary(self) -> dict:
        """Structured snapshot of the current situation for a narrator prompt."""
        return {
            "turn": self.turn,
            "in_combat": self.in_combat,
            "round": self.combat.round if self.combat else None,
            "current_actor": self.combat.current_actor_id if self.combat else None,
            "characters": [
                {
                    "id": c.id,
                    "name": c.name,
                    "hp": f"{c.hp}/{c.max_hp}",
                    "conditions": [a.condition.value for a in c.conditions],
                    "dead": c.dead,
                    "location": c.location,
                }
                for c in self.characters.values()
            ],
        }
