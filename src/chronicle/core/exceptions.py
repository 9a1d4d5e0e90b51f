from enum import Enum
from typing import Any

# ============================================================
# CORE EXCEPTIONS
# ============================================================

class ChronicleError(Exception):
    """Base exception for the rules engine and story memory"""
    pass


class ParseError(ChronicleError):
    """Malformed dice notation. The message is safe to show to the player."""

    def __init__(self, notation: str, token: str, position: int, message: str | None = None):
        self.notation = notation
        self.token = token
        self.position = position
        super().__init__(message or f"Unexpected '{token}' at position {position} in '{notation}'")


class RejectionReason(str, Enum):
    """Why an Intent was refused before any dice were rolled"""
    UNKNOWN_ACTOR = "unknown_actor"
    UNKNOWN_TARGET = "unknown_target"
    ACTOR_DEAD = "actor_dead"
    TARGET_DEAD = "target_dead"
    ACTOR_INCAPACITATED = "actor_incapacitated"
    NOT_DYING = "not_dying"
    ALREADY_STABLE = "already_stable"
    NOT_CONCENTRATING = "not_concentrating"
    COMBAT_ACTIVE = "combat_active"
    NO_COMBAT = "no_combat"
    CANNOT_MOVE = "cannot_move"
    INSUFFICIENT_RESOURCE = "insufficient_resource"
    INVALID_VALUE = "invalid_value"
    MALFORMED = "malformed"


class ValidationError(ChronicleError):
    """An Intent was rejected. Nothing was rolled or mutated; the caller may retry."""

    def __init__(self, reason: RejectionReason, message: str, intent: Any = None):
        self.reason = reason
        self.intent = intent
        super().__init__(message)


class InvariantViolation(ChronicleError):
    """A mutation tried to leave world state inconsistent. Always a programming error."""
    pass


class UnknownEntityError(ChronicleError, KeyError):
    """A story memory id lookup failed"""

    def __init__(self, kind: str, entity_id: str):
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"Unknown {kind}: {entity_id}")

    def __str__(self) -> str:
        return self.args[0]
