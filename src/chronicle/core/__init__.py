from src.chronicle.core.dice import (
    Advantage,
    DiceExpression,
    DiceResult,
    FixedRolls,
    RandomSource,
    SeededRandom,
    evaluate,
    parse,
    roll,
)
from src.chronicle.core.exceptions import (
    ChronicleError,
    InvariantViolation,
    ParseError,
    RejectionReason,
    UnknownEntityError,
    ValidationError,
)
from src.chronicle.core.rules_engine import RulesEngine, DeathSaveOutcome
from src.chronicle.core.state_manager import StateManager
from src.chronicle.core.resolution_engine import ResolutionEngine, parse_intent

__all__ = [
    # Dice
    'Advantage',
    'DiceExpression',
    'DiceResult',
    'FixedRolls',
    'RandomSource',
    'SeededRandom',
    'evaluate',
    'parse',
    'roll',
    # Errors
    'ChronicleError',
    'InvariantViolation',
    'ParseError',
    'RejectionReason',
    'UnknownEntityError',
    'ValidationError',
    # Engine
    'RulesEngine',
    'DeathSaveOutcome',
    'StateManager',
    'ResolutionEngine',
    'parse_intent',
]
