"""
Dice notation parser and evaluator.

Supports compound expressions such as ``2d6+1d4+3``, keep/drop modifiers
(``4d6kh3``, ``2d20kl1``, ``4d6dl1``), reroll-once rules (``2d6r1``) and the
``advantage`` / ``disadvantage`` suffix on single-d20 expressions.

Every roll goes through a caller-supplied RandomSource, so tests can replay a
fixed sequence of die faces.
"""

import random
import re
from enum import Enum
from typing import Iterable, Protocol

from pydantic import BaseModel, ConfigDict

from src.chronicle.core.exceptions import ParseError

MAX_DICE = 1000
MAX_SIDES = 1000

# ============================================================
# RANDOM SOURCES
# ============================================================

class RandomSource(Protocol):
    """Anything that can produce a uniform integer in [a, b]."""

    def randint(self, a: int, b: int) -> int:
        ...


class SeededRandom:
    """RandomSource backed by the stdlib Mersenne Twister."""

    def __init__(self, seed: int | None = None):
        self._rng = random.Random(seed)

    def randint(self, a: int, b: int) -> int:
        return self._rng.randint(a, b)


class FixedRolls:
    """
    RandomSource that replays a fixed sequence of die faces.
    Used to force outcomes in tests and replays.
    """

    def __init__(self, values: Iterable[int]):
        self._values = list(values)
        self._index = 0

    def randint(self, a: int, b: int) -> int:
        if self._index >= len(self._values):
            raise RuntimeError(f"FixedRolls exhausted after {len(self._values)} rolls")
        value = self._values[self._index]
        if not a <= value <= b:
            raise ValueError(f"Forced roll {value} is outside the die range {a}..{b}")
        self._index += 1
        return value

    @property
    def remaining(self) -> int:
        return len(self._values) - self._index

# ============================================================
# EXPRESSION MODEL
# ============================================================

class Advantage(str, Enum):
    NONE = "none"
    ADVANTAGE = "advantage"
    DISADVANTAGE = "disadvantage"

    @classmethod
    def from_flags(cls, advantage: bool, disadvantage: bool) -> "Advantage":
        """Advantage and disadvantage cancel each other out."""
        if advantage and not disadvantage:
            return cls.ADVANTAGE
        if disadvantage and not advantage:
            return cls.DISADVANTAGE
        return cls.NONE

    def combine(self, other: "Advantage") -> "Advantage":
        return Advantage.from_flags(
            Advantage.ADVANTAGE in (self, other),
            Advantage.DISADVANTAGE in (self, other),
        )


class KeepMode(str, Enum):
    HIGHEST = "kh"
    LOWEST = "kl"


class DiceGroup(BaseModel):
    """One ``<count>d<sides>`` term with its keep and reroll modifiers."""
    model_config = ConfigDict(frozen=True)

    count: int
    sides: int
    negative: bool = False
    keep_mode: KeepMode | None = None
    keep: int | None = None                 # Already clamped to count
    reroll_at_most: int | None = None       # Reroll once when a die shows <= this

    def __str__(self) -> str:
        sides = "%" if self.sides == 100 else str(self.sides)
        text = f"{self.count}d{sides}"
        if self.keep_mode is not None and self.keep != self.count:
            text += f"{self.keep_mode.value}{self.keep}"
        if self.reroll_at_most is not None:
            text += f"r{self.reroll_at_most}"
        return text


class DiceExpression(BaseModel):
    """Immutable parsed dice notation."""
    model_config = ConfigDict(frozen=True)

    notation: str
    groups: tuple[DiceGroup, ...]
    modifier: int = 0
    advantage: Advantage = Advantage.NONE

    @property
    def is_single_d20(self) -> bool:
        return (
            len(self.groups) == 1
            and self.groups[0].count == 1
            and self.groups[0].sides == 20
            and not self.groups[0].negative
        )

    @property
    def dice_count(self) -> int:
        return sum(g.count for g in self.groups)

    def with_advantage(self, advantage: Advantage) -> "DiceExpression":
        """Return a copy rolled with the given advantage state."""
        if advantage is not Advantage.NONE and not self.is_single_d20:
            raise ParseError(self.notation, advantage.value, len(self.notation),
                             f"{advantage.value} only applies to a single d20, not '{self.notation}'")
        return self.model_copy(update={"advantage": advantage})

    def doubled_dice(self) -> "DiceExpression":
        """Critical-hit copy: every dice group rolls twice as many dice, modifiers unchanged."""
        groups = []
        for g in self.groups:
            keep = g.keep * 2 if g.keep is not None else None
            groups.append(g.model_copy(update={"count": g.count * 2, "keep": keep}))
        doubled = self.model_copy(update={"groups": tuple(groups)})
        return doubled.model_copy(update={"notation": doubled.canonical()})

    def canonical(self) -> str:
        parts = []
        for g in self.groups:
            sign = "-" if g.negative else ("+" if parts else "")
            parts.append(f"{sign}{g}")
        if self.modifier:
            parts.append(f"{self.modifier:+d}")
        text = "".join(parts) or "0"
        if self.advantage is not Advantage.NONE:
            text += f" {self.advantage.value}"
        return text

    def __str__(self) -> str:
        return self.notation

# ============================================================
# RESULTS
# ============================================================

class GroupRoll(BaseModel):
    sides: int
    kept: list[int]
    dropped: list[int] = []
    negative: bool = False

    @property
    def subtotal(self) -> int:
        total = sum(self.kept)
        return -total if self.negative else total


class DiceResult(BaseModel):
    """The outcome of evaluating a DiceExpression once."""
    notation: str
    groups: list[GroupRoll]
    modifier: int
    total: int
    natural: int | None = None              # Kept face of a single-d20 roll
    advantage: Advantage = Advantage.NONE

    @property
    def rolls(self) -> list[int]:
        """Kept die faces, in roll order."""
        return [value for g in self.groups for value in g.kept]

    @property
    def is_critical(self) -> bool:
        return self.natural == 20

    @property
    def is_fumble(self) -> bool:
        return self.natural == 1

    def __str__(self) -> str:
        faces = ", ".join(str(g.kept if not g.dropped else f"{g.kept} (dropped {g.dropped})")
                          for g in self.groups)
        text = f"{self.notation}: {faces}"
        if self.modifier > 0:
            text += f" + {self.modifier}"
        elif self.modifier < 0:
            text += f" - {abs(self.modifier)}"
        return f"{text} = {self.total}"

# ============================================================
# PARSER
# ============================================================

_SUFFIX = re.compile(r"\s+(advantage|adv|disadvantage|dis)\s*$")
_DICE_TERM = re.compile(r"(\d*)d(\d+|%)((?:(?:kh|kl|dh|dl|r)\d+)*)")
_MODIFIER = re.compile(r"(kh|kl|dh|dl|r)(\d+)")
_NUMBER = re.compile(r"\d+")


def parse(text: str) -> DiceExpression:
    """
    Parse dice notation into a DiceExpression.

    Raises:
        ParseError: naming the offending token and its position.
    """
    if text is None or not text.strip():
        raise ParseError(text or "", "", 0, "Empty dice notation")

    notation = text.strip()
    body = notation.lower()

    advantage = Advantage.NONE
    suffix = _SUFFIX.search(body)
    if suffix:
        advantage = Advantage.ADVANTAGE if suffix.group(1).startswith("adv") else Advantage.DISADVANTAGE
        body = body[:suffix.start()]

    # Whitespace between terms is allowed ("1d20 + 5"); keep a map back to the original offsets
    compact = []
    offsets = []
    for i, char in enumerate(body):
        if not char.isspace():
            compact.append(char)
            offsets.append(i)
    body = "".join(compact)
    if not body:
        raise ParseError(notation, notation, 0, f"No dice terms in '{notation}'")

    groups: list[DiceGroup] = []
    modifier = 0
    pos = 0
    while pos < len(body):
        negative = False
        if body[pos] in "+-":
            negative = body[pos] == "-"
            pos += 1
        elif pos > 0:
            raise _error(notation, body, offsets, pos)

        if pos >= len(body):
            raise ParseError(notation, body[pos - 1], offsets[pos - 1],
                             f"Dangling operator at end of '{notation}'")

        dice = _DICE_TERM.match(body, pos)
        if dice:
            groups.append(_build_group(notation, dice, negative, offsets[pos]))
            pos = dice.end()
            continue

        number = _NUMBER.match(body, pos)
        if number:
            value = int(number.group())
            modifier += -value if negative else value
            pos = number.end()
            continue

        raise _error(notation, body, offsets, pos)

    if not groups:
        raise ParseError(notation, notation, 0, f"'{notation}' contains no dice")

    expression = DiceExpression(notation=notation, groups=tuple(groups), modifier=modifier)
    if advantage is not Advantage.NONE:
        expression = expression.with_advantage(advantage)
    return expression


def _error(notation: str, body: str, offsets: list[int], pos: int) -> ParseError:
    token = re.match(r"[a-z%]+|\d+|.", body[pos:]).group()
    return ParseError(notation, token, offsets[pos])


def _build_group(notation: str, match: re.Match, negative: bool, position: int) -> DiceGroup:
    count = int(match.group(1)) if match.group(1) else 1
    sides = 100 if match.group(2) == "%" else int(match.group(2))

    if count < 1 or count > MAX_DICE:
        raise ParseError(notation, match.group(1), position, f"Dice count must be 1..{MAX_DICE}, got {count}")
    if sides < 2 or sides > MAX_SIDES:
        raise ParseError(notation, match.group(2), position, f"Dice sides must be 2..{MAX_SIDES}, got {sides}")

    keep_mode = None
    keep = None
    reroll = None
    mods_offset = position + (match.start(3) - match.start())
    for mod in _MODIFIER.finditer(match.group(3)):
        kind, value = mod.group(1), int(mod.group(2))
        where = mods_offset + mod.start()
        if kind == "r":
            if reroll is not None or value >= sides:
                raise ParseError(notation, mod.group(0), where,
                                 f"Invalid reroll rule '{mod.group(0)}' for d{sides}")
            reroll = value
            continue
        if keep_mode is not None:
            raise ParseError(notation, mod.group(0), where,
                             "Only one keep/drop modifier per dice group")
        if kind in ("kh", "kl"):
            if value < 1:
                raise ParseError(notation, mod.group(0), where, "Must keep at least one die")
            keep_mode = KeepMode.HIGHEST if kind == "kh" else KeepMode.LOWEST
            keep = min(value, count)
        else:
            # Dropping the lowest N is keeping the highest count-N, and vice versa
            keep_mode = KeepMode.HIGHEST if kind == "dl" else KeepMode.LOWEST
            keep = max(count - value, 0)

    return DiceGroup(
        count=count,
        sides=sides,
        negative=negative,
        keep_mode=keep_mode,
        keep=keep,
        reroll_at_most=reroll,
    )

# ============================================================
# EVALUATION
# ============================================================

def evaluate(expression: DiceExpression, rng: RandomSource) -> DiceResult:
    """Roll every die in the expression. Never fails for a parsed expression."""
    if expression.advantage is not Advantage.NONE and expression.is_single_d20:
        first = rng.randint(1, 20)
        second = rng.randint(1, 20)
        keep_high = expression.advantage is Advantage.ADVANTAGE
        kept = max(first, second) if keep_high else min(first, second)
        dropped = second if kept == first else first
        group = GroupRoll(sides=20, kept=[kept], dropped=[dropped])
        return DiceResult(
            notation=expression.notation,
            groups=[group],
            modifier=expression.modifier,
            total=kept + expression.modifier,
            natural=kept,
            advantage=expression.advantage,
        )

    rolled = [_roll_group(group, rng) for group in expression.groups]
    total = sum(g.subtotal for g in rolled) + expression.modifier
    natural = rolled[0].kept[0] if expression.is_single_d20 and rolled[0].kept else None
    return DiceResult(
        notation=expression.notation,
        groups=rolled,
        modifier=expression.modifier,
        total=total,
        natural=natural,
    )


def _roll_group(group: DiceGroup, rng: RandomSource) -> GroupRoll:
    values = [rng.randint(1, group.sides) for _ in range(group.count)]
    if group.reroll_at_most is not None:
        values = [
            rng.randint(1, group.sides) if v <= group.reroll_at_most else v
            for v in values
        ]

    if group.keep_mode is None or group.keep >= group.count:
        return GroupRoll(sides=group.sides, kept=values, negative=group.negative)

    # Rank on the sorted roll set, then report kept dice in roll order
    ranked = sorted(range(len(values)), key=lambda i: values[i],
                    reverse=group.keep_mode is KeepMode.HIGHEST)
    keep_idx = set(ranked[:group.keep])
    kept = [v for i, v in enumerate(values) if i in keep_idx]
    dropped = [v for i, v in enumerate(values) if i not in keep_idx]
    return GroupRoll(sides=group.sides, kept=kept, dropped=dropped, negative=group.negative)


def roll(notation: str, rng: RandomSource) -> DiceResult:
    """Parse and evaluate in one call."""
    return evaluate(parse(notation), rng)
