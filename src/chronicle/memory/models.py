from enum import Enum
from typing import Annotated, List, Literal, Union

from pydantic import BaseModel, Field

# ========================================================================================
# STORY MEMORY RECORDS
# ========================================================================================

class EntityType(str, Enum):
    NPC = "npc"
    LOCATION = "location"
    ITEM = "item"
    QUEST = "quest"
    ORGANIZATION = "organization"
    EVENT = "event"
    CREATURE = "creature"
    PLAYER = "player"


class FactCategory(str, Enum):
    APPEARANCE = "appearance"
    PERSONALITY = "personality"
    EVENT = "event"
    RELATIONSHIP = "relationship"
    BACKSTORY = "backstory"
    MOTIVATION = "motivation"
    CAPABILITY = "capability"
    LOCATION = "location"
    POSSESSION = "possession"
    STATUS = "status"
    SECRET = "secret"

    @property
    def is_stable(self) -> bool:
        """Where things are and what they look like fades slower than everything else."""
        return self in (FactCategory.LOCATION, FactCategory.APPEARANCE)


class FactSource(str, Enum):
    DM_NARRATION = "dm_narration"
    PLAYER_ACTION = "player_action"
    NPC_DIALOGUE = "npc_dialogue"
    INFERRED = "inferred"


class RelationshipType(str, Enum):     # Common labels; any free text is accepted
    ALLY = "ally"
    ENEMY = "enemy"
    FAMILY = "family"
    EMPLOYER = "employer"
    RIVAL = "rival"
    ROMANTIC = "romantic"
    MEMBER_OF = "member_of"
    LOCATED_IN = "located_in"
    OWNS = "owns"
    KNOWS = "knows"


class Severity(str, Enum):
    MINOR = "minor"
    MODERATE = "moderate"
    MAJOR = "major"
    CRITICAL = "critical"

    @property
    def default_importance(self) -> float:
        return SEVERITY_IMPORTANCE[self]

SEVERITY_IMPORTANCE = {
    Severity.MINOR: 0.3,
    Severity.MODERATE: 0.5,
    Severity.MAJOR: 0.7,
    Severity.CRITICAL: 0.9,
}


class ConsequenceStatus(str, Enum):
    PENDING = "pending"
    TRIGGERED = "triggered"
    EXPIRED = "expired"
    RESOLVED = "resolved"


class KnowledgeSource(str, Enum):
    ENTITY = "entity"                  # Told by someone (see source_entity_id)
    OBSERVATION = "observation"
    WRITTEN = "written"
    PLAYER = "player"
    BACKGROUND = "background"
    UNKNOWN = "unknown"


class VerificationStatus(str, Enum):
    VERIFIED = "verified"
    FALSE = "false"
    PARTIALLY_TRUE = "partially_true"
    UNVERIFIED = "unverified"
    OUTDATED = "outdated"


class Visibility(str, Enum):
    PUBLIC = "public"                  # The player knows about it
    PRIVATE = "private"                # The player does not
    HINTED = "hinted"                  # The player knows something will happen, not what


class EventStatus(str, Enum):
    SCHEDULED = "scheduled"
    TRIGGERED = "triggered"
    CANCELLED = "cancelled"

# ============================================================
# RECORDS
# ============================================================

class StoryEntity(BaseModel):
    id: str
    name: str
    entity_type: EntityType
    aliases: List[str] = []
    description: str = ""
    created_turn: int = 0
    last_mentioned_turn: int = 0


class StoryFact(BaseModel):
    """
    A statement about an entity. Content is never edited; a newer fact
    supersedes it instead. Only importance changes, through decay.
    """
    id: str
    subject_id: str
    category: FactCategory
    content: str
    importance: float = Field(default=0.5, ge=0.0, le=1.0)
    related_entity_ids: List[str] = []
    created_turn: int = 0
    source: FactSource = FactSource.DM_NARRATION
    superseded_by: str | None = None
    seq: int = 0                       # Insertion order, last tie-breaker

    @property
    def is_current(self) -> bool:
        return self.superseded_by is None

    @property
    def sort_key(self) -> tuple:
        """Importance descending, then newest turn, then newest insertion."""
        return (-self.importance, -self.created_turn, -self.seq)


class Relationship(BaseModel):
    id: str
    source_id: str
    target_id: str
    relationship_type: str
    bidirectional: bool = False
    description: str | None = None
    importance: float = Field(default=0.5, ge=0.0, le=1.0)
    created_turn: int = 0


class Consequence(BaseModel):
    """A deferred narrative trigger: when `trigger` happens, `outcome` follows."""
    id: str
    trigger: str
    outcome: str
    severity: Severity = Severity.MODERATE
    related_entity_ids: List[str] = []
    importance: float = Field(default=0.5, ge=0.0, le=1.0)
    status: ConsequenceStatus = ConsequenceStatus.PENDING
    created_turn: int = 0
    expires_turn: int | None = None
    triggered_turn: int | None = None

    @property
    def is_pending(self) -> bool:
        return self.status is ConsequenceStatus.PENDING


class KnowledgeEntry(BaseModel):
    id: str
    knower_id: str
    content: str
    fact_id: str | None = None
    learned_turn: int = 0
    source: KnowledgeSource = KnowledgeSource.UNKNOWN
    source_entity_id: str | None = None
    verification: VerificationStatus = VerificationStatus.UNVERIFIED
    is_current: bool = True
    context: str | None = None


# Scheduled event triggers
class AtTurn(BaseModel):
    kind: Literal["at_turn"] = "at_turn"
    turn: int

class AfterTurns(BaseModel):
    kind: Literal["after_turns"] = "after_turns"
    turns: int = Field(ge=1)

class OnCondition(BaseModel):
    kind: Literal["condition"] = "condition"
    condition: str                     # Free text, matched by the relevance classifier

EventTrigger = Annotated[Union[AtTurn, AfterTurns, OnCondition], Field(discriminator="kind")]


class ScheduledEvent(BaseModel):
    id: str
    description: str
    trigger: EventTrigger
    due_turn: int | None = None        # Resolved at scheduling time for turn-based triggers
    repeat_every: int | None = Field(default=None, ge=1)
    location: str | None = None
    involved_entity_ids: List[str] = []
    visibility: Visibility = Visibility.PUBLIC
    status: EventStatus = EventStatus.SCHEDULED
    scheduled_turn: int = 0
    last_triggered_turn: int | None = None
    times_triggered: int = 0

    @property
    def is_pending(self) -> bool:
        return self.status is EventStatus.SCHEDULED

# ============================================================
# CONTEXT PACKET
# ============================================================

class ContextPacket(BaseModel):
    """What the narrator gets to see this turn."""
    turn: int
    facts: List[StoryFact] = []
    consequences: List[Consequence] = []
    entity_names: dict[str, str] = {}

    def to_prompt(self) -> str:
        lines = []
        if self.facts:
            lines.append("## Known facts")
            for fact in self.facts:
                subject = self.entity_names.get(fact.subject_id, fact.subject_id)
                lines.append(f"- [{fact.category.value}] {subject}: {fact.content}")
        if self.consequences:
            lines.append("## Pending consequences")
            for consequence in self.consequences:
                lines.append(f"- ({consequence.severity.value}) If {consequence.trigger}: {consequence.outcome}")
        return "\n".join(lines)
