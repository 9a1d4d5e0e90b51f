from src.chronicle.memory.models import (
    EntityType,
    FactCategory,
    FactSource,
    RelationshipType,
    Severity,
    ConsequenceStatus,
    KnowledgeSource,
    VerificationStatus,
    Visibility,
    EventStatus,
    StoryEntity,
    StoryFact,
    Relationship,
    Consequence,
    KnowledgeEntry,
    AtTurn,
    AfterTurns,
    OnCondition,
    EventTrigger,
    ScheduledEvent,
    ContextPacket,
)
from src.chronicle.memory.fact_index import FactIndex
from src.chronicle.memory.story_memory import StoryMemory

__all__ = [
    # Enums
    'EntityType',
    'FactCategory',
    'FactSource',
    'RelationshipType',
    'Severity',
    'ConsequenceStatus',
    'KnowledgeSource',
    'VerificationStatus',
    'Visibility',
    'EventStatus',
    # Records
    'StoryEntity',
    'StoryFact',
    'Relationship',
    'Consequence',
    'KnowledgeEntry',
    'AtTurn',
    'AfterTurns',
    'OnCondition',
    'EventTrigger',
    'ScheduledEvent',
    'ContextPacket',
    # Store
    'FactIndex',
    'StoryMemory',
]
