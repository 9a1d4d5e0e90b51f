from src.chronicle.llm.client import OllamaClient
from src.chronicle.llm.exceptions import JSONExtractionError, RelevanceParseError
from src.chronicle.llm.relevance import (
    OllamaRelevanceClassifier,
    RelevanceClassifier,
    SubstringClassifier,
    TriggerCandidate,
    extract_json,
    select_classifier,
)

__all__ = [
    'OllamaClient',
    'JSONExtractionError',
    'RelevanceParseError',
    'OllamaRelevanceClassifier',
    'RelevanceClassifier',
    'SubstringClassifier',
    'TriggerCandidate',
    'extract_json',
    'select_classifier',
]
