"""
Relevance classifiers: decide which registered triggers a player action fires.

Story memory hands a classifier the action text plus (trigger description, id)
candidates and gets back the ids that fire. The substring classifier is
deterministic and needs no model; the Ollama classifier asks a small local
model for semantic matches.
"""

import json
import logging
import re
from typing import List, Protocol, Sequence

from pydantic import BaseModel, ConfigDict, ValidationError

from src.chronicle.llm.client import OllamaClient
from src.chronicle.llm.exceptions import JSONExtractionError, RelevanceParseError
from src.chronicle.llm.prompts import RelevancePrompts

logger = logging.getLogger(__name__)


class TriggerCandidate(BaseModel):
    model_config = ConfigDict(frozen=True)

    description: str
    id: str


class RelevanceClassifier(Protocol):
    def classify(self, text: str, candidates: Sequence[TriggerCandidate]) -> List[str]:
        """Ids of the candidates whose trigger the text satisfies."""
        ...


# ============================================================
# SUBSTRING CLASSIFIER
# ============================================================

# Leading phrases that describe how the trigger is met rather than what it is about
CUE_PHRASES = (
    "when", "if", "once", "the player", "player", "the party", "party",
    "mentions", "mention of", "mention", "asks about", "talks about",
    "speaks of", "says",
)


class SubstringClassifier:
    """Fires a trigger when its subject appears verbatim (case-insensitively) in the text.

    "mentions the ghost ship" fires for "I ask the sailor about the ghost ship".
    """

    def __init__(self, cue_phrases: Sequence[str] = CUE_PHRASES):
        self.cue_phrases = tuple(sorted(cue_phrases, key=len, reverse=True))

    def subject_of(self, description: str) -> str:
        subject = description.lower().strip().rstrip(".!?")
        stripped = True
        while stripped:
            stripped = False
            for cue in self.cue_phrases:
                if subject == cue or subject.startswith(cue + " "):
                    subject = subject[len(cue):].lstrip()
                    stripped = True
                    break
        return subject

    def classify(self, text: str, candidates: Sequence[TriggerCandidate]) -> List[str]:
        haystack = text.lower()
        matched = []
        for candidate in candidates:
            subject = self.subject_of(candidate.description)
            if subject and subject in haystack:
                matched.append(candidate.id)
        logger.debug("Substring classifier matched %d/%d candidates", len(matched), len(candidates))
        return matched


# ============================================================
# OLLAMA CLASSIFIER
# ============================================================

class RelevanceResponse(BaseModel):
    triggered_ids: List[str] = []
    explanation: str | None = None


def extract_json(response: str) -> dict:
    """
    Extract a JSON object from an LLM response that may contain surrounding text.

    Handles pure JSON, JSON wrapped in markdown code blocks, and JSON with
    preamble or postamble text.
    """
    response = response.strip()

    # Try 1: Direct JSON parse
    try:
        data = json.loads(response)
        if isinstance(data, dict):
            return data
    except json.JSONDecodeError:
        pass

    # Try 2: Markdown code blocks, ```json ... ``` or ``` ... ```
    for match in re.findall(r"```(?:json)?\s*\n?(.*?)\n?```", response, re.DOTALL):
        try:
            data = json.loads(match.strip())
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict):
            return data

    # Try 3: Outermost { ... } by matching braces
    brace_depth = 0
    start_idx = None
    for i, char in enumerate(response):
        if char == "{":
            if brace_depth == 0:
                start_idx = i
            brace_depth += 1
        elif char == "}" and brace_depth > 0:
            brace_depth -= 1
            if brace_depth == 0 and start_idx is not None:
                try:
                    return json.loads(response[start_idx:i + 1])
                except json.JSONDecodeError:
                    start_idx = None

    raise JSONExtractionError(
        f"Could not extract valid JSON from response. Response preview: {response[:200]}..."
    )


class OllamaRelevanceClassifier:
    """
    Semantic trigger matching through a local Ollama model.

    Transport errors propagate once the client has used up its retries.
    Unusable output raises RelevanceParseError. Ids the model invents are dropped.
    """

    def __init__(self, llm_client: OllamaClient):
        self.llm = llm_client

    def classify(self, text: str, candidates: Sequence[TriggerCandidate]) -> List[str]:
        if not candidates:
            return []

        listing = "\n".join(f"- [{c.id}] {c.description}" for c in candidates)
        prompt = RelevancePrompts.CHECK_TRIGGERS.format(action_text=text, candidates=listing)
        raw = self.llm.generate(
            prompt,
            system=RelevancePrompts.SYSTEM.value,
            json_schema=RelevanceResponse.model_json_schema(),
        )
        response = self._parse_response(raw)

        known = {c.id for c in candidates}
        matched = list(dict.fromkeys(i for i in response.triggered_ids if i in known))
        ignored = [i for i in response.triggered_ids if i not in known]
        if ignored:
            logger.warning("Relevance model returned unknown ids, ignoring: %s", ignored)
        logger.debug("Relevance model matched %s (%s)", matched, response.explanation)
        return matched

    def _parse_response(self, raw: str) -> RelevanceResponse:
        data = extract_json(raw)
        try:
            return RelevanceResponse.model_validate(data)
        except ValidationError as e:
            raise RelevanceParseError(f"Relevance response failed validation: {e}") from e


def select_classifier(llm_client: OllamaClient) -> RelevanceClassifier:
    """The Ollama classifier when its model is reachable, else the substring fallback."""
    if llm_client.health_check():
        return OllamaRelevanceClassifier(llm_client)
    logger.warning("Relevance model unavailable; falling back to substring matching")
    return SubstringClassifier()
