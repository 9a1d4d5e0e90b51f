from enum import Enum

class RelevancePrompts(str, Enum):
    SYSTEM = """You match player actions in a tabletop role-playing game against
trigger conditions the Dungeon Master has registered. You answer with JSON only."""
    CHECK_TRIGGERS = """You are checking if any pending triggers should fire based on a player's action.

## Player Action
"{action_text}"

## Pending Triggers
{candidates}

## Instructions
A trigger should fire if the player's action matches or is closely related to its condition.
Be generous with semantic matching: "I enter the village" should fire a trigger about
"entering Riverside" if Riverside is a village. Only use ids from the list above.

Respond with ONLY a JSON object (no markdown, no explanation outside the JSON):
{{
  "triggered_ids": ["id1", "id2"],
  "explanation": "Brief explanation of matches"
}}

If nothing fires, return an empty array."""
