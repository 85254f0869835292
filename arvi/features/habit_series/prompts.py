"""
Prompt builders for the three habit-series passes.

Each builder returns chat messages ready for an AIGateway. Only the creative
pass sees user input; later passes only see the previous pass's output.
"""

import json
from typing import Any, Dict, List, Optional

from arvi.features.ai.gateway import Message
from arvi.models.habit_series import MAX_ACTIONS, MIN_ACTIONS, Difficulty

LANGUAGES = {
    "en": {"name": "English", "answers_label": "Test answers", "address": "you"},
    "es": {"name": "Spanish (Español)", "answers_label": "Respuestas del test", "address": "tú"},
}

HABIT_SERIES_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["title", "description", "actions"],
    "properties": {
        "title": {"type": "string"},
        "description": {"type": "string"},
        "actions": {
            "type": "array",
            "minItems": MIN_ACTIONS,
            "maxItems": MAX_ACTIONS,
            "items": {
                "type": "object",
                "required": ["name", "description", "difficulty"],
                "properties": {
                    "name": {"type": "string"},
                    "description": {"type": "string"},
                    "difficulty": {"type": "string", "enum": [d.value for d in Difficulty]},
                },
            },
        },
    },
}

_DIFFICULTIES = ", ".join(f'"{d.value}"' for d in Difficulty)


def _language(language: str) -> Dict[str, str]:
    return LANGUAGES.get(language, LANGUAGES["en"])


def creative_messages(language: str, test_data: Dict[str, Any], assistant_context: Optional[str] = None) -> List[Message]:
    lang = _language(language)
    context = ""
    if assistant_context:
        context = (
            "\nBackground context (reference only, do not reply to it):\n"
            f"{assistant_context}\n"
        )

    system = f"""Write everything in {lang['name']} and only in {lang['name']}.

You are Arvi, a personal evolution assistant: a strategic mentor and a disciplined guide.
You are not a therapist and you never diagnose. Speak directly to the user ("{lang['address']}"),
calm, precise and demanding without exaggeration.

Design ONE thematic habit series grounded in the user's test answers.
{context}
Format:
- One title.
- One description of 150 to 190 words, in short paragraphs, explaining the logic and progression.
- Between {MIN_ACTIONS} and {MAX_ACTIONS} actions, ordered from easier to harder.
- Each action has a short name, a 60 to 100 word description (purpose, execution, benefit)
  and a difficulty: {_DIFFICULTIES}.

Output clean plain text. No JSON, no markdown, no introduction or closing remarks."""

    answers = "; ".join(f"{key}: {value}" for key, value in test_data.items())
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": f"{lang['answers_label']}: {answers}"},
    ]


def structure_messages(language: str, raw_text: str) -> List[Message]:
    lang = _language(language)
    system = f"""The input text is in {lang['name']}. Keep every extracted value in {lang['name']}; never translate.

Return ONE JSON object and nothing else.

Extract the series from the text into exactly this shape:
{{"title": "", "description": "", "actions": [{{"name": "", "description": "", "difficulty": ""}}]}}

Only correct what is needed so that:
- there are between {MIN_ACTIONS} and {MAX_ACTIONS} actions;
- every action has a name, a description and a difficulty among {_DIFFICULTIES}.
Do not invent actions, add concepts or rewrite for style."""
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": raw_text.strip()},
    ]


def schema_messages(content: str) -> List[Message]:
    system = (
        "Return ONLY a valid JSON object matching the provided schema. "
        "No markdown code blocks, no explanations, no surrounding text."
    )
    user = (
        f"Content to structure:\n{content}\n\n"
        f"Required schema:\n{json.dumps(HABIT_SERIES_SCHEMA, indent=2)}\n\n"
        "Return ONLY the JSON object."
    )
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": user},
    ]
