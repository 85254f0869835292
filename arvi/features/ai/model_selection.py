"""
arvi/features/ai/model_selection.py

Maps each pipeline function type to a concrete model configuration.
Pure lookup over a read-only registry; safe to call from any task.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import List, Mapping, Optional

from arvi.core.errors import UnknownFunctionTypeError

HABIT_SERIES_CREATIVE = "habit_series_creative"
HABIT_SERIES_STRUCTURE = "habit_series_structure"
JSON_CONVERSION = "json_conversion"


@dataclass(frozen=True)
class ModelConfig:
    model: str
    temperature: float
    max_output_tokens: int
    strict_json: bool = False
    max_cost: Optional[int] = None
    description: str = ""


MODEL_MAPPING: Mapping[str, ModelConfig] = MappingProxyType({
    # Creative pass: more freedom, plain text out
    HABIT_SERIES_CREATIVE: ModelConfig(
        model="llama-3.3-70b-versatile",
        temperature=0.8,
        max_output_tokens=900,
        description="Create thematic habit series - creative pass",
    ),
    HABIT_SERIES_STRUCTURE: ModelConfig(
        model="gpt-4o-mini",
        temperature=0.2,
        max_output_tokens=800,
        strict_json=True,
        description="Create thematic habit series - structuring pass",
    ),
    # Strict conversion from loosely structured text to the final JSON shape
    JSON_CONVERSION: ModelConfig(
        model="gpt-4o-mini",
        temperature=0.0,
        max_output_tokens=700,
        strict_json=True,
        description="Strict conversion from free text to structured JSON",
    ),
})


def resolve(function_type: str) -> ModelConfig:
    try:
        return MODEL_MAPPING[function_type]
    except KeyError:
        raise UnknownFunctionTypeError(function_type) from None


def is_valid_function_type(function_type: str) -> bool:
    return function_type in MODEL_MAPPING


def available_function_types() -> List[str]:
    return list(MODEL_MAPPING)
