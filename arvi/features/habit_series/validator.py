"""
Output validator for the final pipeline pass.

Untrusted model output is parsed first, then checked against the
habit-series contract. Every field-level violation is collected so callers
can report all of them at once.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Annotated, Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, StringConstraints
from pydantic import ValidationError as PydanticValidationError

from arvi.core.errors import MalformedOutputError, OutputValidationError
from arvi.features.habit_series.pipeline import ParsedObject, PassOutput, RawText
from arvi.models.habit_series import (
    MAX_ACTIONS,
    MIN_ACTIONS,
    ActionDraft,
    HabitSeriesDraft,
    normalize_difficulty,
)

NonEmptyStr = Annotated[str, StringConstraints(strict=True, strip_whitespace=True, min_length=1)]

_FENCE_RE = re.compile(r"^\s*```[a-zA-Z0-9_-]*\s*\n?(.*?)\n?\s*```\s*$", re.DOTALL)


class _ActionContract(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: NonEmptyStr
    description: NonEmptyStr
    difficulty: NonEmptyStr


class _SeriesContract(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: NonEmptyStr
    description: NonEmptyStr
    actions: List[_ActionContract]


@dataclass(frozen=True)
class FieldViolation:
    field: str
    reason: str

    def as_dict(self) -> dict:
        return {"field": self.field, "reason": self.reason}


@dataclass(frozen=True)
class ValidationOutcome:
    series: Optional[HabitSeriesDraft] = None
    violations: List[FieldViolation] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.series is not None and not self.violations

    def raise_for_violations(self) -> HabitSeriesDraft:
        if self.ok:
            return self.series
        details = [v.as_dict() for v in self.violations]
        summary = "; ".join(f"{v.field}: {v.reason}" for v in self.violations)
        raise OutputValidationError(f"Generated series failed validation: {summary}", details)


def strip_code_fences(text: str) -> str:
    match = _FENCE_RE.match(text)
    return match.group(1).strip() if match else text.strip()


def parse_output(output: Union[PassOutput, str, dict]) -> Any:
    """Return the structured payload or raise MalformedOutputError."""
    if isinstance(output, ParsedObject):
        return output.data
    if isinstance(output, dict):
        return output
    text = output.text if isinstance(output, RawText) else output
    if not isinstance(text, str):
        raise MalformedOutputError("Generated output is neither text nor an object", [
            {"field": "$", "reason": f"unexpected type {type(text).__name__}"},
        ])
    try:
        return json.loads(strip_code_fences(text))
    except ValueError as exc:
        raise MalformedOutputError(
            "Generated output is not valid JSON",
            [{"field": "$", "reason": str(exc)}],
        ) from exc


def _loc_to_field(loc) -> str:
    parts: List[str] = []
    for item in loc:
        if isinstance(item, int):
            parts.append(f"[{item}]")
        else:
            parts.append(("." if parts else "") + str(item))
    return "".join(parts) or "$"


def validate_structure(payload: Any) -> ValidationOutcome:
    if not isinstance(payload, dict):
        return ValidationOutcome(violations=[FieldViolation("$", "expected a JSON object")])

    violations: List[FieldViolation] = []
    contract: Optional[_SeriesContract] = None
    try:
        contract = _SeriesContract.model_validate(payload)
    except PydanticValidationError as exc:
        for error in exc.errors():
            violations.append(FieldViolation(_loc_to_field(error["loc"]), error["msg"]))

    actions = payload.get("actions")
    if isinstance(actions, list) and not MIN_ACTIONS <= len(actions) <= MAX_ACTIONS:
        violations.append(FieldViolation(
            "actions",
            f"expected between {MIN_ACTIONS} and {MAX_ACTIONS} actions, got {len(actions)}",
        ))

    if violations or contract is None:
        return ValidationOutcome(violations=violations)

    series = HabitSeriesDraft(
        title=contract.title,
        description=contract.description,
        actions=[
            ActionDraft(
                name=action.name,
                description=action.description,
                difficulty=normalize_difficulty(action.difficulty),
            )
            for action in contract.actions
        ],
    )
    return ValidationOutcome(series=series)


def validate_output(output: Union[PassOutput, str, dict]) -> ValidationOutcome:
    """Parse then validate. Malformed output raises; contract violations are returned."""
    return validate_structure(parse_output(output))
