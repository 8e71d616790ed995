"""
Heuristic and AI field merge.

For name, amount and due date the AI value wins when it is present and its confidence is at
least the heuristic confidence for that field; ties go to the AI. Category, recurrence and the
payment link come from the AI when it supplies them.

The overall confidence is the lower of the selected amount and due-date confidences, counting
only the fields that have a value, and 0.0 when neither has one.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any

from duezo.modules.extraction.ai import AIBillCandidate
from duezo.modules.extraction.candidates import CandidateSet, amount_confidence

SOURCE_AI = "ai"
SOURCE_HEURISTIC = "heuristic"
SOURCE_MIXED = "mixed"


@dataclass
class ExtractedFields:
    name: str | None = None
    amount: Decimal | None = None
    due_date: date | None = None
    category: str | None = None
    is_recurring: bool = False
    recurrence_interval: str | None = None
    payment_url: str | None = None
    field_confidences: dict[str, float] = field(default_factory=dict)
    field_sources: dict[str, str] = field(default_factory=dict)

    @property
    def confidence_source(self) -> str:
        sources = set(self.field_sources.values())
        if sources == {SOURCE_AI}:
            return SOURCE_AI
        if len(sources) > 1:
            return SOURCE_MIXED
        return SOURCE_HEURISTIC


def heuristic_fields(candidates: CandidateSet) -> dict[str, tuple[Any, float]]:
    amount = candidates.best_amount
    due = candidates.best_date
    name = candidates.best_name
    return {
        "name": (name.value, name.confidence) if name else (None, 0.0),
        "amount": (amount.value, amount_confidence(amount)) if amount else (None, 0.0),
        "due_date": (due.value, due.confidence) if due else (None, 0.0),
    }


def _pick(
    heuristic: tuple[Any, float], ai_value: Any, ai_confidence: float
) -> tuple[Any, float, str | None]:
    h_value, h_conf = heuristic
    if ai_value is not None and ai_confidence >= h_conf:
        return ai_value, ai_confidence, SOURCE_AI
    if h_value is not None:
        return h_value, h_conf, SOURCE_HEURISTIC
    return None, 0.0, None


def combine(
    heuristic: CandidateSet, ai: AIBillCandidate | None
) -> tuple[ExtractedFields, float]:
    fields = ExtractedFields(category=heuristic.category)
    base = heuristic_fields(heuristic)
    use_ai = ai is not None and not ai.skip

    for key in ("name", "amount", "due_date"):
        ai_value = getattr(ai, key) if use_ai else None
        value, conf, source = _pick(base[key], ai_value, ai.confidence if use_ai else 0.0)
        setattr(fields, key, value)
        if source is not None:
            fields.field_confidences[key] = round(conf, 3)
            fields.field_sources[key] = source

    if use_ai:
        fields.category = ai.category or fields.category
        fields.is_recurring = ai.is_recurring
        fields.recurrence_interval = ai.recurrence_interval if ai.is_recurring else None
        fields.payment_url = ai.payment_url

    selected = [
        fields.field_confidences[k] for k in ("amount", "due_date") if k in fields.field_confidences
    ]
    confidence = round(min(selected), 3) if selected else 0.0
    return fields, confidence
