from __future__ import annotations

import json
import re
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx

from duezo.core.config import settings
from duezo.core.errors import ExternalServiceError
from duezo.core.logging import get_logger, log_event, log_exception
from duezo.modules.bills.models import BillCategory, RecurrenceInterval

logger = get_logger(__name__)

MAX_AI_BATCH_SIZE = 10
SCHEMA_VERSION = 1

_ALLOWED_CATEGORIES: set[str] = {c.value for c in BillCategory}
_ALLOWED_INTERVALS: set[str] = {i.value for i in RecurrenceInterval}


def _nullable(schema: dict[str, Any]) -> dict[str, Any]:
    return {"anyOf": [schema, {"type": "null"}]}


_BILL_FIELDS_RESPONSE_FORMAT: dict[str, Any] = {
    "type": "json_schema",
    "json_schema": {
        "name": "bill_fields_extraction",
        "strict": True,
        "schema": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "is_bill": {"type": "boolean"},
                "skip_reason": _nullable({"type": "string", "maxLength": 200}),
                "name": _nullable({"type": "string", "minLength": 1, "maxLength": 200}),
                "amount": _nullable({"type": "number", "minimum": 0}),
                "due_date": _nullable({"type": "string"}),
                "category": _nullable({"type": "string", "enum": sorted(_ALLOWED_CATEGORIES)}),
                "is_recurring": {"type": "boolean"},
                "recurrence_interval": _nullable(
                    {"type": "string", "enum": sorted(_ALLOWED_INTERVALS)}
                ),
                "payment_url": _nullable({"type": "string", "maxLength": 2048}),
                "confidence": {"type": "number", "minimum": 0, "maximum": 1},
            },
            "required": [
                "is_bill",
                "skip_reason",
                "name",
                "amount",
                "due_date",
                "category",
                "is_recurring",
                "recurrence_interval",
                "payment_url",
                "confidence",
            ],
        },
    },
}


@dataclass(frozen=True)
class AIEmailInput:
    id: str
    sender: str
    subject: str
    body: str


@dataclass
class AIBillCandidate:
    source_id: str
    name: str | None = None
    amount: Decimal | None = None
    due_date: date | None = None
    category: str | None = None
    is_recurring: bool = False
    recurrence_interval: str | None = None
    payment_url: str | None = None
    confidence: float = 0.0
    skip: bool = False
    skip_reason: str | None = None


def bill_ai_available() -> bool:
    return bool(settings.bill_ai_enabled and settings.openai_api_key)


def _truncate_text(text: str, *, max_chars: int) -> str:
    t = (text or "").replace("\u202f", " ").replace("\xa0", " ").strip()
    if not t or max_chars <= 0 or len(t) <= max_chars:
        return t
    return t[: max_chars - 20].rstrip() + "\n\n[TRUNCATED]"


def _build_payload(email: AIEmailInput) -> dict[str, Any]:
    body = _truncate_text(email.body, max_chars=int(settings.bill_ai_max_chars or 0) or 4000)
    return {
        "model": settings.openai_model,
        "temperature": 0,
        "response_format": _BILL_FIELDS_RESPONSE_FORMAT,
        "messages": [
            {
                "role": "system",
                "content": (
                    "You read emails and decide whether they announce a bill the recipient "
                    "has to pay.\n"
                    "Only use information explicitly present in the email. Never guess.\n"
                    "Marketing, receipts for payments already made and shipping notices are "
                    "not bills.\n"
                    "Return JSON only."
                ),
            },
            {
                "role": "user",
                "content": (
                    "Extract the bill from this email.\n"
                    "Rules:\n"
                    "- name is the company or service billing the user, not the user.\n"
                    "- amount is the amount due (statement balance or total due), never a "
                    "minimum payment unless it is the only amount.\n"
                    "- due_date MUST be YYYY-MM-DD.\n"
                    "- category MUST be one of: "
                    + ", ".join(sorted(_ALLOWED_CATEGORIES))
                    + ".\n"
                    "- payment_url only when the email contains a direct https payment link.\n"
                    "- If this is not a bill, set is_bill=false and give a short skip_reason.\n\n"
                    f"From: {email.sender}\n"
                    f"Subject: {email.subject}\n\n"
                    + body
                ),
            },
        ],
    }


def _post_chat_completion(payload: dict[str, Any]) -> httpx.Response:
    headers = {
        "Authorization": f"Bearer {settings.openai_api_key}",
        "Content-Type": "application/json",
    }
    url = settings.openai_base_url.rstrip("/") + "/chat/completions"
    timeout = float(settings.bill_ai_timeout_seconds or 20.0)
    try:
        resp = httpx.post(url, headers=headers, json=payload, timeout=timeout)
        resp.raise_for_status()
        return resp
    except httpx.HTTPStatusError as e:
        # Some models/endpoints don't support Structured Outputs; fall back to JSON mode.
        if e.response.status_code not in {400, 422}:
            raise ExternalServiceError(f"AI request failed ({e.response.status_code})") from e
    except httpx.HTTPError as e:
        raise ExternalServiceError("AI request failed") from e

    payload = {**payload, "response_format": {"type": "json_object"}}
    try:
        resp = httpx.post(url, headers=headers, json=payload, timeout=timeout)
        resp.raise_for_status()
    except httpx.HTTPError as e:
        raise ExternalServiceError("AI request failed") from e
    return resp


def _parse_json_object(content: str) -> Any:
    c = (content or "").strip()
    if not c:
        return None
    try:
        return json.loads(c)
    except ValueError:
        pass

    # Fallback: extract the first {...} block.
    m = re.search(r"\{.*\}", c, re.S)
    if not m:
        return None
    try:
        return json.loads(m.group(0))
    except ValueError:
        return None


def request_bill_fields(email: AIEmailInput) -> dict[str, Any] | None:
    """
    Call the model for one email and return its raw JSON object.

    Returns None when AI is disabled or unconfigured. Raises ExternalServiceError on transport
    errors, timeouts, refusals and unparseable responses.
    """
    if not bill_ai_available():
        return None

    resp = _post_chat_completion(_build_payload(email))
    try:
        msg = resp.json()["choices"][0]["message"]
    except (ValueError, KeyError, IndexError, TypeError) as e:
        raise ExternalServiceError("AI response malformed") from e
    if not isinstance(msg, dict) or msg.get("refusal"):
        raise ExternalServiceError("AI refused the request")

    obj = _parse_json_object(str(msg.get("content") or ""))
    if not isinstance(obj, dict):
        raise ExternalServiceError("AI response was not a JSON object")
    return obj


def parse_bill_fields(obj: dict[str, Any], *, source_id: str) -> AIBillCandidate:
    def _confidence(raw: Any) -> float:
        try:
            conf = float(raw)
        except (TypeError, ValueError):
            return 0.0
        return min(1.0, max(0.0, conf))

    out = AIBillCandidate(source_id=source_id, confidence=_confidence(obj.get("confidence")))
    if obj.get("is_bill") is False:
        out.skip = True
        reason = obj.get("skip_reason")
        out.skip_reason = reason.strip()[:200] if isinstance(reason, str) and reason.strip() else None
        return out

    name = obj.get("name")
    if isinstance(name, str) and name.strip():
        out.name = name.strip()[:200]

    amount = obj.get("amount")
    if isinstance(amount, (int, float, str)) and not isinstance(amount, bool):
        try:
            amt = Decimal(str(amount).strip().replace(",", "").lstrip("$"))
            if amt > Decimal("0"):
                out.amount = amt.quantize(Decimal("0.01"))
        except (InvalidOperation, ValueError):
            out.amount = None

    due = obj.get("due_date")
    if isinstance(due, str):
        try:
            out.due_date = date.fromisoformat(due.strip())
        except ValueError:
            out.due_date = None

    category = obj.get("category")
    if isinstance(category, str) and category.strip().lower() in _ALLOWED_CATEGORIES:
        out.category = category.strip().lower()

    out.is_recurring = obj.get("is_recurring") is True
    interval = obj.get("recurrence_interval")
    if out.is_recurring and isinstance(interval, str) and interval.lower() in _ALLOWED_INTERVALS:
        out.recurrence_interval = interval.lower()

    url = obj.get("payment_url")
    if isinstance(url, str) and url.strip():
        out.payment_url = url.strip()[:2048]

    if out.name is None and out.amount is None and out.due_date is None:
        out.skip = True
        out.skip_reason = "no_fields"
    return out


def extract_bill_fields(email: AIEmailInput) -> AIBillCandidate | None:
    obj = request_bill_fields(email)
    if obj is None:
        return None
    return parse_bill_fields(obj, source_id=email.id)


def extract_bills(
    emails: list[AIEmailInput], *, concurrency: int | None = None
) -> list[AIBillCandidate]:
    """
    Run `extract_bill_fields` over `emails` with at most `concurrency` calls in flight.

    Failed items are logged and dropped; emails the model does not consider bills are dropped.
    Results keep the input order.
    """
    if not emails:
        return []
    workers = max(1, int(concurrency or settings.bill_ai_concurrency or 5))
    results: dict[int, AIBillCandidate] = {}
    failed = 0

    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = {executor.submit(extract_bill_fields, e): idx for idx, e in enumerate(emails)}
        for future in as_completed(futures):
            idx = futures[future]
            try:
                candidate = future.result()
            except Exception:
                log_exception(logger, "ai.extract.item_failed", email_id=emails[idx].id)
                failed += 1
                continue
            if candidate is None or candidate.skip:
                continue
            results[idx] = candidate

    log_event(
        logger,
        "ai.extract.batch",
        requested=len(emails),
        returned=len(results),
        failed=failed,
        concurrency=workers,
    )
    return [results[i] for i in sorted(results)]
