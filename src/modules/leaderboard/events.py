"""
Score events: the unit of work carried by the stream.

A record's value is a UTF-8 JSON object:

    {"subject_id": "A", "label": "Alice", "score": 120}

``user_id`` / ``user_name`` are accepted in place of ``subject_id`` /
``label`` when the canonical key is absent; the game simulator publishes
those names. Unknown keys are ignored.

Text fields must fit the durable columns: ``subject_id`` at most
SUBJECT_ID_MAX_LENGTH characters, ``label`` at most LABEL_MAX_LENGTH, and
neither may contain NUL (PostgreSQL text cannot store it).

Anything else is a poison record and raises PoisonRecordError.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from src.modules.leaderboard.errors import PoisonRecordError
from src.modules.leaderboard.model import LABEL_MAX_LENGTH, SUBJECT_ID_MAX_LENGTH

# Largest magnitude a Redis sorted-set score (IEEE double) holds exactly
MAX_ABS_SCORE = 2**53

_FIELD_ALIASES: Dict[str, Tuple[str, ...]] = {
    "subject_id": ("subject_id", "user_id"),
    "label": ("label", "user_name"),
    "score": ("score",),
}


@dataclass(frozen=True)
class ScoreEvent:
    subject_id: str
    label: str
    score: int

    def to_payload(self) -> bytes:
        return json.dumps(
            {"subject_id": self.subject_id, "label": self.label, "score": self.score}
        ).encode("utf-8")


def _check_storable(value: str, field: str, max_length: int) -> None:
    if len(value) > max_length:
        raise PoisonRecordError(f"longer than {max_length} characters", field=field)
    if "\x00" in value:
        raise PoisonRecordError("contains a NUL character", field=field)
    try:
        value.encode("utf-8")
    except UnicodeEncodeError as exc:
        # JSON escapes can decode to lone surrogates
        raise PoisonRecordError("is not valid Unicode text", field=field) from exc


def _lookup(payload: Dict[str, Any], field: str) -> Any:
    for key in _FIELD_ALIASES[field]:
        if key in payload:
            return payload[key]
    raise PoisonRecordError("missing required field", field=field)


def parse_score_event(raw: Optional[bytes]) -> ScoreEvent:
    """
    Decode one stream record value into a ScoreEvent.

    Raises
    ------
    PoisonRecordError
        If the payload is empty, not UTF-8 JSON, not an object, or has a
        missing or mistyped field, or a text field that does not fit its
        durable column.
    """
    if not raw:
        raise PoisonRecordError("empty payload")

    try:
        payload = json.loads(raw.decode("utf-8") if isinstance(raw, bytes) else raw)
    except (UnicodeDecodeError, ValueError) as exc:
        raise PoisonRecordError(f"payload is not valid JSON ({exc})") from exc

    if not isinstance(payload, dict):
        raise PoisonRecordError(
            f"payload must be a JSON object, got {type(payload).__name__}"
        )

    subject_id = _lookup(payload, "subject_id")
    if not isinstance(subject_id, str):
        raise PoisonRecordError("must be a string", field="subject_id")
    if not subject_id.strip():
        raise PoisonRecordError("must not be blank", field="subject_id")
    _check_storable(subject_id, "subject_id", SUBJECT_ID_MAX_LENGTH)

    label = _lookup(payload, "label")
    if not isinstance(label, str):
        raise PoisonRecordError("must be a string", field="label")
    _check_storable(label, "label", LABEL_MAX_LENGTH)

    score = _lookup(payload, "score")
    # bool is an int subclass; JSON true/false is not a score
    if isinstance(score, bool) or not isinstance(score, int):
        raise PoisonRecordError("must be an integer", field="score")
    if abs(score) > MAX_ABS_SCORE:
        raise PoisonRecordError(
            f"magnitude exceeds {MAX_ABS_SCORE}", field="score"
        )

    return ScoreEvent(subject_id=subject_id, label=label, score=score)
