"""Decoders for the compact positional formats providers emit.

Every decoder maps one wire item (a fixed-arity list, or the legacy object
form) onto a canonical candidate with explicit defaults. Raw tuples never
leave this module.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable, Dict, List, Optional

from app.services.providers.base import (
    AnswerCandidate,
    BoundingBox,
    HeaderCandidate,
    QuestionCandidate,
    TopicWeight,
)

logger = logging.getLogger(__name__)

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)


class PayloadDecodeError(ValueError):
    """Model output could not be turned into JSON of the expected shape."""


def strip_code_fences(text: str) -> str:
    match = _FENCED_BLOCK.search(text)
    if match:
        return match.group(1).strip()
    return text.strip()


def load_json_payload(text: Optional[str], *, expect: type = list) -> Any:
    """Parse the first JSON array (or object) found in a model response."""
    if text is None or not text.strip():
        raise PayloadDecodeError("empty response")
    cleaned = strip_code_fences(text)
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError:
        opener, closer = ("[", "]") if expect is list else ("{", "}")
        start, end = cleaned.find(opener), cleaned.rfind(closer)
        if start == -1 or end <= start:
            raise PayloadDecodeError(f"no JSON {expect.__name__} in response")
        try:
            payload = json.loads(cleaned[start:end + 1])
        except json.JSONDecodeError as exc:
            raise PayloadDecodeError(f"invalid JSON: {exc.msg}") from exc
    if expect is list and isinstance(payload, dict):
        # Some models wrap the array: {"questions": [...]} / {"results": [...]}
        for value in payload.values():
            if isinstance(value, list):
                return value
    if not isinstance(payload, expect):
        raise PayloadDecodeError(f"expected JSON {expect.__name__}, got {type(payload).__name__}")
    return payload


# Coercion helpers

def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _number(value: Any, default: float) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _int(value: Any, default: Optional[int]) -> Optional[int]:
    if value is None or value == "":
        return default
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return default


def _topics(raw: Any) -> List[TopicWeight]:
    if not isinstance(raw, list):
        return []
    topics: List[TopicWeight] = []
    for item in raw:
        if isinstance(item, (list, tuple)) and item:
            name = _text(item[0])
            weight = _number(item[1] if len(item) > 1 else None, 0.0)
        elif isinstance(item, dict):
            name = _text(item.get("topic") or item.get("name"))
            weight = _number(item.get("weight"), 0.0)
        else:
            name, weight = _text(item), 0.0
        if name:
            topics.append(TopicWeight(topic=name, weight=weight))
    return topics


def _bbox(raw: Any) -> Optional[BoundingBox]:
    if not isinstance(raw, dict):
        return None
    try:
        return BoundingBox(*(float(raw[key]) for key in ("x1", "y1", "x2", "y2")))
    except (KeyError, TypeError, ValueError):
        return None


# Question decoders

def decode_question_v1(item: Any, *, page_number: int) -> Optional[QuestionCandidate]:
    """Per-page format: ``[identifier, text, marks, [[topic, weight], ...]]``."""
    if isinstance(item, dict):
        return _decode_question_object(item, page_number=page_number)
    if not isinstance(item, (list, tuple)) or len(item) < 2:
        return None
    identifier, text, marks, topics = (list(item) + [None, None])[:4]
    question_text = _text(text)
    if not question_text:
        return None
    return QuestionCandidate(
        question_identifier=_text(identifier),
        question_text=question_text,
        max_marks=_number(marks, 1.0) or 1.0,
        page_number=page_number,
        topics=_topics(topics),
    )


def decode_question_v2(item: Any, *, page_number: int) -> Optional[QuestionCandidate]:
    """Batched format: ``[identifier, text, marks, page, [[topic, weight], ...]]``."""
    if isinstance(item, dict):
        return _decode_question_object(item, page_number=page_number)
    if not isinstance(item, (list, tuple)) or len(item) < 2:
        return None
    identifier, text, marks, page, topics = (list(item) + [None] * 3)[:5]
    question_text = _text(text)
    if not question_text:
        return None
    return QuestionCandidate(
        question_identifier=_text(identifier),
        question_text=question_text,
        max_marks=_number(marks, 1.0) or 1.0,
        page_number=_int(page, page_number) or page_number,
        topics=_topics(topics),
    )


def _decode_question_object(item: Dict[str, Any], *, page_number: int) -> Optional[QuestionCandidate]:
    question_text = _text(item.get("question_text") or item.get("text"))
    if not question_text:
        return None
    return QuestionCandidate(
        question_identifier=_text(item.get("question_identifier") or item.get("questionId")),
        question_text=question_text,
        max_marks=_number(item.get("max_marks", item.get("marks")), 1.0) or 1.0,
        page_number=_int(item.get("page_number", item.get("page")), page_number) or page_number,
        topics=_topics(item.get("topics")),
        bbox=_bbox(item.get("bbox")),
    )


QUESTION_DECODERS: Dict[str, Callable[..., Optional[QuestionCandidate]]] = {
    "v1": decode_question_v1,
    "v2": decode_question_v2,
}


# Answer decoder

def decode_answer_v1(item: Any) -> Optional[AnswerCandidate]:
    """``[question_number, marks_obtained, explanation, page_number]``."""
    if isinstance(item, dict):
        number = _int(item.get("question_number"), None)
        marks = item.get("marks_obtained")
        explanation = item.get("explanation")
        page = item.get("page_number")
    elif isinstance(item, (list, tuple)) and len(item) >= 2:
        number, marks, explanation, page = (list(item) + [None, None])[:4]
        number = _int(number, None)
    else:
        return None
    if number is None:
        return None
    return AnswerCandidate(
        question_number=number,
        marks_obtained=max(_number(marks, 0.0), 0.0),
        explanation=_text(explanation) or "",
        page_number=_int(page, 1) or 1,
    )


# Header decoder

def decode_header_v1(item: Any, *, page_number: int) -> HeaderCandidate:
    """``[page, name, identifier, roll_number, class]`` with an optional trailing confidence.

    Anything unreadable decodes to an empty header, i.e. a continuation page.
    """
    if isinstance(item, (list, tuple)) and item and isinstance(item[0], (list, tuple, dict)):
        item = item[0]
    if isinstance(item, dict):
        name = item.get("student_name")
        identifier = item.get("student_identifier")
        roll = item.get("roll_number")
        klass = item.get("class")
        confidence = item.get("confidence")
    elif isinstance(item, (list, tuple)) and len(item) >= 2:
        _, name, identifier, roll, klass, confidence = (list(item) + [None] * 4)[:6]
    else:
        return HeaderCandidate(page_number=page_number)

    header = HeaderCandidate(
        page_number=page_number,
        student_name=_normalise_name(name),
        student_identifier=_text(identifier),
        roll_number=_text(roll),
        class_name=_text(klass),
    )
    if header.has_header:
        header.confidence = min(max(_number(confidence, 1.0), 0.0), 1.0)
    return header


_PLACEHOLDER_NAMES = {"unknown", "unknown student", "n/a", "none", "null"}


def _normalise_name(value: Any) -> Optional[str]:
    name = _text(value)
    if name and name.lower() in _PLACEHOLDER_NAMES:
        return None
    return name
