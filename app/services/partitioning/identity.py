"""Resolve a partitioned student group to a roster entry.

Precedence, first match wins:
  1. exact student_identifier within the organisation        -> 1.0
  2. same class + equal roll number + overlapping name tokens -> 0.85
  3. nothing                                                  -> propose creating a student

Students that already hold an Approved submission for the assessment are
never matched.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Optional, Set

from app.services.partitioning.partitioner import StudentIdentity
from app.services.roster_service import RosterStore
from app.utils.enums import IdentityAction

logger = logging.getLogger(__name__)

IDENTIFIER_MATCH_CONFIDENCE = 1.0
ROLL_AND_NAME_MATCH_CONFIDENCE = 0.85
AUTO_SELECT_THRESHOLD = 0.9


def name_similarity(first: Optional[str], second: Optional[str]) -> float:
    """Token-overlap similarity in [0, 1].

    Identical names score 1.0, one name containing the other 0.9, otherwise
    the share of words that overlap (either way round) over the longer name.
    """
    if not first or not second:
        return 0.0
    a = first.strip().lower()
    b = second.strip().lower()
    if a == b:
        return 1.0
    if a in b or b in a:
        return 0.9
    words_a = a.split()
    words_b = b.split()
    if not words_a or not words_b:
        return 0.0
    matches = sum(1 for w in words_a if any(w in other or other in w for other in words_b))
    return matches / max(len(words_a), len(words_b))


@dataclass
class IdentityMatch:
    action: IdentityAction
    confidence: float
    method: str
    student_id: Optional[uuid.UUID] = None
    student_name: Optional[str] = None
    reason: Optional[str] = None

    def as_dict(self) -> dict:
        return {
            "action": self.action.value,
            "confidence": self.confidence,
            "method": self.method,
            "student_id": str(self.student_id) if self.student_id else None,
            "student_name": self.student_name,
            "reason": self.reason,
        }


def _suggested_action(confidence: float) -> IdentityAction:
    return IdentityAction.select if confidence >= AUTO_SELECT_THRESHOLD else IdentityAction.review


class IdentityResolver:
    def __init__(self, roster: RosterStore, name_threshold: float = 0.5):
        self.roster = roster
        self.name_threshold = name_threshold

    async def resolve(self, identity: StudentIdentity, assessment_id: uuid.UUID) -> IdentityMatch:
        excluded: Set[uuid.UUID] = await self.roster.approved_student_ids(assessment_id)
        identifier_taken = False

        if identity.student_identifier:
            student = await self.roster.find_by_identifier(identity.student_identifier)
            if student is not None:
                if student.id not in excluded:
                    return IdentityMatch(
                        action=_suggested_action(IDENTIFIER_MATCH_CONFIDENCE),
                        confidence=IDENTIFIER_MATCH_CONFIDENCE,
                        method="identifier",
                        student_id=student.id,
                        student_name=student.student_name,
                    )
                identifier_taken = True
                logger.info(
                    f"Student {student.id} matches identifier {identity.student_identifier} "
                    f"but already has an approved submission for {assessment_id}"
                )

        if identity.class_name and identity.roll_number and identity.student_name:
            candidates = await self.roster.find_by_class_and_roll(
                identity.class_name, identity.roll_number, exclude_ids=excluded
            )
            best, best_score = None, 0.0
            for candidate in candidates:
                score = name_similarity(identity.student_name, candidate.student_name)
                if score > best_score:
                    best, best_score = candidate, score
            if best is not None and best_score >= self.name_threshold:
                return IdentityMatch(
                    action=_suggested_action(ROLL_AND_NAME_MATCH_CONFIDENCE),
                    confidence=ROLL_AND_NAME_MATCH_CONFIDENCE,
                    method="roll_and_name",
                    student_id=best.id,
                    student_name=best.student_name,
                )

        if identifier_taken:
            return IdentityMatch(
                action=IdentityAction.review,
                confidence=0.0,
                method="none",
                reason="identifier belongs to a student already approved for this assessment",
            )
        return IdentityMatch(action=IdentityAction.create, confidence=0.0, method="none")
