from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

EntityKind = Literal["course", "event"]

ENTITY_KINDS: tuple[EntityKind, ...] = ("course", "event")


@dataclass(frozen=True, slots=True)
class EligibilityPolicy:
    """Per-kind certificate rules.

    Courses require every lesson; events accept partial attendance.  Both
    share one evaluator and one issuer, only these values differ.
    """

    kind: EntityKind
    threshold: int  # completion percentage required for eligibility
    unit_noun: str  # "lesson" / "section" in missing-requirement messages
    certificate_title: str
    default_description: str


POLICIES: dict[EntityKind, EligibilityPolicy] = {
    "course": EligibilityPolicy(
        kind="course",
        threshold=100,
        unit_noun="lesson",
        certificate_title="Course Certificate of Achievement",
        default_description=(
            "Has completed every lesson of this course and passed its "
            "assessments, earning this certificate."
        ),
    ),
    "event": EligibilityPolicy(
        kind="event",
        threshold=70,
        unit_noun="section",
        certificate_title="Event Certificate of Participation",
        default_description=(
            "Has taken part in this event and learned about the innovative "
            "approaches presented, earning this certificate."
        ),
    ),
}


def policy_for(kind: EntityKind) -> EligibilityPolicy:
    try:
        return POLICIES[kind]
    except KeyError:
        raise ValueError(f"unknown entity kind {kind!r}") from None
