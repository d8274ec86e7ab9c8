from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from certify.models.certificate import Certificate

IssueStatus = Literal["issued", "already_certified", "not_eligible"]
AutoIssueStatus = Literal[
    "suppressed", "not_eligible", "issued", "already_certified", "unavailable"
]

UNAVAILABLE_MESSAGE = "certificate system temporarily unavailable, try again"


@dataclass(frozen=True, slots=True)
class EligibilityResult:
    is_eligible: bool
    completion_percentage: int
    completed_lessons: int = 0
    total_lessons: int = 0
    total_quizzes: int = 0
    completed_quizzes: int = 0
    average_quiz_score: int = 0
    missing_requirements: tuple[str, ...] = ()
    existing_certificate: Certificate | None = None
    has_exception: bool = False


@dataclass(frozen=True, slots=True)
class IssueResult:
    """Outcome of one issuance request.

    "already_certified" is a success path: ``certificate`` holds the
    certificate that was committed first.
    """

    status: IssueStatus
    certificate: Certificate | None = None
    missing_requirements: tuple[str, ...] = ()

    @property
    def created(self) -> bool:
        return self.status == "issued"

    @property
    def held_certificate(self) -> Certificate:
        """The issued or previously held certificate.

        Raises ValueError on a "not_eligible" result, which carries none.
        """
        if self.certificate is None:
            raise ValueError(f"{self.status} result carries no certificate")
        return self.certificate

    @staticmethod
    def issued(certificate: Certificate) -> IssueResult:
        return IssueResult(status="issued", certificate=certificate)

    @staticmethod
    def already(certificate: Certificate) -> IssueResult:
        return IssueResult(status="already_certified", certificate=certificate)

    @staticmethod
    def not_eligible(missing: tuple[str, ...]) -> IssueResult:
        return IssueResult(status="not_eligible", missing_requirements=missing)


@dataclass(frozen=True, slots=True)
class AutoIssueOutcome:
    status: AutoIssueStatus
    certificate: Certificate | None = None
    completion_percentage: int | None = None
    message: str | None = None
