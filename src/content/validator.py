from __future__ import annotations

from typing import Any, List, Mapping, Protocol, Tuple

from src.specs.common.errors import SubmissionValidationError, VerificationError
from src.specs.http.submit_candidate import CandidateSubmission

# (field, message) in the order the form declares them
REQUIRED_FIELDS: Tuple[Tuple[str, str], ...] = (
    ("candidate", "Candidate name is required"),
    ("title", "Position title is required"),
    ("contactEmail", "Contact email is required"),
    ("turnstileToken", "Turnstile token is required"),
    ("content", "Content is required"),
)
ELECTION_DATE_MESSAGE = "Election date is required"


class HumanVerifier(Protocol):
    def verify(self, token: str) -> bool:
        ...


def missing_required_fields(values: Mapping[str, Any]) -> List[str]:
    """Messages for every required field that is absent or blank, in form order.

    Works on raw payloads too, so a payload that fails to parse still reports
    its missing fields.
    """
    errors: List[str] = []
    for field, message in REQUIRED_FIELDS:
        value = values.get(field)
        if value is None or not str(value).strip():
            errors.append(message)
    return errors


def validate_submission(submission: CandidateSubmission) -> List[str]:
    """Return every missing-field message; an empty list means valid."""
    errors = missing_required_fields(submission.model_dump())
    if submission.electionDate is None:
        errors.append(ELECTION_DATE_MESSAGE)
    return errors


def ensure_valid(submission: CandidateSubmission) -> None:
    errors = validate_submission(submission)
    if errors:
        raise SubmissionValidationError(errors)


def verify_human(token: str, verifier: HumanVerifier) -> None:
    if not verifier.verify(token):
        raise VerificationError()
