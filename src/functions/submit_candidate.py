"""
Submission pipeline: validate, verify, publish, archive.

Independent of the HTTP trigger so it can run against fakes.
"""
from __future__ import annotations

from typing import Any, Callable, List, Mapping, Protocol

from pydantic import ValidationError

from src.content.publisher import Publisher, PublishTarget
from src.content.validator import HumanVerifier, ensure_valid, missing_required_fields, verify_human
from src.shared.config import AppConfig
from src.shared.logging_utils import error as log_error, info as log_info
from src.specs.common.datetime_utils import utc_now_iso
from src.specs.common.errors import ArchiveError, SubmissionValidationError
from src.specs.common.ids import new_correlation_id
from src.specs.documents.contact_record_spec import ContactRecord
from src.specs.github.git_api_spec import GitHostingClient
from src.specs.http.submit_candidate import CandidateSubmission, SubmissionResponse

SUCCESS_MESSAGE = "Candidate submission received! A pull request has been created for review."


class ContactStore(Protocol):
    def store(self, record: ContactRecord) -> str:
        ...


def parse_submission(payload: Any) -> CandidateSubmission:
    """Parse the posted JSON, reporting missing fields ahead of malformed ones."""
    try:
        return CandidateSubmission.model_validate(payload)
    except ValidationError as exc:
        missing = missing_required_fields(payload) if isinstance(payload, Mapping) else []
        raise SubmissionValidationError(missing + _readable_errors(exc)) from exc


def _readable_errors(exc: ValidationError) -> List[str]:
    messages = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ()))
        messages.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return messages


class SubmissionPipeline:
    def __init__(
        self,
        config: AppConfig,
        *,
        verifier: HumanVerifier,
        archive_factory: Callable[[], ContactStore],
        client_factory: Callable[[], GitHostingClient],
        id_factory: Callable[[], str] = new_correlation_id,
        clock: Callable[[], str] = utc_now_iso,
    ):
        self._config = config
        self._verifier = verifier
        self._archive_factory = archive_factory
        self._client_factory = client_factory
        self._id_factory = id_factory
        self._clock = clock

    @property
    def target(self) -> PublishTarget:
        return PublishTarget(
            owner=self._config.repo_owner,
            main_repo=self._config.repo_name,
            fork_repo=self._config.form_repo_name,
            content_root=self._config.content_root,
        )

    def submit(self, payload: Any) -> SubmissionResponse:
        """
        Run one submission end to end.

        Raises:
            SubmissionValidationError: Missing fields or malformed payload; nothing was called
            VerificationError: Turnstile rejected the token; nothing was called
            ConfigurationError: Contact storage or GitHub credentials are not configured
            CandidateFormError: Any later failure
        """
        submission = parse_submission(payload)
        ensure_valid(submission)
        verify_human(submission.turnstileToken, self._verifier)
        archive = self._archive_factory()

        correlation_id = self._id_factory()
        log_info(correlation_id, "submit:accepted", candidate=submission.candidate)

        pr_url = self._publish(submission, correlation_id)

        record = ContactRecord(
            correlationId=correlation_id,
            submittedAt=self._clock(),
            contactEmail=submission.contactEmail,
            contactPhone=submission.contactPhone,
            contactNotes=submission.contactNotes,
            submitterName=submission.submitterName,
            submitterRelationship=submission.submitterRelationship,
            candidateName=submission.candidate,
            pullRequestUrl=pr_url,
        )
        try:
            archive.store(record)
        except ArchiveError:
            # The pull request already exists; keep its URL findable from the logs
            log_error(correlation_id, "submit:archive_failed", pullRequestUrl=pr_url)
            raise

        return SubmissionResponse(
            success=True,
            correlationId=correlation_id,
            pullRequestUrl=pr_url,
            message=SUCCESS_MESSAGE,
        )

    def _publish(self, submission: CandidateSubmission, correlation_id: str) -> str:
        if self._config.is_local_dev and not self._config.has_github_credentials:
            log_info(correlation_id, "submit:publish_skipped_local_dev")
            return ""
        try:
            client = self._client_factory()
            return Publisher(client, self.target).publish(submission, correlation_id)
        except Exception as exc:
            log_error(correlation_id, "submit:publish_failed", error=str(exc), errorType=type(exc).__name__)
            raise
