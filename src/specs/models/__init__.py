from __future__ import annotations

from typing import Dict, Type

from pydantic import BaseModel

from src.specs.documents.contact_record_spec import ContactRecord
from src.specs.http.submit_candidate import (
    CandidateSubmission,
    ImageAsset,
    SubmissionResponse,
    TurnstileVerifyResponse,
)


# Registry mapping output schema filenames to models for generation
SCHEMA_MODELS: Dict[str, Type[BaseModel]] = {
    "submit_candidate.request.schema.json": CandidateSubmission,
    "submit_candidate.response.schema.json": SubmissionResponse,
    "image.asset.schema.json": ImageAsset,
    "contact.record.schema.json": ContactRecord,
    "turnstile.verify.response.schema.json": TurnstileVerifyResponse,
}

__all__ = [
    "CandidateSubmission",
    "ImageAsset",
    "SubmissionResponse",
    "ContactRecord",
    "TurnstileVerifyResponse",
    "SCHEMA_MODELS",
]
