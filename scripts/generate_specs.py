#!/usr/bin/env python3
"""
Export the submission wire models as JSON Schema and OpenAPI documents.

Writes src/specs/schemas/<name>.json plus a .yaml twin for every entry in
SCHEMA_MODELS, and src/specs/openapi.{json,yaml} for the submitCandidate route.
"""
from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any, Dict, Type

import yaml
from pydantic import BaseModel

ROOT = Path(__file__).resolve().parents[1]
SPECS_DIR = ROOT / "src" / "specs"
SCHEMAS_DIR = SPECS_DIR / "schemas"
COMPONENT_REF = "#/components/schemas/{model}"

sys.path.insert(0, str(ROOT))

from src.specs.models import SCHEMA_MODELS, CandidateSubmission, SubmissionResponse  # noqa: E402

ROUTE_RESPONSES = {
    "200": "Pull request opened and contact details stored",
    "400": "Malformed body or missing required fields",
    "401": "Turnstile token rejected",
    "500": "Internal failure; no detail is returned",
}


def dump_both(document: Dict[str, Any], json_path: Path) -> None:
    json_path.parent.mkdir(parents=True, exist_ok=True)
    json_path.write_text(json.dumps(document, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
    json_path.with_suffix(".yaml").write_text(yaml.safe_dump(document, sort_keys=False), encoding="utf-8")


def component_schemas(*models: Type[BaseModel]) -> Dict[str, Any]:
    """Render models for OpenAPI, hoisting nested definitions to top-level components."""
    components: Dict[str, Any] = {}
    for model in models:
        schema = model.model_json_schema(ref_template=COMPONENT_REF)
        components.update(schema.pop("$defs", {}))
        components[model.__name__] = schema
    return components


def _submission_reply(description: str) -> Dict[str, Any]:
    ref = COMPONENT_REF.format(model=SubmissionResponse.__name__)
    return {"description": description, "content": {"application/json": {"schema": {"$ref": ref}}}}


def build_openapi() -> Dict[str, Any]:
    request_ref = COMPONENT_REF.format(model=CandidateSubmission.__name__)
    return {
        "openapi": "3.0.3",
        "info": {
            "title": "Candidate Submission API",
            "version": "0.1.0",
            "description": "Publishes candidate profiles as pull requests and archives contact details privately.",
        },
        "servers": [{"url": "http://localhost:7071/api", "description": "Local Functions host"}],
        "paths": {
            "/submitCandidate": {
                "options": {
                    "summary": "CORS preflight",
                    "operationId": "submitCandidatePreflight",
                    "responses": {"204": {"description": "CORS headers only"}},
                },
                "post": {
                    "summary": "Submit a candidate profile for review",
                    "operationId": "submitCandidate",
                    "requestBody": {
                        "required": True,
                        "content": {"application/json": {"schema": {"$ref": request_ref}}},
                    },
                    "responses": {code: _submission_reply(text) for code, text in ROUTE_RESPONSES.items()},
                },
            }
        },
        "components": {"schemas": component_schemas(CandidateSubmission, SubmissionResponse)},
    }


def main() -> None:
    for filename, model in SCHEMA_MODELS.items():
        dump_both(model.model_json_schema(), SCHEMAS_DIR / filename)
    dump_both(build_openapi(), SPECS_DIR / "openapi.json")
    print(f"Wrote {len(SCHEMA_MODELS)} schemas and openapi.json under {SPECS_DIR.relative_to(ROOT)}/")


if __name__ == "__main__":
    main()
