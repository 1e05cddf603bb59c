"""Shared test fixtures.

Provides in-memory stand-ins for the GitHub client, the contact archive and
the Turnstile verifier so the pipeline runs without any network access.
"""

from __future__ import annotations

import base64
import threading
from typing import Any, Dict, List, Optional, Tuple

import pytest

from src.shared.config import AppConfig
from src.specs.common.errors import HostingApiError
from src.specs.documents.contact_record_spec import ContactRecord
from src.specs.github.git_api_spec import (
    GitObject,
    GitRef,
    PullRequestInfo,
    RepositoryInfo,
    TreeEntry,
)

SVG_MARKUP = '<svg xmlns="http://www.w3.org/2000/svg" width="10" height="10"><rect width="10" height="10"/></svg>'
PNG_BASE64 = base64.b64encode(b"\x89PNG\r\n\x1a\nfake-png-bytes").decode("ascii")


class FakeGitHost:
    """Records every hosting call in order; optionally fails one operation."""

    def __init__(self, fail_on: Optional[str] = None, pr_number: int = 42):
        self.calls: List[Tuple[str, Dict[str, Any]]] = []
        self.fail_on = fail_on
        self.pr_number = pr_number
        self.trees: List[List[TreeEntry]] = []
        self._blob_count = 0
        self._lock = threading.Lock()

    def _record(self, op: str, **kwargs: Any) -> None:
        with self._lock:
            self.calls.append((op, kwargs))
        if self.fail_on == op:
            raise HostingApiError(op, "HTTP 422: Unprocessable Entity", status_code=422)

    @property
    def operations(self) -> List[str]:
        return [op for op, _ in self.calls]

    def get_repository(self, repo: str) -> RepositoryInfo:
        self._record("get_repository", repo=repo)
        branch = "main" if repo == "site" else "master"
        return RepositoryInfo(full_name=f"acme/{repo}", default_branch=branch)

    def get_ref(self, repo: str, ref: str) -> GitRef:
        self._record("get_ref", repo=repo, ref=ref)
        return GitRef(ref=f"refs/{ref}", sha="head-sha")

    def create_ref(self, repo: str, ref: str, sha: str) -> GitRef:
        self._record("create_ref", repo=repo, ref=ref, sha=sha)
        return GitRef(ref=ref, sha=sha)

    def create_blob(self, repo: str, content: str, encoding: str) -> GitObject:
        self._record("create_blob", repo=repo, content=content, encoding=encoding)
        with self._lock:
            self._blob_count += 1
            n = self._blob_count
        return GitObject(sha=f"blob-{n}")

    def get_tree(self, repo: str, tree_sha: str) -> GitObject:
        self._record("get_tree", repo=repo, tree_sha=tree_sha)
        return GitObject(sha="base-tree-sha")

    def create_tree(self, repo: str, base_tree: str, entries: List[TreeEntry]) -> GitObject:
        self._record("create_tree", repo=repo, base_tree=base_tree, entries=entries)
        self.trees.append(list(entries))
        return GitObject(sha="new-tree-sha")

    def create_commit(self, repo: str, message: str, tree: str, parents: List[str]) -> GitObject:
        self._record("create_commit", repo=repo, message=message, tree=tree, parents=parents)
        return GitObject(sha="commit-sha")

    def update_ref(self, repo: str, ref: str, sha: str, force: bool = False) -> GitRef:
        self._record("update_ref", repo=repo, ref=ref, sha=sha, force=force)
        return GitRef(ref=f"refs/{ref}", sha=sha)

    def create_pull_request(self, repo: str, **kwargs: Any) -> PullRequestInfo:
        self._record("create_pull_request", repo=repo, **kwargs)
        return PullRequestInfo(
            number=self.pr_number,
            html_url=f"https://github.com/acme/{repo}/pull/{self.pr_number}",
        )

    def kwargs_for(self, op: str) -> Dict[str, Any]:
        return next(kwargs for name, kwargs in self.calls if name == op)


class FakeArchive:
    def __init__(self, error: Optional[Exception] = None):
        self.records: Dict[str, ContactRecord] = {}
        self.error = error

    def store(self, record: ContactRecord) -> str:
        if self.error is not None:
            raise self.error
        self.records[record.correlationId] = record
        return record.blob_name


class FakeVerifier:
    def __init__(self, accept: bool = True):
        self.accept = accept
        self.tokens: List[str] = []

    def verify(self, token: str) -> bool:
        self.tokens.append(token)
        return self.accept


@pytest.fixture()
def app_config() -> AppConfig:
    return AppConfig(
        repo_owner="acme",
        repo_name="site",
        form_repo_name="site-formsubmissions",
        github_app_id="12345",
        github_installation_id="67890",
        allowed_origins=("https://www.democracycandidate.us", "http://localhost:1313"),
    )


@pytest.fixture()
def fake_host() -> FakeGitHost:
    return FakeGitHost()


@pytest.fixture()
def fake_archive() -> FakeArchive:
    return FakeArchive()


@pytest.fixture()
def fake_verifier() -> FakeVerifier:
    return FakeVerifier()


@pytest.fixture()
def submission_payload() -> Dict[str, Any]:
    """A complete form payload with one inline SVG and no avatar/banner."""
    return {
        "title": "School Board Member",
        "candidate": "Jane Q. Public",
        "party": "Nonpartisan",
        "electionDate": "2025-04-01",
        "categories": ["School Board", "Illinois"],
        "tags": ["Lake Park", "High School"],
        "about": 'Parent, teacher and "coach".',
        "content": "## Policy\n\n![Logo](images/Campaign Logo.svg)\n\nVote early.",
        "additionalImages": [
            {
                "path": "images/Campaign Logo.svg",
                "content": base64.b64encode(SVG_MARKUP.encode("utf-8")).decode("ascii"),
            }
        ],
        "contactEmail": "jane@example.com",
        "contactPhone": "555-0100",
        "submitterName": "Sam Helper",
        "submitterRelationship": "Campaign manager",
        "turnstileToken": "token-abc",
    }


@pytest.fixture(scope="session")
def rsa_private_pem() -> str:
    """A throwaway PKCS#1 RSA key in the format GitHub issues for apps."""
    from cryptography.hazmat.primitives import serialization
    from cryptography.hazmat.primitives.asymmetric import rsa

    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("ascii")
