"""
Turns one validated submission into one pull request.

The hosting calls run strictly in order; only the blob uploads for binary
files fan out. Nothing is retried and nothing is rolled back: when a step
after branch creation fails the branch stays behind in the fork repository.
"""
from __future__ import annotations

import base64
import binascii
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Literal, Optional

from src.content.normalizer import (
    build_frontmatter,
    normalize_filename,
    rewrite_image_references,
    slugify,
)
from src.shared.logging_utils import error as log_error, info as log_info
from src.specs.common.errors import HostingApiError, PublicationError
from src.specs.github.git_api_spec import GitHostingClient, TreeEntry
from src.specs.http.submit_candidate import CandidateSubmission

_DATA_URI_PREFIX = re.compile(r"^data:image/[\w.+-]+;base64,")
_MAX_BLOB_WORKERS = 8

Encoding = Literal["utf-8", "base64"]


@dataclass(frozen=True)
class PublishTarget:
    owner: str
    main_repo: str
    fork_repo: str
    content_root: str

    @property
    def head_repo(self) -> str:
        return f"{self.owner}/{self.fork_repo}"


@dataclass(frozen=True)
class FileEntry:
    path: str
    content: str
    encoding: Encoding = "utf-8"

    @property
    def is_binary(self) -> bool:
        return self.encoding == "base64"


@dataclass
class PublicationPlan:
    slug: str
    branch_name: str
    year: str
    directory: str
    files: List[FileEntry] = field(default_factory=list)
    image_map: Dict[str, str] = field(default_factory=dict)
    frontmatter: str = ""


def branch_name_for(slug: str, correlation_id: str) -> str:
    return f"form-{slug}-{correlation_id[:8]}"


def strip_data_uri(content: str) -> str:
    return _DATA_URI_PREFIX.sub("", content)


def is_vector_image(filename: str) -> bool:
    return filename.lower().endswith(".svg")


def plan_paths(submission: CandidateSubmission, correlation_id: str, content_root: str) -> PublicationPlan:
    slug = slugify(submission.candidate)
    year = submission.electionDate.isoformat()[:4]
    return PublicationPlan(
        slug=slug,
        branch_name=branch_name_for(slug, correlation_id),
        year=year,
        directory=f"{content_root}/{year}/{slug}",
    )


def build_files(plan: PublicationPlan, submission: CandidateSubmission) -> PublicationPlan:
    """Fill ``plan`` with the images and the index.md page, index.md last."""
    files: List[FileEntry] = []
    image_map: Dict[str, str] = {}

    avatar_filename: Optional[str] = None
    if submission.avatarImage:
        avatar_filename = normalize_filename(f"{plan.slug}-avatar.jpg")
        files.append(
            FileEntry(f"{plan.directory}/{avatar_filename}", strip_data_uri(submission.avatarImage), "base64")
        )

    image_filename: Optional[str] = None
    if submission.titleImage:
        image_filename = normalize_filename(f"{plan.slug}-title.jpg")
        files.append(
            FileEntry(f"{plan.directory}/{image_filename}", strip_data_uri(submission.titleImage), "base64")
        )

    for image in submission.additionalImages:
        original = image.path.rsplit("/", 1)[-1] or image.path
        normalized = normalize_filename(original)
        image_map[original] = normalized
        image_map[image.path] = normalized

        raw = strip_data_uri(image.content)
        if is_vector_image(normalized):
            files.append(FileEntry(f"{plan.directory}/{normalized}", _decode_text(raw, image.path)))
        else:
            files.append(FileEntry(f"{plan.directory}/{normalized}", raw, "base64"))

    body = rewrite_image_references(submission.content, image_map)
    plan.frontmatter = build_frontmatter(submission, avatar_filename, image_filename, content=body)
    files.append(FileEntry(f"{plan.directory}/index.md", plan.frontmatter))

    plan.files = files
    plan.image_map = image_map
    return plan


def _decode_text(encoded: str, path: str) -> str:
    try:
        return base64.b64decode(encoded).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as exc:
        raise PublicationError("build_files", f"image {path} is not valid base64 UTF-8 text") from exc


def build_pull_request_body(submission: CandidateSubmission, correlation_id: str) -> str:
    return (
        "## New Candidate Submission\n"
        "\n"
        f"**Candidate:** {submission.candidate}\n"
        f"**Position:** {submission.title}\n"
        f"**Party:** {submission.party}\n"
        "\n"
        "---\n"
        "\n"
        "*This PR was automatically created from a form submission.*\n"
        f"*Correlation ID: `{correlation_id}`*\n"
        "\n"
        "Please verify the candidate information and merge when ready."
    )


class Publisher:
    def __init__(self, client: GitHostingClient, target: PublishTarget):
        self._client = client
        self._target = target

    def publish(self, submission: CandidateSubmission, correlation_id: str) -> str:
        """
        Publish ``submission`` as a single commit on a fresh branch and open a PR.

        Returns:
            The pull request URL

        Raises:
            PublicationError: If any hosting call fails; the branch is left in place
        """
        plan = plan_paths(submission, correlation_id, self._target.content_root)
        step = "get_fork_head"
        branch_created = False
        try:
            fork = self._client.get_repository(self._target.fork_repo)
            head = self._client.get_ref(self._target.fork_repo, f"heads/{fork.default_branch}")

            step = "get_main_repository"
            main = self._client.get_repository(self._target.main_repo)

            step = "create_branch"
            self._client.create_ref(self._target.fork_repo, f"refs/heads/{plan.branch_name}", head.sha)
            branch_created = True
            log_info(correlation_id, "publish:branch_created", branch=plan.branch_name, repo=self._target.fork_repo)

            step = "build_files"
            build_files(plan, submission)

            step = "create_tree"
            base_tree = self._client.get_tree(self._target.fork_repo, head.sha)
            entries = self._tree_entries(plan.files)
            tree = self._client.create_tree(self._target.fork_repo, base_tree.sha, entries)

            step = "create_commit"
            message = f"Add Candidate {submission.candidate}"
            commit = self._client.create_commit(self._target.fork_repo, message, tree.sha, [head.sha])

            step = "update_branch"
            self._client.update_ref(self._target.fork_repo, f"heads/{plan.branch_name}", commit.sha, force=False)
            log_info(correlation_id, "publish:committed", branch=plan.branch_name, files=len(plan.files))

            step = "create_pull_request"
            pr = self._client.create_pull_request(
                self._target.main_repo,
                title=message,
                body=build_pull_request_body(submission, correlation_id),
                head=plan.branch_name,
                head_repo=self._target.head_repo,
                base=main.default_branch,
                maintainer_can_modify=True,
            )
        except (HostingApiError, PublicationError) as exc:
            raise self._failed(correlation_id, plan, step, branch_created, exc) from exc

        log_info(correlation_id, "publish:pull_request_opened", number=pr.number, url=pr.html_url)
        return pr.html_url

    def _tree_entries(self, files: List[FileEntry]) -> List[TreeEntry]:
        """Upload binary files as blobs concurrently; inline text files."""
        binary = [i for i, f in enumerate(files) if f.is_binary]
        shas: Dict[int, str] = {}
        if binary:
            with ThreadPoolExecutor(max_workers=min(_MAX_BLOB_WORKERS, len(binary))) as pool:
                blobs = pool.map(
                    lambda i: self._client.create_blob(self._target.fork_repo, files[i].content, "base64"), binary
                )
                for index, blob in zip(binary, blobs):
                    shas[index] = blob.sha

        return [
            TreeEntry(path=f.path, sha=shas[i]) if f.is_binary else TreeEntry(path=f.path, content=f.content)
            for i, f in enumerate(files)
        ]

    def _failed(
        self,
        correlation_id: str,
        plan: PublicationPlan,
        step: str,
        branch_created: bool,
        exc: Exception,
    ) -> PublicationError:
        orphan = plan.branch_name if branch_created else None
        log_error(correlation_id, "publish:failed", step=step, error=str(exc), orphanBranch=orphan)
        return PublicationError(
            step,
            f"Publishing failed at {step}",
            branch_name=orphan,
            details={"error": str(exc)},
        )
