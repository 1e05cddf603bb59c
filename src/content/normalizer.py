"""
Pure text transforms that turn submitted names and markdown into the
canonical forms published to the content repository.
"""
from __future__ import annotations

import json
import re
from typing import Mapping, Optional

from src.specs.common.datetime_utils import format_election_datetime
from src.specs.http.submit_candidate import CandidateSubmission

_NON_ALNUM = re.compile(r"[^a-z0-9]+")
_WHITESPACE = re.compile(r"\s+")
_NON_SLUG = re.compile(r"[^a-z0-9-]")

# Relative prefixes the editor may emit in front of an image filename
IMAGE_REFERENCE_PREFIXES = ("", "./../../assets/images/", "images/")


def normalize_filename(filename: str) -> str:
    """Lower-case a filename and collapse non-alphanumeric runs to dashes.

    >>> normalize_filename("My Photo (1).PNG")
    'my-photo-1.png'
    """
    dot = filename.rfind(".")
    if dot > 0:
        stem, ext = filename[:dot], filename[dot:]
    else:
        stem, ext = filename, ""
    # An empty stem would turn the extension into a dotfile on the next pass
    normalized = _NON_ALNUM.sub("-", stem.lower()).strip("-") or "image"
    return normalized + ext.lower()


def slugify(name: str) -> str:
    return _NON_SLUG.sub("", _WHITESPACE.sub("-", name.lower()))


def rewrite_image_references(markdown: str, mapping: Mapping[str, str]) -> str:
    """Point markdown image tags at their normalized paths.

    Each key of ``mapping`` is matched as ``![alt](key)``,
    ``![alt](./../../assets/images/key)`` and ``![alt](images/key)``.
    Only the alt text survives; references with no key are left as-is.
    """
    updated = markdown
    for original, target in mapping.items():
        for prefix in IMAGE_REFERENCE_PREFIXES:
            pattern = re.compile(r"!\[([^\]]*)\]\(" + re.escape(prefix + original) + r"\)")
            updated = pattern.sub(lambda m, t=target: f"![{m.group(1)}]({t})", updated)
    return updated


def _escape_quotes(value: str) -> str:
    return value.replace('"', '\\"')


def build_frontmatter(
    submission: CandidateSubmission,
    avatar_filename: Optional[str] = None,
    image_filename: Optional[str] = None,
    content: Optional[str] = None,
) -> str:
    """Render the Hugo page for a candidate: front matter block plus markdown body."""
    meta_title = f"{submission.candidate} for {submission.title}"
    lines = [
        "---",
        f'title: "{submission.title}"',
        f'meta_title: "{meta_title}"',
        f'description: "{meta_title}"',
        f'candidate: "{submission.candidate}"',
        f'party: "{submission.party}"',
        f"election_date: {format_election_datetime(submission.electionDate)}",
        f'image: "{image_filename or ""}"',
        f"categories: {_json_list(submission.categories)}",
        f"tags: {_json_list(submission.tags)}",
        "draft: false",
        f'avatar: "{avatar_filename or ""}"',
        f'about: "{_escape_quotes(submission.about)}"',
    ]
    if submission.website:
        lines.append(f'website: "{submission.website}"')
    lines.append("---")

    body = submission.content if content is None else content
    return "\n".join(lines) + f"\n\n{body}\n"


def _json_list(values) -> str:
    return json.dumps(list(values), separators=(",", ":"), ensure_ascii=False)
