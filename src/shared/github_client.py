"""
GitHub REST client authenticated as a GitHub App installation.

Implements the GitHostingClient operations with ``requests``; every non-2xx
reply or transport error raises HostingApiError. Nothing here retries.
"""
from __future__ import annotations

import threading
import time
from typing import Any, Dict, List, Optional

import jwt
import requests

from src.shared.config import AppConfig
from src.shared.logging_utils import info as log_info
from src.specs.common.errors import ConfigurationError, HostingApiError
from src.specs.github.git_api_spec import (
    GitObject,
    GitRef,
    PullRequestInfo,
    RepositoryInfo,
    TreeEntry,
)

GITHUB_API_VERSION = "2022-11-28"
# GitHub rejects app JWTs living longer than 10 minutes; backdate for clock drift
_JWT_BACKDATE_SECONDS = 60
_JWT_LIFETIME_SECONDS = 540


def _headers(token: str) -> Dict[str, str]:
    return {
        "Accept": "application/vnd.github+json",
        "Authorization": f"Bearer {token}",
        "X-GitHub-Api-Version": GITHUB_API_VERSION,
    }


def _send(
    session: requests.Session,
    operation: str,
    method: str,
    url: str,
    token: str,
    timeout: float,
    payload: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    try:
        resp = session.request(method, url, headers=_headers(token), json=payload, timeout=timeout)
    except requests.RequestException as exc:
        raise HostingApiError(operation, str(exc)) from exc
    if not resp.ok:
        try:
            message = resp.json().get("message") or resp.reason
        except ValueError:
            message = resp.reason
        raise HostingApiError(operation, f"HTTP {resp.status_code}: {message}", status_code=resp.status_code)
    try:
        return resp.json()
    except ValueError as exc:
        raise HostingApiError(operation, "response was not JSON", status_code=resp.status_code) from exc


def _pick(operation: str, data: Dict[str, Any], *path: str) -> Any:
    value: Any = data
    try:
        for key in path:
            value = value[key]
    except (KeyError, TypeError) as exc:
        raise HostingApiError(operation, f"response missing {'.'.join(path)}") from exc
    return value


class GitHubAppAuth:
    """Exchanges the app's private key for a short-lived installation token."""

    def __init__(
        self,
        app_id: str,
        private_key: str,
        installation_id: str,
        *,
        api_url: str = "https://api.github.com",
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
    ):
        self.app_id = app_id
        self.installation_id = installation_id
        self._private_key = private_key
        self._api_url = api_url.rstrip("/")
        self._session = session or requests.Session()
        self._timeout = timeout

    def app_jwt(self, now: Optional[int] = None) -> str:
        issued = int(time.time() if now is None else now)
        claims = {
            "iat": issued - _JWT_BACKDATE_SECONDS,
            "exp": issued + _JWT_LIFETIME_SECONDS,
            "iss": self.app_id,
        }
        try:
            return jwt.encode(claims, self._private_key, algorithm="RS256")
        except (ValueError, TypeError, jwt.PyJWTError) as exc:
            raise ConfigurationError("GitHub private key could not sign the app JWT") from exc

    def installation_token(self) -> str:
        data = _send(
            self._session,
            "create_installation_token",
            "POST",
            f"{self._api_url}/app/installations/{self.installation_id}/access_tokens",
            self.app_jwt(),
            self._timeout,
        )
        token = data.get("token")
        if not token:
            raise HostingApiError("create_installation_token", "no token in response")
        return token


class GitHubRestClient:
    """REST implementation of GitHostingClient.

    Blob uploads run on worker threads, so unless a session is injected each
    thread gets its own ``requests.Session``.
    """

    def __init__(
        self,
        token: str,
        owner: str,
        *,
        api_url: str = "https://api.github.com",
        session: Optional[requests.Session] = None,
        timeout: float = 30.0,
    ):
        self.owner = owner
        self._token = token
        self._api_url = api_url.rstrip("/")
        self._session = session
        self._local = threading.local()
        self._timeout = timeout

    def _http(self) -> requests.Session:
        if self._session is not None:
            return self._session
        session = getattr(self._local, "session", None)
        if session is None:
            session = self._local.session = requests.Session()
        return session

    def _call(self, operation: str, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return _send(
            self._http(),
            operation,
            method,
            f"{self._api_url}{path}",
            self._token,
            self._timeout,
            payload,
        )

    def _repo_path(self, repo: str) -> str:
        return f"/repos/{self.owner}/{repo}"

    def get_repository(self, repo: str) -> RepositoryInfo:
        data = self._call("get_repository", "GET", self._repo_path(repo))
        return RepositoryInfo(
            full_name=_pick("get_repository", data, "full_name"),
            default_branch=_pick("get_repository", data, "default_branch"),
        )

    def get_ref(self, repo: str, ref: str) -> GitRef:
        data = self._call("get_ref", "GET", f"{self._repo_path(repo)}/git/ref/{ref}")
        return GitRef(ref=_pick("get_ref", data, "ref"), sha=_pick("get_ref", data, "object", "sha"))

    def create_ref(self, repo: str, ref: str, sha: str) -> GitRef:
        data = self._call("create_ref", "POST", f"{self._repo_path(repo)}/git/refs", {"ref": ref, "sha": sha})
        return GitRef(ref=_pick("create_ref", data, "ref"), sha=_pick("create_ref", data, "object", "sha"))

    def create_blob(self, repo: str, content: str, encoding: str) -> GitObject:
        data = self._call(
            "create_blob", "POST", f"{self._repo_path(repo)}/git/blobs", {"content": content, "encoding": encoding}
        )
        return GitObject(sha=_pick("create_blob", data, "sha"))

    def get_tree(self, repo: str, tree_sha: str) -> GitObject:
        data = self._call("get_tree", "GET", f"{self._repo_path(repo)}/git/trees/{tree_sha}")
        return GitObject(sha=_pick("get_tree", data, "sha"))

    def create_tree(self, repo: str, base_tree: str, entries: List[TreeEntry]) -> GitObject:
        payload = {
            "base_tree": base_tree,
            "tree": [entry.model_dump(exclude_none=True) for entry in entries],
        }
        data = self._call("create_tree", "POST", f"{self._repo_path(repo)}/git/trees", payload)
        return GitObject(sha=_pick("create_tree", data, "sha"))

    def create_commit(self, repo: str, message: str, tree: str, parents: List[str]) -> GitObject:
        data = self._call(
            "create_commit",
            "POST",
            f"{self._repo_path(repo)}/git/commits",
            {"message": message, "tree": tree, "parents": list(parents)},
        )
        return GitObject(sha=_pick("create_commit", data, "sha"))

    def update_ref(self, repo: str, ref: str, sha: str, force: bool = False) -> GitRef:
        data = self._call(
            "update_ref", "PATCH", f"{self._repo_path(repo)}/git/refs/{ref}", {"sha": sha, "force": force}
        )
        return GitRef(ref=_pick("update_ref", data, "ref"), sha=_pick("update_ref", data, "object", "sha"))

    def create_pull_request(
        self,
        repo: str,
        *,
        title: str,
        body: str,
        head: str,
        head_repo: str,
        base: str,
        maintainer_can_modify: bool = True,
    ) -> PullRequestInfo:
        data = self._call(
            "create_pull_request",
            "POST",
            f"{self._repo_path(repo)}/pulls",
            {
                "title": title,
                "body": body,
                "head": head,
                "head_repo": head_repo,
                "base": base,
                "maintainer_can_modify": maintainer_can_modify,
            },
        )
        return PullRequestInfo(
            number=_pick("create_pull_request", data, "number"),
            html_url=_pick("create_pull_request", data, "html_url"),
        )


def create_github_client(config: AppConfig, session: Optional[requests.Session] = None) -> GitHubRestClient:
    """
    Build an installation-authenticated client from configuration.

    Raises:
        ConfigurationError: If the app credentials are missing or the key is malformed
    """
    if config.github_private_key is None:
        raise ConfigurationError("GitHub private key is not configured or invalid")
    if not config.github_app_id or not config.github_installation_id:
        raise ConfigurationError("GitHub app id and installation id are required")
    if not config.repo_owner or not config.repo_name or not config.form_repo_name:
        raise ConfigurationError("GitHub repository owner and names are required")

    auth = GitHubAppAuth(
        config.github_app_id,
        config.github_private_key.get_secret_value(),
        config.github_installation_id,
        api_url=config.github_api_url,
        session=session,
        timeout=config.http_timeout,
    )
    token = auth.installation_token()
    log_info(None, "github:installation_token_issued", installationId=config.github_installation_id)
    return GitHubRestClient(
        token,
        config.repo_owner,
        api_url=config.github_api_url,
        session=session,
        timeout=config.http_timeout,
    )
