"""
Process-wide configuration, read from the environment once at startup.

Core modules receive an ``AppConfig`` explicitly and never read ``os.environ``.
"""
from __future__ import annotations

import os
import re
from functools import lru_cache
from typing import Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, SecretStr

from src.specs.common.errors import ConfigurationError

DEFAULT_ALLOWED_ORIGIN = "https://www.democracycandidate.us"
DEFAULT_CONTENT_ROOT = "src/content/english/candidates"
TURNSTILE_VERIFY_URL = "https://challenges.cloudflare.com/turnstile/v0/siteverify"

_PLACEHOLDER_MARKERS = ("your-private-key-here", "your-github-app")
_PEM_LABEL = re.compile(r"-----BEGIN ((?:RSA )?PRIVATE KEY)-----")
_MIN_KEY_BODY = 100  # an RSA key body is far longer than this


class AppConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    turnstile_secret_key: SecretStr = SecretStr("")
    is_local_dev: bool = False
    contact_storage_connection: SecretStr = SecretStr("")
    contact_container_name: str = "contacts"
    github_app_id: str = ""
    github_private_key: Optional[SecretStr] = None
    github_installation_id: str = ""
    repo_owner: str = ""
    repo_name: str = ""
    form_repo_name: str = ""
    allowed_origins: Tuple[str, ...] = (DEFAULT_ALLOWED_ORIGIN,)
    content_root: str = DEFAULT_CONTENT_ROOT
    github_api_url: str = "https://api.github.com"
    turnstile_verify_url: str = TURNSTILE_VERIFY_URL
    http_timeout: float = 30.0

    @property
    def has_github_credentials(self) -> bool:
        return self.github_private_key is not None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "AppConfig":
        env = os.environ if environ is None else environ
        origins = tuple(
            o.strip() for o in (env.get("ALLOWED_ORIGINS") or DEFAULT_ALLOWED_ORIGIN).split(",") if o.strip()
        )
        private_key = parse_github_private_key(env.get("GITHUB_APP_PRIVATE_KEY", ""))
        try:
            timeout = float(env.get("HTTP_TIMEOUT_SECONDS") or 30)
        except ValueError as exc:
            raise ConfigurationError("HTTP_TIMEOUT_SECONDS must be a number") from exc
        return cls(
            turnstile_secret_key=SecretStr(env.get("TURNSTILE_SECRET_KEY", "")),
            is_local_dev=env.get("IS_LOCAL_DEV", "").lower() == "true",
            contact_storage_connection=SecretStr(env.get("CONTACT_STORAGE_CONNECTION", "")),
            contact_container_name=env.get("CONTACT_CONTAINER_NAME") or "contacts",
            github_app_id=env.get("GITHUB_APP_ID", ""),
            github_private_key=SecretStr(private_key) if private_key else None,
            github_installation_id=env.get("GITHUB_APP_INSTALLATION_ID", ""),
            repo_owner=env.get("GITHUB_REPO_OWNER", ""),
            repo_name=env.get("GITHUB_REPO_NAME", ""),
            form_repo_name=env.get("GITHUB_FORM_REPO_NAME", ""),
            allowed_origins=origins or (DEFAULT_ALLOWED_ORIGIN,),
            content_root=(env.get("CANDIDATE_CONTENT_ROOT") or DEFAULT_CONTENT_ROOT).rstrip("/"),
            github_api_url=(env.get("GITHUB_API_URL") or "https://api.github.com").rstrip("/"),
            turnstile_verify_url=env.get("TURNSTILE_VERIFY_URL") or TURNSTILE_VERIFY_URL,
            http_timeout=timeout,
        )


def parse_github_private_key(raw: str) -> Optional[str]:
    """Normalize a PEM private key pasted into an app setting.

    Accepts escaped newlines, a bare base64 body without armour, and armour
    glued to the body. Returns None for empty, placeholder or truncated keys.
    """
    if not raw or any(marker in raw for marker in _PLACEHOLDER_MARKERS):
        return None

    key = raw.strip().replace("\\n", "\n")
    match = _PEM_LABEL.search(key)
    if "BEGIN" not in key:
        label = "RSA PRIVATE KEY"
    elif match:
        label = match.group(1)
    else:
        return None

    begin = f"-----BEGIN {label}-----"
    end = f"-----END {label}-----"
    if begin not in key:
        key = f"{begin}\n{key}\n{end}"
    if end not in key:
        return None

    body_lines = [
        line for line in key.replace(begin, "\n").replace(end, "\n").split("\n") if line.strip()
    ]
    body = re.sub(r"\s", "", "".join(body_lines))
    if len(body) < _MIN_KEY_BODY:
        return None

    wrapped = "\n".join(body[i:i + 64] for i in range(0, len(body), 64))
    return f"{begin}\n{wrapped}\n{end}"


@lru_cache(maxsize=1)
def load_config() -> AppConfig:
    """Get or create the process-wide AppConfig"""
    return AppConfig.from_env()
