"""Dotfiles repository synchronization with GitPython.

Remote dotfiles repositories are cloned into a local cache directory and
fast-forwarded on later runs. Authentication uses a personal access token
(injected into HTTPS URLs) or an SSH key (via GIT_SSH_COMMAND); tokens fall
back to the GITHUB_TOKEN and GH_TOKEN environment variables.
"""

from __future__ import annotations

import logging
import os
import re
import shlex
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from urllib.parse import quote, urlsplit, urlunsplit

from git import GitCommandError, InvalidGitRepositoryError, NoSuchPathError, Repo

from dotctl.core.errors import DotctlError

logger = logging.getLogger(__name__)

TOKEN_ENV_VARS = ("GITHUB_TOKEN", "GH_TOKEN")

_SCP_STYLE = re.compile(r"^(?P<user>[\w.-]+)@(?P<host>[\w.-]+):(?P<path>.+)$")
_GITHUB_SHORTHAND = re.compile(r"^github\.com/[\w.-]+/[\w.-]+/?$")
_URL_SCHEMES = ("https://", "http://", "ssh://", "git://", "file://")


class RepositoryError(DotctlError):
    """Raised when a repository cannot be cloned, opened or updated."""


@dataclass(frozen=True, slots=True)
class AuthConfig:
    """Repository credentials.

    Attributes:
        token: Personal access token for HTTPS remotes.
        username: Username paired with the token; defaults to the token.
        ssh_key_path: Private key for SSH remotes.
        ssh_passphrase: Passphrase for the key. Only keys loaded into an
            agent can use one; it is never passed on the command line.
    """

    token: str | None = None
    username: str | None = None
    ssh_key_path: str | None = None
    ssh_passphrase: str | None = None

    def resolved(self, environ: Mapping[str, str] | None = None) -> AuthConfig:
        """Fill a missing token from well-known environment variables.

        Args:
            environ: Environment mapping; defaults to os.environ.

        Returns:
            AuthConfig with the token resolved, if one was found.
        """
        if self.token:
            return self
        env = os.environ if environ is None else environ
        for name in TOKEN_ENV_VARS:
            token = env.get(name)
            if token:
                logger.debug("Using repository token from %s", name)
                return AuthConfig(
                    token=token,
                    username=self.username,
                    ssh_key_path=self.ssh_key_path,
                    ssh_passphrase=self.ssh_passphrase,
                )
        return self


@dataclass(frozen=True, slots=True)
class RepositoryInfo:
    """State of a local repository clone.

    Attributes:
        url: Remote URL without credentials.
        local_path: Path of the working tree.
        branch: Checked-out branch, or "detached".
        last_commit: Hex SHA of HEAD.
        last_update: When the clone was last fetched.
    """

    url: str
    local_path: Path
    branch: str
    last_commit: str
    last_update: datetime


def is_remote_url(path: str) -> bool:
    """Check whether ``path`` refers to a remote repository rather than a directory."""
    if path.startswith(_URL_SCHEMES):
        return True
    if _SCP_STYLE.match(path):
        return True
    return bool(_GITHUB_SHORTHAND.match(path))


def normalize_url(url: str) -> str:
    """Turn GitHub shorthand (``github.com/user/repo``) into an HTTPS clone URL."""
    if _GITHUB_SHORTHAND.match(url):
        url = "https://" + url.rstrip("/")
        if not url.endswith(".git"):
            url += ".git"
    return url


def local_cache_path(cache_root: Path, url: str) -> Path:
    """Deterministic cache location for a remote URL.

    ``https://github.com/user/repo.git`` maps to
    ``<cache_root>/github.com/user/repo``.
    """
    url = normalize_url(url)
    scp = _SCP_STYLE.match(url)
    if scp:
        host, path = scp.group("host"), scp.group("path")
    else:
        parts = urlsplit(url)
        host, path = parts.hostname or "local", parts.path
    path = path.strip("/")
    if path.endswith(".git"):
        path = path[: -len(".git")]
    safe = re.sub(r"[:?*]", "_", f"{host}/{path}")
    return cache_root / safe


def _authenticated_url(url: str, auth: AuthConfig) -> str:
    if not auth.token or not url.startswith(("https://", "http://")):
        return url
    parts = urlsplit(url)
    username = quote(auth.username or auth.token, safe="")
    token = quote(auth.token, safe="")
    netloc = f"{username}:{token}@{parts.hostname}"
    if parts.port:
        netloc += f":{parts.port}"
    return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


def _git_env(auth: AuthConfig) -> dict[str, str]:
    if not auth.ssh_key_path:
        return {}
    key = shlex.quote(os.path.expanduser(auth.ssh_key_path))
    return {"GIT_SSH_COMMAND": f"ssh -i {key} -o IdentitiesOnly=yes"}


class GitRepositoryManager:
    """Clones and updates dotfiles repositories."""

    def clone(
        self,
        url: str,
        local_path: Path,
        auth: AuthConfig | None = None,
        branch: str | None = None,
    ) -> RepositoryInfo:
        """Clone ``url`` into ``local_path``, or update an existing clone.

        Args:
            url: Remote URL or GitHub shorthand.
            local_path: Destination working tree.
            auth: Credentials; environment tokens are used as a fallback.
            branch: Branch to check out; the remote default when None.

        Returns:
            RepositoryInfo for the clone.

        Raises:
            RepositoryError: If cloning fails.
        """
        url = normalize_url(url)
        if (local_path / ".git").exists():
            logger.info("Repository already cloned at %s, updating", local_path)
            return self.update(local_path, auth)

        auth = (auth or AuthConfig()).resolved()
        local_path.parent.mkdir(parents=True, exist_ok=True)
        kwargs: dict[str, object] = {"depth": 1}
        if branch:
            kwargs["branch"] = branch
        try:
            repo = Repo.clone_from(
                _authenticated_url(url, auth),
                local_path,
                env=_git_env(auth) or None,
                **kwargs,
            )
            if auth.token:
                repo.remotes.origin.set_url(url)
        except GitCommandError as e:
            msg = f"Failed to clone {url}: {e.stderr.strip() if e.stderr else e}"
            raise RepositoryError(msg) from e
        logger.info("Cloned %s into %s", url, local_path)
        return self._info(repo, local_path)

    def update(self, local_path: Path, auth: AuthConfig | None = None) -> RepositoryInfo:
        """Fetch and fast-forward an existing clone.

        Raises:
            RepositoryError: If the path is not a repository or the pull fails.
        """
        repo = self._open(local_path)
        auth = (auth or AuthConfig()).resolved()
        try:
            origin = repo.remotes.origin
            url = origin.url
            env = _git_env(auth)
            if auth.token:
                origin.set_url(_authenticated_url(url, auth))
            try:
                with repo.git.custom_environment(**env):
                    origin.pull(ff_only=True)
            finally:
                if auth.token:
                    origin.set_url(url)
        except (GitCommandError, AttributeError) as e:
            msg = f"Failed to update repository at {local_path}: {e}"
            raise RepositoryError(msg) from e
        logger.info("Updated repository at %s", local_path)
        return self._info(repo, local_path)

    def info(self, local_path: Path) -> RepositoryInfo:
        """Describe an existing clone without touching the network.

        Raises:
            RepositoryError: If the path is not a repository.
        """
        repo = self._open(local_path)
        fetch_head = Path(repo.git_dir) / "FETCH_HEAD"
        stamp_source = fetch_head if fetch_head.exists() else Path(repo.git_dir) / "HEAD"
        last_update = datetime.fromtimestamp(stamp_source.stat().st_mtime, UTC)
        return self._info(repo, local_path, last_update)

    @staticmethod
    def _open(local_path: Path) -> Repo:
        try:
            return Repo(local_path)
        except (InvalidGitRepositoryError, NoSuchPathError) as e:
            msg = f"Not a git repository: {local_path}"
            raise RepositoryError(msg) from e

    @staticmethod
    def _info(repo: Repo, local_path: Path, last_update: datetime | None = None) -> RepositoryInfo:
        branch = "detached" if repo.head.is_detached else repo.active_branch.name
        url = repo.remotes[0].url if repo.remotes else ""
        return RepositoryInfo(
            url=url,
            local_path=local_path,
            branch=branch,
            last_commit=repo.head.commit.hexsha,
            last_update=last_update or datetime.now(UTC),
        )
