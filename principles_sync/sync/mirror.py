"""Mirror sync — clone or fast-forward the local copy of the principles repo.

The mirror is either absent or a complete clone. Fresh clones land in a
temporary sibling directory and are renamed into place; an existing mirror
is only ever fast-forwarded. When the update fails the existing mirror is
reused, since stale content beats no content.
"""

from __future__ import annotations

import os
import shutil
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from git import GitCommandError, InvalidGitRepositoryError, NoSuchPathError, Repo

from principles_sync.log import get_logger
from principles_sync.models.results import SyncResult, SyncStatus

log = get_logger(__name__)

# Never let git block a background run on a credential prompt.
GIT_ENV = {"GIT_TERMINAL_PROMPT": "0"}


class MirrorUnavailableError(RuntimeError):
    """No mirror exists and none of the endpoints could be cloned."""

    def __init__(self, attempts: list[tuple[str, str]]):
        self.attempts = attempts
        tried = ", ".join(endpoint for endpoint, _ in attempts) or "(none configured)"
        super().__init__(f"Could not clone principles from any endpoint: {tried}")


@dataclass
class Endpoint:
    """A remote the mirror can be cloned from."""

    url: str
    branch: str = ""

    @property
    def display(self) -> str:
        return self.url

    def clone(self, dest: Path) -> Repo:
        """Shallow, single-branch clone into ``dest``."""
        kwargs: dict = {"depth": 1, "single_branch": True}
        if self.branch:
            kwargs["branch"] = self.branch
        return Repo.clone_from(self.url, dest, env=GIT_ENV, **kwargs)


@dataclass
class LocalEndpoint(Endpoint):
    """A checkout of the principles repo already on disk."""

    def clone(self, dest: Path) -> Repo:
        # Plain-path clones ignore --depth; file:// keeps them shallow.
        source = Path(self.url).expanduser().resolve()
        return Endpoint(source.as_uri(), self.branch).clone(dest)


def make_endpoint(target: str, branch: str = "") -> Endpoint:
    """Build the right endpoint strategy for a URL or local path."""
    if target.startswith(("http://", "https://", "git@", "git://", "ssh://", "file://")):
        return Endpoint(target, branch)
    return LocalEndpoint(target, branch)


@dataclass
class MirrorManager:
    """Keeps ``mirror_path`` in sync with the first reachable endpoint."""

    mirror_path: Path
    endpoints: list[Endpoint] = field(default_factory=list)

    def sync(self) -> SyncResult:
        """Clone or update the mirror.

        Returns:
            ``SyncResult`` with status CLONED, UPDATED or DEGRADED.

        Raises:
            MirrorUnavailableError: No usable mirror and every endpoint failed.
        """
        repo = self.open()
        if repo is None:
            if self.mirror_path.is_symlink() or self.mirror_path.is_file():
                log.warning("%s is not a directory, replacing it with a fresh clone", self.mirror_path)
                self.mirror_path.unlink()
            elif self.mirror_path.exists():
                log.warning("Mirror at %s is incomplete, re-cloning", self.mirror_path)
                shutil.rmtree(self.mirror_path)
            return self._clone()
        return self._update(repo)

    def open(self) -> Repo | None:
        """Return the mirror repo if it is a complete clone, else None."""
        if not self.mirror_path.is_dir():
            return None
        try:
            repo = Repo(self.mirror_path)
        except (InvalidGitRepositoryError, NoSuchPathError):
            return None
        if repo.bare or not repo.head.is_valid():
            return None
        # A work tree nested in some other repo is not our mirror.
        if Path(repo.working_tree_dir).resolve() != self.mirror_path.resolve():
            return None
        return repo

    def _clone(self) -> SyncResult:
        attempts: list[tuple[str, str]] = []
        self.mirror_path.parent.mkdir(parents=True, exist_ok=True)

        for endpoint in self.endpoints:
            staging = Path(
                tempfile.mkdtemp(prefix=".mirror-", dir=self.mirror_path.parent)
            )
            try:
                log.info("Cloning principles from %s", endpoint.display)
                endpoint.clone(staging)
                os.replace(staging, self.mirror_path)
            except (GitCommandError, OSError) as exc:
                message = _short_error(exc)
                log.debug("Clone from %s failed: %s", endpoint.display, message)
                attempts.append((endpoint.display, message))
                shutil.rmtree(staging, ignore_errors=True)
                continue
            return SyncResult(
                status=SyncStatus.CLONED,
                mirror_path=self.mirror_path,
                endpoint=endpoint.display,
            )

        raise MirrorUnavailableError(attempts)

    def _update(self, repo: Repo) -> SyncResult:
        repo.git.update_environment(**GIT_ENV)
        try:
            remote = repo.remote()
            log.info("Updating principles mirror from %s", remote.url)
            repo.git.pull("--ff-only", "--quiet")
        except (GitCommandError, ValueError) as exc:
            reason = _short_error(exc)
            log.warning("Could not update principles, using cached copy: %s", reason)
            return SyncResult(
                status=SyncStatus.DEGRADED,
                mirror_path=self.mirror_path,
                reason=reason,
            )
        return SyncResult(
            status=SyncStatus.UPDATED,
            mirror_path=self.mirror_path,
            endpoint=remote.url,
        )


def _short_error(exc: Exception) -> str:
    """Return the most useful single line of a git failure."""
    if isinstance(exc, GitCommandError):
        stderr = (exc.stderr or "").strip()
        lines = [line.strip() for line in stderr.splitlines() if line.strip()]
        if lines:
            return lines[-1].removeprefix("stderr: ").strip("'")
        return f"git exited with status {exc.status}"
    return str(exc)
