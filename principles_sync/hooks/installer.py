"""Hook installer — wire principles-sync into a repository's git hooks.

``post-checkout`` and ``post-merge`` refresh the principles in the
background; ``pre-commit`` runs the formatter dispatcher. Hooks that
already exist are backed up once and restored on uninstall.
"""

from __future__ import annotations

import shlex
import shutil
import stat
import subprocess
import sys
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable

from git import InvalidGitRepositoryError, NoSuchPathError, Repo

from principles_sync.hooks.format_lint import required_tools
from principles_sync.log import get_logger

log = get_logger(__name__)

HOOK_MARKER = "# installed by principles-sync"
ORIGINAL_SUFFIX = ".backup-original"

PRINCIPLES_HOOKS = ("post-checkout", "post-merge")
FORMATTING_HOOKS = ("pre-commit",)

_SYNC_HOOK = """\
#!/bin/sh
{marker}
# Refresh coding principles without blocking git.
(
  {command} sync || echo "principles-sync: could not refresh principles" >&2
) >/dev/null 2>&1 &
exit 0
"""

_PRE_COMMIT_HOOK = """\
#!/bin/sh
{marker}
exec {command} format-lint
"""


class InstallError(RuntimeError):
    """Raised when hooks cannot be installed into the target repository."""


def default_command() -> str:
    """Command line the hooks use to call back into this package."""
    return f"{shlex.quote(sys.executable)} -m principles_sync"


@dataclass
class HookInstaller:
    """Installs and removes principles-sync git hooks."""

    repo_path: Path = field(default_factory=Path.cwd)
    command: str = field(default_factory=default_command)

    def __post_init__(self) -> None:
        try:
            repo = Repo(self.repo_path, search_parent_directories=True)
        except (InvalidGitRepositoryError, NoSuchPathError):
            raise InstallError(f"Not a git repository: {self.repo_path}")
        self.hooks_dir = Path(repo.git_dir) / "hooks"

    def install(self, principles: bool = True, formatting: bool = True) -> list[Path]:
        """Write the selected hooks and return their paths."""
        try:
            self.hooks_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise InstallError(f"Cannot create {self.hooks_dir}: {exc}") from exc

        installed = []
        if principles:
            for name in PRINCIPLES_HOOKS:
                installed.append(self._write_hook(name, _SYNC_HOOK))
        if formatting:
            for name in FORMATTING_HOOKS:
                installed.append(self._write_hook(name, _PRE_COMMIT_HOOK))
        return installed

    def uninstall(self) -> list[str]:
        """Remove our hooks, restoring originals. Returns what was done."""
        actions = []
        for name in (*PRINCIPLES_HOOKS, *FORMATTING_HOOKS):
            hook = self.hooks_dir / name
            original = hook.with_name(name + ORIGINAL_SUFFIX)
            if original.is_file():
                original.replace(hook)
                actions.append(f"Restored original {name}")
            elif hook.is_file() and HOOK_MARKER in hook.read_text(encoding="utf-8", errors="replace"):
                hook.unlink()
                actions.append(f"Removed {name}")

        for backup in self.hooks_dir.glob("*.backup-*"):
            if backup.is_file():
                backup.unlink()
        return actions

    def backup(self, name: str) -> Path | None:
        """Keep a copy of a foreign hook before it is first overwritten."""
        hook = self.hooks_dir / name
        original = hook.with_name(name + ORIGINAL_SUFFIX)
        if not hook.is_file() or original.exists():
            return None
        if HOOK_MARKER in hook.read_text(encoding="utf-8", errors="replace"):
            return None
        stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
        shutil.copy2(hook, hook.with_name(f"{name}.backup-{stamp}"))
        shutil.copy2(hook, original)
        log.info("Backed up existing %s hook", name)
        return original

    def _write_hook(self, name: str, template: str) -> Path:
        self.backup(name)
        hook = self.hooks_dir / name
        hook.write_text(template.format(marker=HOOK_MARKER, command=self.command), encoding="utf-8")
        hook.chmod(hook.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        log.debug("Installed %s", hook)
        return hook


def missing_tools() -> list[str]:
    """Formatter executables that are not on PATH."""
    return [tool for tool in required_tools() if shutil.which(tool) is None]


def install_tools(
    tools: list[str],
    runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
    which: Callable[[str], str | None] = shutil.which,
) -> dict[str, bool]:
    """Install formatter tools globally with npm. Returns success per tool."""
    if which("npm") is None:
        log.warning("npm not found, cannot install %s", ", ".join(tools))
        return {tool: False for tool in tools}

    results = {}
    for tool in tools:
        try:
            completed = runner(["npm", "install", "-g", tool], capture_output=True, text=True)
        except OSError as exc:
            log.warning("Failed to install %s: %s", tool, exc)
            results[tool] = False
            continue
        results[tool] = completed.returncode == 0
        if not results[tool]:
            log.warning("Failed to install %s (npm exited with %d)", tool, completed.returncode)
    return results


def session_start_snippet(command: str, output: Path) -> dict:
    """Settings entry that loads the principles when a session starts."""
    return {
        "sessionStartHooks": [
            {
                "name": "Load Coding Principles",
                "command": "sh",
                "args": ["-c", f"{command} sync && cat {shlex.quote(str(output))}"],
                "timeout": 30000,
            }
        ]
    }
