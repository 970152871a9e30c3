"""Format and lint dispatcher for staged files.

Files are grouped by extension and handed to the matching third-party
tools. In ``fix`` mode formatters rewrite files in place and the changes
are re-staged; in ``check`` mode nothing is written and any complaint makes
the run fail. Tools that are not installed are reported and skipped.
"""

from __future__ import annotations

import shutil
import subprocess
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Sequence

from git import InvalidGitRepositoryError, NoSuchPathError, Repo

from principles_sync.log import get_logger

log = get_logger(__name__)


class Mode(Enum):
    FIX = "fix"
    CHECK = "check"


@dataclass(frozen=True)
class Tool:
    """One external formatter or linter."""

    name: str
    fix_args: tuple[str, ...]
    check_args: tuple[str, ...]
    install_hint: str
    lint: bool = False  # Complaints are errors in fix mode too
    per_file: bool = False

    def args(self, mode: Mode) -> tuple[str, ...]:
        return self.fix_args if mode == Mode.FIX else self.check_args


SHELLCHECK = Tool(
    "shellcheck", (), (), "apt install shellcheck / brew install shellcheck", lint=True, per_file=True
)
SHFMT = Tool(
    "shfmt",
    ("-i", "2", "-ci", "-bn", "-w"),
    ("-i", "2", "-ci", "-bn", "-d"),
    "go install mvdan.cc/sh/v3/cmd/shfmt@latest / brew install shfmt",
)
PRETTIER = Tool("prettier", ("--write",), ("--check",), "npm install -g prettier")
ESLINT = Tool("eslint", ("--fix",), (), "npm install -g eslint", lint=True)


@dataclass(frozen=True)
class FileGroup:
    name: str
    suffixes: tuple[str, ...]
    tools: tuple[Tool, ...]


FILE_GROUPS = (
    FileGroup("shell", (".sh",), (SHELLCHECK, SHFMT)),
    FileGroup("markdown", (".md",), (PRETTIER,)),
    FileGroup("javascript", (".js", ".jsx", ".ts", ".tsx"), (PRETTIER, ESLINT)),
    FileGroup("json", (".json",), (PRETTIER,)),
    FileGroup("yaml", (".yml", ".yaml"), (PRETTIER,)),
)


def required_tools() -> list[str]:
    names: list[str] = []
    for group in FILE_GROUPS:
        for tool in group.tools:
            if tool.name not in names:
                names.append(tool.name)
    return names


def group_files(files: Sequence[Path]) -> dict[str, list[Path]]:
    """Bucket existing files by group name; unknown extensions are dropped."""
    grouped: dict[str, list[Path]] = {}
    for path in files:
        if not path.is_file():
            continue
        for group in FILE_GROUPS:
            if path.suffix.lower() in group.suffixes:
                grouped.setdefault(group.name, []).append(path)
                break
    return grouped


@dataclass
class FormatReport:
    checked: int = 0
    failures: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)
    restaged: list[str] = field(default_factory=list)

    @property
    def exit_code(self) -> int:
        return 1 if self.failures else 0


@dataclass
class FormatLint:
    """Runs the configured tools over a set of files."""

    mode: Mode = Mode.FIX
    runner: Callable[..., subprocess.CompletedProcess] = subprocess.run
    which: Callable[[str], str | None] = shutil.which

    def run(self, files: Sequence[Path]) -> FormatReport:
        report = FormatReport()
        grouped = group_files([Path(f) for f in files])
        report.checked = sum(len(v) for v in grouped.values())
        if not grouped:
            log.debug("No files to check")
            return report

        for group in FILE_GROUPS:
            members = grouped.get(group.name)
            if not members:
                continue
            log.debug("Checking %d %s file(s)", len(members), group.name)
            for tool in group.tools:
                if self.which(tool.name) is None:
                    if tool.name not in report.missing:
                        report.missing.append(tool.name)
                        log.warning("%s not found, skipping. To install: %s", tool.name, tool.install_hint)
                    continue
                self._run_tool(tool, group, members, report)
        return report

    def _run_tool(self, tool: Tool, group: FileGroup, files: list[Path], report: FormatReport) -> None:
        batches = [[f] for f in files] if tool.per_file else [files]
        for batch in batches:
            cmd = [tool.name, *tool.args(self.mode), *(str(f) for f in batch)]
            completed = self.runner(cmd, capture_output=True, text=True)
            if completed.returncode == 0:
                continue
            if self.mode == Mode.CHECK or tool.lint:
                target = str(batch[0]) if tool.per_file else f"{group.name} files"
                message = f"{tool.name} found issues in {target}"
                log.error(message)
                report.failures.append(message)
            else:
                log.debug("%s exited with %d", tool.name, completed.returncode)


def open_repo(path: Path) -> Repo | None:
    try:
        return Repo(path, search_parent_directories=True)
    except (InvalidGitRepositoryError, NoSuchPathError):
        return None


def staged_files(repo: Repo) -> list[Path]:
    """Added, copied or modified files in the index."""
    output = repo.git.diff("--cached", "--name-only", "--diff-filter=ACM")
    root = Path(repo.working_tree_dir)
    return [root / line for line in output.splitlines() if line.strip()]


def restage_modified(repo: Repo, files: Sequence[Path]) -> list[str]:
    """Re-add files the formatters changed after they were staged."""
    if not files:
        return []
    output = repo.git.diff("--name-only", "--", *(str(f) for f in files))
    modified = [line for line in output.splitlines() if line.strip()]
    if modified:
        log.debug("Re-staging %d modified file(s)", len(modified))
        repo.git.add("--", *modified)
    return modified


def format_lint(
    files: Sequence[Path] = (),
    mode: Mode = Mode.FIX,
    cwd: Path | None = None,
    tool_runner: FormatLint | None = None,
) -> FormatReport:
    """Format explicit files, or the staged files of the repo at ``cwd``."""
    repo = open_repo(cwd or Path.cwd())
    targets = [Path(f) for f in files]
    from_index = not targets and repo is not None
    if from_index:
        targets = staged_files(repo)

    linter = tool_runner or FormatLint(mode=mode)
    linter.mode = mode
    report = linter.run(targets)

    if mode == Mode.FIX and from_index and report.checked:
        report.restaged = restage_modified(repo, targets)
    return report
