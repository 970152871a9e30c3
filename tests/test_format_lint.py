"""Tests for the format/lint dispatcher."""

import subprocess
import tempfile
from pathlib import Path

from git import Repo

from principles_sync.hooks.format_lint import FormatLint, Mode, format_lint, group_files


class _Recorder:
    """Stands in for subprocess.run, failing for the named tools."""

    def __init__(self, failing=()):
        self.failing = set(failing)
        self.calls = []

    def __call__(self, cmd, **kwargs):
        self.calls.append(cmd)
        return subprocess.CompletedProcess(cmd, 1 if cmd[0] in self.failing else 0)


def _all_tools(name):
    return f"/usr/bin/{name}"


def _files(root: Path, *names: str) -> list[Path]:
    paths = []
    for name in names:
        path = root / name
        path.write_text("x")
        paths.append(path)
    return paths


def test_group_files_by_extension():
    with tempfile.TemporaryDirectory() as tmpdir:
        root = Path(tmpdir)
        files = _files(root, "a.sh", "b.md", "c.tsx", "d.json", "e.yaml", "f.txt")
        grouped = group_files(files + [root / "deleted.sh"])

        assert sorted(grouped) == ["javascript", "json", "markdown", "shell", "yaml"]
        assert grouped["shell"] == [root / "a.sh"]


def test_check_mode_reports_failures():
    with tempfile.TemporaryDirectory() as tmpdir:
        files = _files(Path(tmpdir), "a.md", "b.json")
        runner = _Recorder(failing={"prettier"})

        report = FormatLint(mode=Mode.CHECK, runner=runner, which=_all_tools).run(files)

        assert report.exit_code == 1
        assert report.checked == 2
        assert runner.calls[0][:2] == ["prettier", "--check"]
        assert len(report.failures) == 2


def test_fix_mode_ignores_formatter_exit_but_not_linters():
    with tempfile.TemporaryDirectory() as tmpdir:
        files = _files(Path(tmpdir), "a.md", "one.sh", "two.sh")
        runner = _Recorder(failing={"prettier", "shellcheck"})

        report = FormatLint(mode=Mode.FIX, runner=runner, which=_all_tools).run(files)

        shellcheck_calls = [c for c in runner.calls if c[0] == "shellcheck"]
        assert len(shellcheck_calls) == 2
        assert ["shfmt", "-i", "2", "-ci", "-bn", "-w"] == [
            c for c in runner.calls if c[0] == "shfmt"
        ][0][:6]
        assert len(report.failures) == 2
        assert all("shellcheck" in f for f in report.failures)


def test_missing_tools_are_skipped():
    with tempfile.TemporaryDirectory() as tmpdir:
        files = _files(Path(tmpdir), "a.js")
        runner = _Recorder()

        report = FormatLint(runner=runner, which=lambda name: None).run(files)

        assert report.exit_code == 0
        assert report.missing == ["prettier", "eslint"]
        assert runner.calls == []


def test_staged_files_are_used_when_none_given():
    with tempfile.TemporaryDirectory() as tmpdir:
        repo = Repo.init(tmpdir)
        root = Path(tmpdir)
        _files(root, "base.txt")
        repo.index.add(["base.txt"])
        repo.index.commit("Initial commit")
        _files(root, "README.md", "unstaged.md")
        repo.index.add(["README.md"])
        runner = _Recorder()

        report = format_lint(
            mode=Mode.CHECK,
            cwd=root,
            tool_runner=FormatLint(runner=runner, which=_all_tools),
        )

        assert report.checked == 1
        assert runner.calls == [["prettier", "--check", str(root / "README.md")]]
