"""Shared fixtures: throwaway git repositories standing in for the principles remote."""

from pathlib import Path

import pytest
from git import Repo


def write_files(root: Path, files: dict[str, str]) -> None:
    for rel, text in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")


@pytest.fixture
def make_origin(tmp_path):
    """Return a factory that builds a committed origin repo from a file mapping."""

    def build(files: dict[str, str], name: str = "origin") -> Repo:
        root = tmp_path / name
        root.mkdir()
        repo = Repo.init(root, initial_branch="main")
        write_files(root, files)
        repo.index.add(list(files))
        repo.index.commit("Initial principles")
        return repo

    return build


@pytest.fixture
def commit_files():
    """Return a helper that commits more files to an existing repo."""

    def commit(repo: Repo, files: dict[str, str], message: str = "Update principles") -> None:
        write_files(Path(repo.working_tree_dir), files)
        repo.index.add(list(files))
        repo.index.commit(message)

    return commit
