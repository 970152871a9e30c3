"""Technology detection — decide which principle categories apply to a tree.

Each known category carries its own detection rule as data: marker files
that must sit at the project root, and glob patterns matched against every
file within the scan depth. Adding a category means adding a row here.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path, PurePath
from typing import Iterable

from principles_sync.log import get_logger
from principles_sync.utils.file_scanner import scan_project_files

log = get_logger(__name__)


@dataclass(frozen=True)
class CategoryRule:
    """How to recognise one category in a working tree."""

    label: str
    markers: tuple[str, ...] = ()
    patterns: tuple[str, ...] = ()

    def matches(self, root: Path, files: list[PurePath]) -> bool:
        if any((root / marker).exists() for marker in self.markers):
            return True
        return any(f.match(pattern) for pattern in self.patterns for f in files)


class Category(Enum):
    """Known categories, in the order they appear in the output document."""

    SHELL = CategoryRule("shell", patterns=("*.sh", "*.bash"))
    PYTHON = CategoryRule(
        "python",
        markers=("pyproject.toml", "setup.py", "setup.cfg", "requirements.txt", "Pipfile"),
        patterns=("*.py",),
    )
    GO = CategoryRule("go", markers=("go.mod",), patterns=("*.go",))
    RUST = CategoryRule("rust", markers=("Cargo.toml",), patterns=("*.rs",))
    JAVASCRIPT = CategoryRule(
        "javascript", markers=("package.json",), patterns=("*.js", "*.jsx", "*.mjs", "*.cjs")
    )
    TYPESCRIPT = CategoryRule("typescript", markers=("tsconfig.json",), patterns=("*.ts", "*.tsx"))
    JAVA = CategoryRule(
        "java", markers=("pom.xml", "build.gradle", "build.gradle.kts"), patterns=("*.java",)
    )
    RUBY = CategoryRule("ruby", markers=("Gemfile",), patterns=("*.rb",))
    DOCKER = CategoryRule(
        "docker",
        markers=("Dockerfile", "docker-compose.yml", "docker-compose.yaml", "compose.yaml"),
        patterns=("Dockerfile*", "*.dockerfile"),
    )
    KUBERNETES = CategoryRule(
        "kubernetes",
        markers=("kustomization.yaml", "Chart.yaml"),
        patterns=("k8s/*.yaml", "k8s/*.yml", "manifests/*.yaml", "helm/*/Chart.yaml"),
    )
    TERRAFORM = CategoryRule("terraform", patterns=("*.tf", "*.tfvars"))
    ANSIBLE = CategoryRule(
        "ansible",
        markers=("ansible.cfg",),
        patterns=("playbook*.yml", "playbooks/*.yml", "roles/*/tasks/main.yml"),
    )
    GITHUB_ACTIONS = CategoryRule(
        "github-actions", patterns=(".github/workflows/*.yml", ".github/workflows/*.yaml")
    )

    @property
    def label(self) -> str:
        return self.value.label

    @property
    def directory(self) -> str:
        """Name of the mirror directory holding this category's items."""
        return self.value.label


def known_labels() -> list[str]:
    return [category.label for category in Category]


def category_directory(label: str) -> str:
    """Map a label to its mirror directory; unknown labels map to themselves."""
    for category in Category:
        if category.label == label:
            return category.directory
    return label


def detect(root: str | Path, extra: Iterable[str] = (), max_depth: int = 3) -> list[str]:
    """Return the category labels relevant to ``root``.

    Every rule is evaluated; positives are kept in table order. ``extra``
    labels are appended whether or not any rule matched. When nothing is
    found at all, every known label is returned.
    """
    root = Path(root)
    files = [PurePath(f) for f in scan_project_files(root, max_depth=max_depth)]
    log.debug("Scanned %d files under %s (depth %d)", len(files), root, max_depth)

    labels = [category.label for category in Category if category.value.matches(root, files)]
    for label in extra:
        label = label.strip().lower()
        if label and label not in labels:
            labels.append(label)

    if not labels:
        log.debug("No technologies detected, including every category")
        return known_labels()

    log.debug("Detected categories: %s", ", ".join(labels))
    return labels
