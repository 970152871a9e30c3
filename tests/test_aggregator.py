"""Tests for the principles aggregator."""

import tempfile
from pathlib import Path

from principles_sync.generators.aggregator import aggregate, content_items, write_document


def _mirror(root: Path) -> Path:
    files = {
        "go/02-naming.md": "Use short names.\n\n",
        "go/01-errors.md": "Wrap errors.",
        "go/.gitkeep": "",
        "shell/01-quoting.md": "Quote everything.\n",
        "README.md": "not a category",
    }
    for rel, text in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text)
    return root


def test_items_are_concatenated_in_lexical_order():
    with tempfile.TemporaryDirectory() as tmpdir:
        mirror = _mirror(Path(tmpdir))

        document, used = aggregate(mirror, ["go"])

        assert used == ["go"]
        assert document == (
            "# Category: go\n\n"
            "Wrap errors.\n"
            "\n---\n\n"
            "Use short names.\n"
            "\n---\n\n"
        )


def test_categories_follow_the_given_order():
    with tempfile.TemporaryDirectory() as tmpdir:
        mirror = _mirror(Path(tmpdir))

        document, used = aggregate(mirror, ["shell", "go"])

        assert used == ["shell", "go"]
        assert document.index("# Category: shell") < document.index("# Category: go")


def test_unknown_categories_are_skipped():
    with tempfile.TemporaryDirectory() as tmpdir:
        mirror = _mirror(Path(tmpdir))

        document, used = aggregate(mirror, ["cobol", "shell"])

        assert used == ["shell"]
        assert "cobol" not in document


def test_aggregation_is_deterministic():
    with tempfile.TemporaryDirectory() as tmpdir:
        mirror = _mirror(Path(tmpdir))
        assert aggregate(mirror, ["go", "shell"]) == aggregate(mirror, ["go", "shell"])


def test_hidden_files_are_not_content():
    with tempfile.TemporaryDirectory() as tmpdir:
        mirror = _mirror(Path(tmpdir))
        names = [p.name for p in content_items(mirror / "go")]
        assert names == ["01-errors.md", "02-naming.md"]


def test_write_document_replaces_previous_output():
    with tempfile.TemporaryDirectory() as tmpdir:
        out = Path(tmpdir) / "out" / "active.md"
        write_document(out, "first run\n")
        write_document(out, "second run\n")

        assert out.read_text() == "second run\n"
        assert [p.name for p in out.parent.iterdir()] == ["active.md"]


def test_items_that_are_not_utf8_pass_through_unchanged():
    with tempfile.TemporaryDirectory() as tmpdir:
        mirror = Path(tmpdir) / "mirror"
        (mirror / "go").mkdir(parents=True)
        (mirror / "go" / "a.md").write_bytes(b"caf\xe9\n")
        (mirror / "go" / "b.md").write_text("naïve\n", encoding="utf-8")
        out = Path(tmpdir) / "active.md"

        document, used = aggregate(mirror, ["go"])
        write_document(out, document)

        assert used == ["go"]
        assert out.read_bytes() == (
            b"# Category: go\n\n"
            b"caf\xe9\n"
            b"\n---\n\n"
            + "naïve\n".encode("utf-8")
            + b"\n---\n\n"
        )
