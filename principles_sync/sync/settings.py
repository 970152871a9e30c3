"""Settings merge — union remote permission lists into the user's settings.

The merge is additive only: every list present in the remote partial is
unioned with the local list (first appearance wins, duplicates dropped),
nested mappings are merged key by key, and everything else in the local
document is left alone. Running it twice gives the same file as running
it once, and entries the user added by hand are never removed.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Mapping, Protocol, Sequence

from principles_sync.log import get_logger
from principles_sync.models.results import MergeResult, MergeStatus

log = get_logger(__name__)


class JsonBackend(Protocol):
    """Something that can read and write the settings format."""

    name: str

    def available(self) -> bool: ...

    def loads(self, text: str) -> Any: ...

    def dumps(self, data: Any) -> str: ...


class StdlibJsonBackend:
    name = "json"

    def available(self) -> bool:
        return True

    def loads(self, text: str) -> Any:
        return json.loads(text)

    def dumps(self, data: Any) -> str:
        return json.dumps(data, indent=2, ensure_ascii=False) + "\n"


DEFAULT_BACKENDS: tuple[JsonBackend, ...] = (StdlibJsonBackend(),)


def union_lists(local: Sequence, remote: Sequence) -> list:
    """Union two lists keeping the order of first appearance."""
    seen: set[str] = set()
    result = []
    for item in (*local, *remote):
        key = _identity(item)
        if key in seen:
            continue
        seen.add(key)
        result.append(item)
    return result


def merge_documents(
    local: Mapping[str, Any],
    partial: Mapping[str, Any],
    _path: tuple[str, ...] = (),
) -> tuple[dict[str, Any], dict[str, list]]:
    """Merge ``partial`` into ``local`` without removing anything.

    Only lists (and the mappings that contain them) are taken from the
    partial. When the local value has a different type, the local value
    is kept.

    Returns:
        ``(merged, added)`` where ``added`` maps dotted field paths to the
        entries that were new.
    """
    merged = dict(local)
    added: dict[str, list] = {}

    for key, remote_value in partial.items():
        path = (*_path, key)
        local_value = merged.get(key)

        if isinstance(remote_value, Mapping):
            if key in merged and not isinstance(local_value, Mapping):
                log.warning("Settings field %s is not an object, leaving it as is", ".".join(path))
                continue
            merged[key], nested = merge_documents(local_value or {}, remote_value, path)
            added.update(nested)
        elif isinstance(remote_value, list):
            if key in merged and not isinstance(local_value, list):
                log.warning("Settings field %s is not a list, leaving it as is", ".".join(path))
                continue
            current = local_value or []
            existing = {_identity(item) for item in current}
            union = union_lists(current, remote_value)
            new = [item for item in union if _identity(item) not in existing]
            merged[key] = union
            if new:
                added[".".join(path)] = new

    return merged, added


class SettingsMerger:
    """Applies a remote permission partial to a local settings file."""

    def __init__(
        self,
        settings_path: str | Path,
        backends: Sequence[JsonBackend] = DEFAULT_BACKENDS,
    ):
        self.settings_path = Path(settings_path)
        self.backends = list(backends)

    def backend(self) -> JsonBackend | None:
        """Return the first usable backend, if any."""
        for backend in self.backends:
            if backend.available():
                return backend
        return None

    def merge_from(self, partial_path: str | Path, *, enabled: bool = True) -> MergeResult:
        """Read the partial from ``partial_path`` and merge it."""
        if not enabled:
            log.debug("Settings sync disabled")
            return MergeResult(status=MergeStatus.DISABLED)

        backend = self.backend()
        if backend is None:
            return self._no_backend()

        partial_path = Path(partial_path)
        if not partial_path.is_file():
            log.debug("No permission partial at %s", partial_path)
            return MergeResult(status=MergeStatus.NO_PARTIAL, settings_path=self.settings_path)

        try:
            partial = backend.loads(partial_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            return self._invalid_remote(partial_path, str(exc))
        if not isinstance(partial, dict):
            return self._invalid_remote(partial_path, "root is not an object")

        return self._merge(partial, backend)

    def merge(self, partial: Mapping[str, Any], *, enabled: bool = True) -> MergeResult:
        """Merge an already-loaded partial."""
        if not enabled:
            log.debug("Settings sync disabled")
            return MergeResult(status=MergeStatus.DISABLED)

        backend = self.backend()
        if backend is None:
            return self._no_backend()
        if not isinstance(partial, Mapping):
            return self._invalid_remote(None, "root is not an object")
        return self._merge(partial, backend)

    def _merge(self, partial: Mapping[str, Any], backend: JsonBackend) -> MergeResult:
        path = self.settings_path
        text = ""
        if path.is_file():
            try:
                text = path.read_text(encoding="utf-8")
            except (OSError, ValueError) as exc:
                return self._invalid_local(str(exc))

        if text.strip():
            try:
                local = backend.loads(text)
            except ValueError as exc:
                return self._invalid_local(str(exc))
            if not isinstance(local, dict):
                return self._invalid_local("root is not an object")
        else:
            local = {}

        merged, added = merge_documents(local, partial)
        if merged == local and text.strip():
            log.debug("Settings at %s already up to date", path)
            return MergeResult(status=MergeStatus.UNCHANGED, settings_path=path)

        try:
            _atomic_write(path, backend.dumps(merged))
        except OSError as exc:
            log.error("Could not write settings file %s (%s)", path, exc)
            return MergeResult(status=MergeStatus.WRITE_FAILED, settings_path=path, message=str(exc))
        for field_path, entries in added.items():
            log.info("Added %d entries to %s", len(entries), field_path)
        return MergeResult(status=MergeStatus.MERGED, settings_path=path, added=added)

    def _no_backend(self) -> MergeResult:
        log.warning("No JSON backend available, skipping settings sync")
        return MergeResult(
            status=MergeStatus.NO_BACKEND,
            settings_path=self.settings_path,
            message="no JSON backend available",
        )

    def _invalid_local(self, reason: str) -> MergeResult:
        log.error("Settings file %s is not valid JSON (%s), leaving it untouched", self.settings_path, reason)
        return MergeResult(
            status=MergeStatus.INVALID_LOCAL,
            settings_path=self.settings_path,
            message=reason,
        )

    def _invalid_remote(self, partial_path: Path | None, reason: str) -> MergeResult:
        source = partial_path or "remote permission partial"
        log.error("Permission partial %s is not valid JSON (%s), skipping settings sync", source, reason)
        return MergeResult(
            status=MergeStatus.INVALID_REMOTE,
            settings_path=self.settings_path,
            message=reason,
        )


def _identity(item: Any) -> str:
    return json.dumps(item, sort_keys=True)


def _atomic_write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        if path.exists():
            os.chmod(tmp, path.stat().st_mode & 0o777)
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise
