"""The sync pipeline — lock, mirror, detect, aggregate, merge.

Stages run strictly in order. Only a busy lock (yield) and a cold-start
clone failure stop the run early; a failed settings merge never affects
the document already written.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from principles_sync.analyzers.detector import detect
from principles_sync.config import SyncConfig
from principles_sync.generators.aggregator import aggregate, write_document
from principles_sync.log import get_logger
from principles_sync.models.results import Busy, PipelineResult
from principles_sync.sync.lock import RunLock
from principles_sync.sync.mirror import MirrorManager, make_endpoint
from principles_sync.sync.settings import DEFAULT_BACKENDS, JsonBackend, SettingsMerger

log = get_logger(__name__)


@dataclass
class Pipeline:
    """One configured run of the sync pipeline."""

    config: SyncConfig
    backends: list[JsonBackend] = field(default_factory=lambda: list(DEFAULT_BACKENDS))
    install_signal_handlers: bool = True

    def run(self) -> PipelineResult:
        """Run every stage under the run lock.

        Raises:
            MirrorUnavailableError: First run and no endpoint reachable.
        """
        lock = RunLock(self.config.lock_file)
        handle = lock.acquire()
        if isinstance(handle, Busy):
            log.info("Another run holds %s, skipping", handle.lock_path)
            return PipelineResult(busy=handle)

        if self.install_signal_handlers:
            handle.release_on_exit()
        with handle:
            return self._run_stages()

    def _run_stages(self) -> PipelineResult:
        config = self.config
        result = PipelineResult()

        manager = MirrorManager(
            mirror_path=config.mirror_dir,
            endpoints=[make_endpoint(url, config.branch) for url in config.endpoints],
        )
        result.sync = manager.sync()
        log.debug("Mirror %s (%s)", result.sync.mirror_path, result.sync.status.value)

        detected = detect(config.root, extra=config.categories, max_depth=config.scan_depth)
        document, used = aggregate(config.mirror_dir, detected)
        result.categories = used
        result.output_path = write_document(config.output, document)
        log.info("Wrote %d categories to %s", len(used), result.output_path)

        merger = SettingsMerger(config.settings_file, backends=self.backends)
        result.merge = merger.merge_from(
            config.permission_partial, enabled=not config.skip_settings
        )
        return result
