"""ChangeLedger: reversible record of every repair batch.

Before a batch touches a file the ledger snapshots its content; non-file
effects (dependency upgrades) register a revert command. Change sets are
persisted as JSON when a store directory is configured, so a rollback can
happen in a later process.
"""

from __future__ import annotations

import json
from collections import OrderedDict
from pathlib import Path

from warden.integrations.commands import CommandRunner
from warden.models import ChangeSet, ChangeStatus, RollbackResult, _utc_now
from warden.utils.logging import get_logger

log = get_logger(__name__)


class ChangeLedger:
    """Bounded map of change sets by id."""

    def __init__(
        self,
        runner: CommandRunner,
        *,
        project_root: Path,
        store_dir: Path | None = None,
        maxlen: int = 100,
    ) -> None:
        self._runner = runner
        self._root = project_root
        self._store_dir = store_dir
        self._maxlen = maxlen
        self._changes: OrderedDict[str, ChangeSet] = OrderedDict()

    def open(self, description: str, *, change_id: str | None = None) -> ChangeSet:
        """Open a change set, or return the applied one already keyed by ``change_id``.

        Reopening keeps the first snapshots, so retries of one action still
        roll back to the content before the first attempt.
        """
        if change_id is not None:
            existing = self._changes.get(change_id)
            if existing is not None and existing.status == ChangeStatus.APPLIED:
                log.info("change_reopened", change_id=change_id)
                return existing
            change = ChangeSet(change_id=change_id, description=description)
        else:
            change = ChangeSet(description=description)
        self._changes[change.change_id] = change
        while len(self._changes) > self._maxlen:
            self._changes.popitem(last=False)
        self._persist(change)
        log.info("change_opened", change_id=change.change_id, description=description)
        return change

    def resolve(self, file: str) -> Path:
        path = Path(file)
        return path if path.is_absolute() else self._root / path

    def snapshot(self, change: ChangeSet, file: str) -> None:
        """Record the current content of ``file`` unless already recorded."""
        key = str(self.resolve(file))
        if key in change.files:
            return
        path = Path(key)
        try:
            change.files[key] = path.read_text(encoding="utf-8") if path.exists() else None
        except (OSError, UnicodeDecodeError) as exc:
            log.warning("change_snapshot_failed", path=key, error=str(exc))
            return
        self._persist(change)

    def add_revert_command(self, change: ChangeSet, command: str) -> None:
        if command in change.revert_commands:
            return
        change.revert_commands.append(command)
        self._persist(change)

    def get(self, change_id: str) -> ChangeSet | None:
        change = self._changes.get(change_id)
        if change is None:
            change = self._load(change_id)
            if change is not None:
                self._changes[change_id] = change
        return change

    async def rollback(self, change_id: str) -> RollbackResult | None:
        """Revert a change set. None for an unknown id.

        Reverting twice is a no-op reported as ``already_reverted``.
        """
        change = self.get(change_id)
        if change is None:
            return None
        if change.status == ChangeStatus.REVERTED:
            log.info("change_already_reverted", change_id=change_id)
            return RollbackResult(change_id=change_id, already_reverted=True)

        restored: list[str] = []
        for file, content in change.files.items():
            path = Path(file)
            try:
                if content is None:
                    path.unlink(missing_ok=True)
                else:
                    path.write_text(content, encoding="utf-8")
                restored.append(file)
            except OSError as exc:
                log.error("change_restore_failed", change_id=change_id, path=file, error=str(exc))

        failed: list[str] = []
        for command in reversed(change.revert_commands):
            result = await self._runner.run(command, cwd=self._root)
            if not result.success:
                failed.append(command)

        complete = len(restored) == len(change.files) and not failed
        if complete:
            change.status = ChangeStatus.REVERTED
            change.reverted_at = _utc_now()
            self._persist(change)
        log.info(
            "change_rolled_back",
            change_id=change_id,
            restored=len(restored),
            failed_commands=len(failed),
        )
        return RollbackResult(
            change_id=change_id,
            complete=complete,
            restored_files=restored,
            failed_commands=failed,
        )

    def _path_for(self, change_id: str) -> Path | None:
        if self._store_dir is None or not change_id.isalnum():
            return None
        return self._store_dir / f"{change_id}.json"

    def _persist(self, change: ChangeSet) -> None:
        path = self._path_for(change.change_id)
        if path is None:
            return
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(change.model_dump_json(), encoding="utf-8")
        except OSError as exc:
            log.warning("change_persist_failed", change_id=change.change_id, error=str(exc))

    def _load(self, change_id: str) -> ChangeSet | None:
        path = self._path_for(change_id)
        if path is None or not path.exists():
            return None
        try:
            return ChangeSet.model_validate(json.loads(path.read_text(encoding="utf-8")))
        except (OSError, ValueError) as exc:
            log.warning("change_load_failed", change_id=change_id, error=str(exc))
            return None
