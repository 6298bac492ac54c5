"""
Copy operations exposed to the CLI.

Each operation validates its environments, builds the pipelines and runs
them in order unless ``dry_run`` is set.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from mysql_fax.config import ConfigRegistry, Role, Settings
from mysql_fax.core.commands import CommandBuilder, CommandPipeline
from mysql_fax.core.planner import IncrementalPlan, SyncPlan, SyncPlanner
from mysql_fax.core.runner import PipelineResult, run_pipeline
from mysql_fax.errors import UnknownShortcutError
from mysql_fax.utils.logger import get_logger


logger = get_logger(__name__)

Runner = Callable[[CommandPipeline, float | None], PipelineResult]


@dataclass
class OperationResult:
    """What an operation planned and, unless dry-run, ran."""

    operation: str
    source: str
    destination: str
    commands: list[CommandPipeline] = field(default_factory=list)
    results: list[PipelineResult] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    dry_run: bool = False
    start_time: float = 0.0
    end_time: float = 0.0

    @property
    def duration_seconds(self) -> float:
        if self.end_time and self.start_time:
            return self.end_time - self.start_time
        return 0.0

    def rendered(self) -> list[str]:
        return [c.redacted() for c in self.commands]


def shortcut_name(source: str, destination: str) -> str:
    return f"copy_from_{source}_to_{destination}"


def shortcuts(registry: ConfigRegistry) -> dict[str, tuple[str, str]]:
    """Named whole-copy shortcut for every (source, destination) pair."""
    return {
        shortcut_name(src, dst): (src, dst)
        for src in registry.sources()
        for dst in registry.destinations()
        if src != dst
    }


class FaxService:
    """
    Entry point for copy operations.

    Example:
        service = FaxService(settings, ConfigRegistry.load(path))
        service.copy("production", "development")
    """

    def __init__(
        self,
        settings: Settings,
        registry: ConfigRegistry,
        planner: SyncPlanner | None = None,
        runner: Runner = run_pipeline,
    ) -> None:
        self.settings = settings
        self.registry = registry
        self.planner = planner or SyncPlanner(settings, registry)
        self.builder: CommandBuilder = self.planner.builder
        self.runner = runner

    def copy(self, source: str, destination: str) -> OperationResult:
        """Whole-database copy."""
        src = self.registry.get(source, Role.SOURCE)
        dst = self.registry.get(destination, Role.DESTINATION)
        return self._execute("copy", source, destination, [self.builder.whole_copy(src, dst)])

    def copy_table(self, source: str, destination: str, table: str) -> OperationResult:
        """Whole copy of a single table."""
        src = self.registry.get(source, Role.SOURCE)
        dst = self.registry.get(destination, Role.DESTINATION)
        return self._execute(
            "copy-table",
            source,
            destination,
            [self.builder.single_table_copy(src, dst, table)],
        )

    def incremental_copy(self, source: str, destination: str) -> OperationResult:
        """Copy rows above each destination table's max id."""
        plan: IncrementalPlan = self.planner.incremental_copy_plan(source, destination)
        return self._execute(
            "incremental-copy",
            source,
            destination,
            plan.commands,
            skipped=plan.skipped,
        )

    def sync(
        self,
        source: str,
        destination: str,
        cutoff: datetime | str,
        small_table_threshold: int | None = None,
    ) -> OperationResult:
        """Time-window copy of large tables plus whole copy of the rest."""
        plan: SyncPlan = self.planner.time_based_sync_plan(
            source, destination, cutoff, small_table_threshold
        )
        return self._execute("sync", source, destination, plan.commands)

    def run_shortcut(self, name: str) -> OperationResult:
        table = shortcuts(self.registry)
        if name not in table:
            raise UnknownShortcutError(name)
        source, destination = table[name]
        return self.copy(source, destination)

    def _execute(
        self,
        operation: str,
        source: str,
        destination: str,
        commands: list[CommandPipeline],
        skipped: list[str] | None = None,
    ) -> OperationResult:
        result = OperationResult(
            operation=operation,
            source=source,
            destination=destination,
            commands=commands,
            skipped=list(skipped or []),
            dry_run=self.settings.dry_run,
        )
        result.start_time = time.time()

        if self.settings.dry_run:
            logger.info(f"Dry run: {len(commands)} commands for {operation}")
        else:
            timeout = self.settings.dump.command_timeout_seconds
            for command in commands:
                result.results.append(self.runner(command, timeout))

        result.end_time = time.time()
        return result
