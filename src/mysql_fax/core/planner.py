"""
Sync Planner - decides what to copy.

Two planning strategies:

- **Incremental by id**: compare MAX(id) per table between destination and
  source; for every table where the source is ahead, copy only the rows
  above the destination's current maximum.
- **Time based**: tables that have a creation timestamp and are large
  enough get only rows created after a cutoff; every other table is copied
  whole.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from mysql_fax.config import ConfigRegistry, Role, Settings
from mysql_fax.connectors.mysql import MySQLConnector
from mysql_fax.connectors.ssh import open_tunnel
from mysql_fax.core.commands import CommandBuilder, CommandPipeline, format_cutoff
from mysql_fax.core.inspector import ConnectorFactory, SchemaInspector, TunnelFactory
from mysql_fax.utils.logger import get_logger


logger = get_logger(__name__)


@dataclass
class TableCopy:
    """One incremental table copy."""

    table: str
    source_id: int
    destination_id: int
    command: CommandPipeline

    @property
    def new_rows(self) -> int:
        """Upper bound on rows to transfer (ids may have gaps)."""
        return self.source_id - self.destination_id


@dataclass
class IncrementalPlan:
    """Result of ``SyncPlanner.incremental_copy_plan``."""

    source: str
    destination: str
    copies: list[TableCopy] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def commands(self) -> list[CommandPipeline]:
        return [c.command for c in self.copies]


@dataclass
class SyncPlan:
    """Result of ``SyncPlanner.time_based_sync_plan``."""

    source: str
    destination: str
    cutoff: str
    threshold: int
    incremental_tables: list[str] = field(default_factory=list)
    whole_tables: list[str] = field(default_factory=list)
    incremental_command: CommandPipeline | None = None
    whole_command: CommandPipeline | None = None

    @property
    def commands(self) -> list[CommandPipeline]:
        """Commands to run, incremental first; empty partitions emit none."""
        return [c for c in (self.incremental_command, self.whole_command) if c is not None]


class SyncPlanner:
    """
    Builds copy plans between a source and a destination.

    Example:
        planner = SyncPlanner(settings, ConfigRegistry.load(path))
        plan = planner.incremental_copy_plan("production", "development")
        for command in plan.commands:
            print(command.redacted())
    """

    def __init__(
        self,
        settings: Settings,
        registry: ConfigRegistry,
        builder: CommandBuilder | None = None,
        tunnel_factory: TunnelFactory = open_tunnel,
        connector_factory: ConnectorFactory = MySQLConnector.for_environment,
    ) -> None:
        self.settings = settings
        self.registry = registry
        self.builder = builder or CommandBuilder(settings.dump, settings.ssh)
        self.tunnel_factory = tunnel_factory
        self.connector_factory = connector_factory

    def new_inspector(self) -> SchemaInspector:
        return SchemaInspector(
            self.settings,
            self.registry,
            tunnel_factory=self.tunnel_factory,
            connector_factory=self.connector_factory,
        )

    def max_ids(self, connector: MySQLConnector) -> dict[str, int | None]:
        """MAX(primary key) of every table except the excluded bookkeeping ones."""
        excluded = set(self.settings.dump.excluded_tables)
        tables = [t for t in connector.get_tables() if t not in excluded]
        return connector.get_max_ids(tables, self.settings.dump.primary_key)

    def incremental_copy_plan(self, source: str, destination: str) -> IncrementalPlan:
        """Plan id-based incremental copies for tables where the source is ahead."""
        src = self.registry.get(source, Role.SOURCE)
        dst = self.registry.get(destination, Role.DESTINATION)

        dst_connector = self.connector_factory(
            dst, connect_timeout=self.settings.ssh.connect_timeout_seconds
        )
        try:
            dst_ids = self.max_ids(dst_connector)
        finally:
            dst_connector.close()

        inspector = self.new_inspector()
        with inspector.source_tunnel(src):
            src_connector = inspector.source_connector(src)
            try:
                src_ids = self.max_ids(src_connector)
            finally:
                src_connector.close()

        plan = IncrementalPlan(source=source, destination=destination)
        for table, dst_id in dst_ids.items():
            src_id = src_ids.get(table)
            if dst_id is not None and src_id is not None and src_id > dst_id:
                plan.copies.append(
                    TableCopy(
                        table=table,
                        source_id=src_id,
                        destination_id=dst_id,
                        command=self.builder.incremental(src, dst, table, dst_id),
                    )
                )
            else:
                plan.skipped.append(table)

        logger.info(
            f"Incremental plan {source} -> {destination}: "
            f"{len(plan.copies)} tables ahead, {len(plan.skipped)} skipped"
        )
        return plan

    def time_based_sync_plan(
        self,
        source: str,
        destination: str,
        cutoff: datetime | str,
        small_table_threshold: int | None = None,
    ) -> SyncPlan:
        """
        Split source tables into incremental and whole copies.

        A table is incremental iff it has the timestamp column and its max
        id exceeds ``small_table_threshold``. A partition with no tables
        gets no command; an empty table list would dump the whole database.
        """
        src = self.registry.get(source, Role.SOURCE)
        dst = self.registry.get(destination, Role.DESTINATION)
        threshold = (
            self.settings.dump.small_table_threshold
            if small_table_threshold is None
            else small_table_threshold
        )
        stamp = format_cutoff(cutoff)
        column = self.settings.dump.timestamp_column

        tables = self.new_inspector().inspect(source)

        plan = SyncPlan(source=source, destination=destination, cutoff=stamp, threshold=threshold)
        for name, info in tables.items():
            count = info.max_id or 0
            if info.has_column(column) and count > threshold:
                plan.incremental_tables.append(name)
            else:
                plan.whole_tables.append(name)

        if plan.incremental_tables:
            plan.incremental_command = self.builder.time_window(
                src, dst, plan.incremental_tables, stamp
            )
        if plan.whole_tables:
            plan.whole_command = self.builder.whole_copy_tables(src, dst, plan.whole_tables)

        logger.info(
            f"Sync plan {source} -> {destination} since {stamp}: "
            f"{len(plan.incremental_tables)} incremental, {len(plan.whole_tables)} whole"
        )
        return plan
