"""
Dump/restore pipeline construction.

Every copy has the same shape::

    ssh user@gateway '<mysqldump ...> | gzip -9' | gzip -cd | mysql ... <db>

The remote half runs through the gateway's shell, so each word of it is
quoted with ``shlex.quote``. The local half is kept as argv lists and run
without a shell (see ``mysql_fax.core.runner``); ``render()`` joins it into
a single copy-pasteable shell line.
"""

from __future__ import annotations

import shlex
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Sequence

from mysql_fax.config import DumpOptions, Environment, SSHOptions
from mysql_fax.connectors.mysql import validate_identifier


REDACTED = "***REDACTED***"

# Consistent snapshot without table locks
SNAPSHOT_FLAGS = ("--skip-lock-tables", "--single-transaction")

# Data only, no DROP/CREATE, duplicate keys ignored
INCREMENTAL_FLAGS = ("--skip-add-drop-table", "--no-create-info", "--insert-ignore")

CUTOFF_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass
class CommandPipeline:
    """A chain of argv stages connected stdout -> stdin."""

    description: str
    stages: list[list[str]]
    masked_stages: list[list[str]] = field(default_factory=list, repr=False)

    def render(self) -> str:
        """Shell-quoted command line, credentials included."""
        return _join(self.stages)

    def redacted(self) -> str:
        """``render()`` with passwords masked; the only form that is logged."""
        return _join(self.masked_stages or self.stages)

    @property
    def stage_names(self) -> list[str]:
        return [stage[0] for stage in self.stages]

    def __str__(self) -> str:
        return self.redacted()


def _join(stages: list[list[str]]) -> str:
    return " | ".join(shlex.join(stage) for stage in stages)


def format_cutoff(cutoff: datetime | str) -> str:
    """Normalise a cutoff to ``YYYY-MM-DD HH:MM:SS``."""
    if isinstance(cutoff, str):
        try:
            cutoff = datetime.fromisoformat(cutoff.strip())
        except ValueError as e:
            raise ValueError(f"Invalid cutoff time: {cutoff!r}") from e
    return cutoff.strftime(CUTOFF_FORMAT)


class CommandBuilder:
    """
    Builds copy pipelines for a (source, destination) pair.

    Example:
        builder = CommandBuilder(settings.dump, settings.ssh)
        pipeline = builder.whole_copy(src, dst)
        print(pipeline.redacted())
    """

    def __init__(
        self,
        dump: DumpOptions | None = None,
        ssh: SSHOptions | None = None,
    ) -> None:
        self.dump = dump or DumpOptions()
        self.ssh = ssh or SSHOptions()

    def whole_copy(self, src: Environment, dst: Environment) -> CommandPipeline:
        """Dump the entire source database into the destination."""
        return self._pipeline(f"copy {src.name} -> {dst.name}", src, dst)

    def single_table_copy(
        self,
        src: Environment,
        dst: Environment,
        table: str,
    ) -> CommandPipeline:
        """Same as ``whole_copy`` restricted to one table."""
        validate_identifier(table)
        return self._pipeline(
            f"copy table {table} {src.name} -> {dst.name}",
            src,
            dst,
            tables=[table],
        )

    def whole_copy_tables(
        self,
        src: Environment,
        dst: Environment,
        tables: Sequence[str],
    ) -> CommandPipeline:
        """Full copy of several named tables."""
        for table in tables:
            validate_identifier(table)
        return self._pipeline(
            f"copy {len(tables)} tables {src.name} -> {dst.name}",
            src,
            dst,
            tables=list(tables),
        )

    def incremental(
        self,
        src: Environment,
        dst: Environment,
        table: str,
        after_id: int,
    ) -> CommandPipeline:
        """Copy rows of ``table`` whose primary key exceeds ``after_id``."""
        validate_identifier(table)
        pk = validate_identifier(self.dump.primary_key, "column")
        return self._pipeline(
            f"incremental {table} after id {after_id} {src.name} -> {dst.name}",
            src,
            dst,
            tables=[table],
            incremental=True,
            where=f"{pk} > {int(after_id)}",
        )

    def time_window(
        self,
        src: Environment,
        dst: Environment,
        tables: Sequence[str],
        cutoff: datetime | str,
    ) -> CommandPipeline:
        """Copy rows created after ``cutoff`` across several tables."""
        for table in tables:
            validate_identifier(table)
        column = validate_identifier(self.dump.timestamp_column, "column")
        stamp = format_cutoff(cutoff)
        return self._pipeline(
            f"rows created after {stamp} in {len(tables)} tables {src.name} -> {dst.name}",
            src,
            dst,
            tables=list(tables),
            incremental=True,
            where=f"{column} > '{stamp}'",
        )

    def _dump_args(
        self,
        src: Environment,
        tables: Sequence[str] = (),
        incremental: bool = False,
        where: str | None = None,
        masked: bool = False,
    ) -> list[str]:
        password = REDACTED if masked else src.password_value
        args = [self.dump.mysqldump_binary, *SNAPSHOT_FLAGS]
        args += ["-h", src.host or "localhost"]
        if src.port:
            args += ["-P", str(src.port)]
        args += ["-u", src.username or "", f"--password={password}"]
        if incremental:
            args += list(INCREMENTAL_FLAGS)
        if where:
            args += ["--where", where]
        args.append(src.database or "")
        args += list(tables)
        return args

    def _restore_args(self, dst: Environment, masked: bool = False) -> list[str]:
        password = REDACTED if masked else dst.password_value
        args = [self.dump.mysql_binary]
        if dst.host:
            args += ["-h", dst.host]
            if dst.port:
                args += ["-P", str(dst.port)]
        elif dst.socket:
            args += ["-S", dst.socket]
        args += ["-u", dst.username or "", f"--password={password}"]
        args.append(dst.database or "")
        return args

    def _stages(
        self,
        src: Environment,
        dst: Environment,
        masked: bool,
        **dump_kwargs: Any,
    ) -> list[list[str]]:
        gzip = self.dump.gzip_binary
        dump_args = self._dump_args(src, masked=masked, **dump_kwargs)
        compress = [gzip, f"-{self.dump.compression_level}"]
        remote = f"{shlex.join(dump_args)} | {shlex.join(compress)}"
        return [
            [self.ssh.binary, src.gateway, remote],
            [gzip, "-cd"],
            self._restore_args(dst, masked=masked),
        ]

    def _pipeline(
        self,
        description: str,
        src: Environment,
        dst: Environment,
        **dump_kwargs: Any,
    ) -> CommandPipeline:
        return CommandPipeline(
            description=description,
            stages=self._stages(src, dst, False, **dump_kwargs),
            masked_stages=self._stages(src, dst, True, **dump_kwargs),
        )
