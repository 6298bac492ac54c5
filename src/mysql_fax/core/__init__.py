"""Planning and execution components for MySQL Fax."""

from mysql_fax.core.commands import CommandBuilder, CommandPipeline
from mysql_fax.core.inspector import SchemaInspector
from mysql_fax.core.operations import FaxService, shortcuts
from mysql_fax.core.planner import IncrementalPlan, SyncPlan, SyncPlanner
from mysql_fax.core.runner import run_pipeline

__all__ = [
    "CommandBuilder",
    "CommandPipeline",
    "SchemaInspector",
    "FaxService",
    "shortcuts",
    "IncrementalPlan",
    "SyncPlan",
    "SyncPlanner",
    "run_pipeline",
]
