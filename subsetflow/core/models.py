"""Data model for a subset replication run.

A ``RunSpec`` is assembled once (by ``SubsetPlanBuilder`` or a YAML profile)
and never changes while a run executes. Everything else here is produced by
the run itself and reported back through ``RunReport``.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from subsetflow.exceptions import (
    ConstraintRestoreError,
    FatalRunError,
    TableCopyError,
)

# Reserved template tokens
SNAPSHOT_ALIAS = "@:sourcedb"
SOURCE_PARAM = "sourcedb"
LIVE_SOURCE_PARAM = "sourcedb_current"
SCN_PARAM = "scn"

DEFAULT_EXCLUDE_PATHS = ("JAVA_CLASS", "JAVA_RESOURCE", "JAVA_SOURCE", "STATISTICS")


@dataclass(frozen=True)
class ConnectionProfile:
    """Target connection descriptor."""

    user: str
    password: str = field(default="", repr=False)
    dsn: Optional[str] = None
    host: Optional[str] = None
    port: int = 1521
    service_name: Optional[str] = None

    def __post_init__(self):
        if not self.dsn and not (self.host and self.service_name):
            raise ValueError(
                "ConnectionProfile: provide either 'dsn' or both 'host' and 'service_name'"
            )

    @property
    def display_dsn(self) -> str:
        return self.dsn or f"{self.host}:{self.port}/{self.service_name}"


@dataclass(frozen=True)
class SourceLink:
    """The database link on the target that reaches the source database."""

    name: str

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True, order=True)
class TableRef:
    schema: str
    table: str

    @classmethod
    def of(cls, schema: str, table: str) -> "TableRef":
        return cls(schema.strip().upper(), table.strip().upper())

    @property
    def qualified(self) -> str:
        from subsetflow.connectors.oracle.utils import quote_identifier

        return f"{quote_identifier(self.schema)}.{quote_identifier(self.table)}"

    def __str__(self) -> str:
        return f"{self.schema}.{self.table}"


@dataclass(frozen=True)
class TableCopyEntry:
    """One table to copy, with an optional filter predicate template."""

    ref: TableRef
    filter_template: Optional[str] = None

    @property
    def schema(self) -> str:
        return self.ref.schema

    @property
    def table(self) -> str:
        return self.ref.table


@dataclass(frozen=True)
class TablespaceRemap:
    source: str
    target: str


@dataclass(frozen=True)
class ImportJobOptions:
    """Settings for the metadata-only import job."""

    version: str = "COMPATIBLE"
    exclude_paths: Tuple[str, ...] = DEFAULT_EXCLUDE_PATHS
    create_users: bool = True
    wait_timeout: Optional[float] = None
    poll_interval: float = 30.0


@dataclass(frozen=True)
class RunSpec:
    """The declarative plan for one execution."""

    target: ConnectionProfile
    source: SourceLink
    schemas: Tuple[str, ...]
    tables: Tuple[TableCopyEntry, ...]
    tablespace_remaps: Tuple[TablespaceRemap, ...] = ()
    pre_hooks: Tuple[str, ...] = ()
    post_hooks: Tuple[str, ...] = ()
    parameters: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    drop_schemas: bool = False
    job_options: ImportJobOptions = field(default_factory=ImportJobOptions)

    @property
    def table_refs(self) -> List[TableRef]:
        return [entry.ref for entry in self.tables]


@dataclass(frozen=True)
class ConsistencyToken:
    """System change number captured once per run on the source."""

    scn: int
    captured_at: datetime = field(default_factory=datetime.utcnow, compare=False)

    @property
    def qualifier(self) -> str:
        return f"as of scn {self.scn}"

    def __str__(self) -> str:
        return str(self.scn)


@dataclass(frozen=True)
class SuspendedConstraint:
    owner: str
    table: str
    name: str

    def __str__(self) -> str:
        return f"constraint {self.name} on {self.owner}.{self.table}"


@dataclass(frozen=True)
class SuspendedTrigger:
    owner: str
    name: str
    table_owner: str = ""
    table: str = ""

    def __str__(self) -> str:
        return f"trigger {self.owner}.{self.name}"


@dataclass
class Suspension:
    """Integrity objects disabled by this run, in the order they were disabled."""

    constraints: List[SuspendedConstraint] = field(default_factory=list)
    triggers: List[SuspendedTrigger] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.constraints) + len(self.triggers)


@dataclass(frozen=True)
class CopyResult:
    """Outcome of copying one table."""

    ref: TableRef
    status: str
    statement: str
    rows: Optional[int] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    duration_ms: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.status == "SUCCESS"

    def to_error(self) -> TableCopyError:
        return TableCopyError(
            str(self.ref), self.statement, self.error_code, self.error_message or ""
        )


@dataclass(frozen=True)
class RestoreFailure:
    """A constraint or trigger that could not be re-enabled."""

    kind: str
    name: str
    error_code: Optional[str]
    error_message: str

    def to_error(self) -> ConstraintRestoreError:
        return ConstraintRestoreError(self.name, self.error_code, self.error_message)


class RunState(str, Enum):
    INIT = "INIT"
    SCHEMAS_DROPPED = "SCHEMAS_DROPPED"
    SNAPSHOT_CAPTURED = "SNAPSHOT_CAPTURED"
    PRE_HOOKS_RUN = "PRE_HOOKS_RUN"
    METADATA_IMPORTED = "METADATA_IMPORTED"
    CONSTRAINTS_SUSPENDED = "CONSTRAINTS_SUSPENDED"
    DATA_COPIED = "DATA_COPIED"
    POST_HOOKS_RUN = "POST_HOOKS_RUN"
    CONSTRAINTS_RESTORED = "CONSTRAINTS_RESTORED"
    DONE = "DONE"
    FAILED = "FAILED"


@dataclass
class RunReport:
    """Everything a caller needs to know about one run."""

    state: RunState = RunState.INIT
    last_completed: RunState = RunState.INIT
    token: Optional[ConsistencyToken] = None
    copy_results: List[CopyResult] = field(default_factory=list)
    suspension: Suspension = field(default_factory=Suspension)
    restore_failures: List[RestoreFailure] = field(default_factory=list)
    error: Optional[FatalRunError] = None
    started_at: datetime = field(default_factory=datetime.utcnow)
    finished_at: Optional[datetime] = None

    def advance(self, state: RunState) -> None:
        self.state = state
        self.last_completed = state

    @property
    def succeeded(self) -> bool:
        return self.state == RunState.DONE and self.error is None

    @property
    def failed_tables(self) -> List[CopyResult]:
        return [result for result in self.copy_results if not result.succeeded]

    @property
    def has_recoverable_failures(self) -> bool:
        return bool(self.failed_tables or self.restore_failures)

    @property
    def total_rows(self) -> int:
        return sum(result.rows or 0 for result in self.copy_results)

    @property
    def duration_seconds(self) -> float:
        end = self.finished_at or datetime.utcnow()
        return (end - self.started_at).total_seconds()

    def diagnostics(self) -> List[Exception]:
        """Recoverable failures as exception objects, tables first."""
        errors: List[Exception] = [result.to_error() for result in self.failed_tables]
        errors.extend(failure.to_error() for failure in self.restore_failures)
        return errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "last_completed": self.last_completed.value,
            "scn": self.token.scn if self.token else None,
            "tables": [
                {
                    "table": str(result.ref),
                    "status": result.status,
                    "rows": result.rows,
                    "error_code": result.error_code,
                    "error_message": result.error_message,
                }
                for result in self.copy_results
            ],
            "suspended_constraints": len(self.suspension.constraints),
            "suspended_triggers": len(self.suspension.triggers),
            "restore_failures": [
                {"kind": f.kind, "name": f.name, "error_code": f.error_code}
                for f in self.restore_failures
            ],
            "error": self.error.to_dict() if self.error else None,
            "duration_seconds": round(self.duration_seconds, 3),
        }
