"""Top-level sequencing of a subset replication run.

The run holds a single target session in autocommit mode for its whole life,
so a failing table never rolls back tables copied before it. Steps, in order:

    drop schemas (optional) -> capture SCN -> pre-run hooks -> metadata import
    -> suspend integrity -> copy tables -> post-run hooks -> restore integrity

A ``FatalRunError`` from any step marks the report ``FAILED``, attaches it to
the exception as ``error.report`` and re-raises. Table copy and integrity
restore failures are only reported.
"""

from contextlib import AbstractContextManager
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from subsetflow.core.copy_executor import TableCopyExecutor
from subsetflow.core.hooks import POST_RUN, PRE_RUN, HookRunner
from subsetflow.core.integrity import IntegritySuspensionManager
from subsetflow.core.models import (
    LIVE_SOURCE_PARAM,
    SCN_PARAM,
    SOURCE_PARAM,
    ConnectionProfile,
    RunReport,
    RunSpec,
    RunState,
)
from subsetflow.core.provisioner import JobFactory, SchemaProvisioner
from subsetflow.core.snapshot import SnapshotCoordinator
from subsetflow.exceptions import (
    ConstraintSuspendError,
    FatalRunError,
    StatementError,
    TargetUnavailableError,
)
from subsetflow.logging import get_logger

logger = get_logger(__name__)

SessionFactory = Callable[[ConnectionProfile], AbstractContextManager]
StateListener = Callable[[RunState, RunReport], None]


def _default_session_factory() -> SessionFactory:
    from subsetflow.connectors.oracle.session import OracleSession

    return OracleSession.connect


class RunCoordinator:
    """Runs one ``RunSpec`` exactly once."""

    def __init__(
        self,
        spec: RunSpec,
        session_factory: Optional[SessionFactory] = None,
        job_factory: Optional[JobFactory] = None,
        listener: Optional[StateListener] = None,
        snapshot: Optional[SnapshotCoordinator] = None,
        provisioner: Optional[SchemaProvisioner] = None,
        integrity: Optional[IntegritySuspensionManager] = None,
        copier: Optional[TableCopyExecutor] = None,
        hooks: Optional[HookRunner] = None,
    ):
        self.spec = spec
        self.session_factory = session_factory or _default_session_factory()
        self.listener = listener
        self.snapshot = snapshot or SnapshotCoordinator()
        self.provisioner = provisioner or SchemaProvisioner(job_factory)
        self.integrity = integrity or IntegritySuspensionManager()
        self.copier = copier or TableCopyExecutor()
        self.hooks = hooks or HookRunner()
        self.report = RunReport()

    def run(self) -> RunReport:
        report = self.report
        report.started_at = datetime.utcnow()
        logger.info(
            f"Starting subset run: {len(self.spec.schemas)} schemas, "
            f"{len(self.spec.tables)} tables from {self.spec.source}"
        )
        try:
            try:
                with self.session_factory(self.spec.target) as session:
                    session.enable_autocommit()
                    self._execute(session, report)
            except StatementError as e:
                raise TargetUnavailableError(self.spec.target.display_dsn, e) from e
        except FatalRunError as e:
            report.state = RunState.FAILED
            report.error = e
            e.context["last_completed_state"] = report.last_completed.value
            e.report = report
            logger.error(
                f"Run aborted after {report.last_completed.value}: {e.message}"
            )
            self._notify(RunState.FAILED)
            raise
        finally:
            report.finished_at = datetime.utcnow()

        logger.info(
            f"Run finished in {report.duration_seconds:.1f}s: {report.total_rows} rows, "
            f"{len(report.failed_tables)} failed tables, "
            f"{len(report.restore_failures)} restore failures"
        )
        return report

    def build_parameters(self) -> Dict[str, str]:
        """Run parameters: configured values plus the source link names."""
        link = self.spec.source.name
        params = {SOURCE_PARAM: link, LIVE_SOURCE_PARAM: link}
        params.update(self.spec.parameters)
        return params

    def _execute(self, session: Any, report: RunReport) -> None:
        spec = self.spec
        params = self.build_parameters()

        if spec.drop_schemas:
            self.provisioner.drop_schemas(session, spec.schemas)
            self._advance(RunState.SCHEMAS_DROPPED)

        token = self.snapshot.capture(session, spec.source)
        report.token = token
        params[SCN_PARAM] = str(token.scn)
        self._advance(RunState.SNAPSHOT_CAPTURED)

        self.hooks.run_all(session, spec.pre_hooks, token, params, PRE_RUN)
        self._advance(RunState.PRE_HOOKS_RUN)

        self.provisioner.import_metadata(session, spec)
        self._advance(RunState.METADATA_IMPORTED)

        try:
            suspension = self.integrity.disable(session, spec.table_refs)
        except ConstraintSuspendError as e:
            if e.suspension is not None:
                report.suspension = e.suspension
            raise
        report.suspension = suspension
        self._advance(RunState.CONSTRAINTS_SUSPENDED)

        report.copy_results = self.copier.copy_all(
            session, spec.tables, spec.source.name, token, params
        )
        self._advance(RunState.DATA_COPIED)

        self.hooks.run_all(session, spec.post_hooks, token, params, POST_RUN)
        self._advance(RunState.POST_HOOKS_RUN)

        report.restore_failures = self.integrity.restore(session, suspension)
        self._advance(RunState.CONSTRAINTS_RESTORED)

        self._advance(RunState.DONE)

    def _advance(self, state: RunState) -> None:
        self.report.advance(state)
        logger.debug(f"Run state: {state.value}")
        self._notify(state)

    def _notify(self, state: RunState) -> None:
        if self.listener is not None:
            self.listener(state, self.report)
