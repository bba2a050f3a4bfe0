"""Suspension and restoration of referential integrity on the target.

``disable`` records each foreign key and trigger it turns off; ``restore``
replays exactly that record. Target state is never queried again at restore
time, so objects this run did not disable are never touched.

Failure policy is asymmetric: a failed disable aborts the run (nothing has
been copied yet), a failed restore is reported and skipped.
"""

from typing import Any, Iterable, List

from subsetflow.connectors.oracle.utils import quote_identifier
from subsetflow.core.models import (
    RestoreFailure,
    SuspendedConstraint,
    SuspendedTrigger,
    Suspension,
    TableRef,
)
from subsetflow.exceptions import ConstraintSuspendError, StatementError
from subsetflow.logging import get_logger

logger = get_logger(__name__)

ENABLED_FOREIGN_KEYS_SQL = """
select constraint_name from all_constraints
 where owner = :owner and table_name = :table_name
   and constraint_type = 'R' and status = 'ENABLED'
"""

ENABLED_TRIGGERS_SQL = """
select owner, trigger_name from all_triggers
 where table_owner = :owner and table_name = :table_name and status = 'ENABLED'
"""


def _constraint_sql(constraint: SuspendedConstraint, action: str) -> str:
    return (
        f"alter table {quote_identifier(constraint.owner)}.{quote_identifier(constraint.table)} "
        f"{action} constraint {quote_identifier(constraint.name)}"
    )


def _trigger_sql(trigger: SuspendedTrigger, action: str) -> str:
    return (
        f"alter trigger {quote_identifier(trigger.owner)}.{quote_identifier(trigger.name)} "
        f"{action}"
    )


class IntegritySuspensionManager:
    """Disables and re-enables foreign keys and triggers for a table set."""

    def disable(self, session: Any, tables: Iterable[TableRef]) -> Suspension:
        """Disable every enabled foreign key and trigger on ``tables``.

        Raises:
            ConstraintSuspendError: on the first object that cannot be
                discovered or disabled; ``error.suspension`` lists what was
                already disabled
        """
        suspension = Suspension()
        logger.info("Disabling constraints and triggers")

        for ref in tables:
            binds = {"owner": ref.schema, "table_name": ref.table}
            try:
                constraint_rows = session.query(ENABLED_FOREIGN_KEYS_SQL, binds)
                trigger_rows = session.query(ENABLED_TRIGGERS_SQL, binds)
            except StatementError as e:
                raise ConstraintSuspendError(
                    f"integrity objects of {ref} (discovery failed)", suspension, e
                ) from e

            for (name,) in constraint_rows:
                constraint = SuspendedConstraint(ref.schema, ref.table, name)
                self._disable_one(
                    session, _constraint_sql(constraint, "disable"), constraint, suspension
                )
                suspension.constraints.append(constraint)

            for owner, name in trigger_rows:
                trigger = SuspendedTrigger(owner, name, ref.schema, ref.table)
                self._disable_one(
                    session, _trigger_sql(trigger, "disable"), trigger, suspension
                )
                suspension.triggers.append(trigger)

        logger.info(
            f"Disabled {len(suspension.constraints)} constraints and "
            f"{len(suspension.triggers)} triggers"
        )
        return suspension

    def restore(self, session: Any, suspension: Suspension) -> List[RestoreFailure]:
        """Re-enable every recorded object, constraints first.

        Returns:
            One ``RestoreFailure`` per object that could not be re-enabled
        """
        failures: List[RestoreFailure] = []

        logger.info("Enabling constraints")
        for constraint in suspension.constraints:
            failure = self._enable_one(
                session,
                _constraint_sql(constraint, "enable"),
                "constraint",
                f"{constraint.owner}.{constraint.table}.{constraint.name}",
            )
            if failure:
                failures.append(failure)

        logger.info("Enabling triggers")
        for trigger in suspension.triggers:
            failure = self._enable_one(
                session,
                _trigger_sql(trigger, "enable"),
                "trigger",
                f"{trigger.owner}.{trigger.name}",
            )
            if failure:
                failures.append(failure)

        if failures:
            logger.warning(f"{len(failures)} integrity objects could not be re-enabled")
        return failures

    def _disable_one(self, session: Any, sql: str, obj: Any, suspension: Suspension) -> None:
        try:
            session.execute(sql)
        except StatementError as e:
            raise ConstraintSuspendError(str(obj), suspension, e) from e
        logger.debug(f"Disabled {obj}")

    def _enable_one(self, session: Any, sql: str, kind: str, name: str):
        try:
            session.execute(sql)
        except StatementError as e:
            logger.error(
                f"Failed to enable {kind} {name}. Error code: {e.db_code}; message: {e.db_message}"
            )
            return RestoreFailure(kind, name, e.db_code, e.db_message)
        return None
