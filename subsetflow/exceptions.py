"""Exception hierarchy for SubsetFlow.

Errors fall into two groups. Fatal errors (``FatalRunError`` subclasses) stop a
run immediately; the run coordinator attaches the partial ``RunReport`` to them
before re-raising. Recoverable errors describe one table or one integrity
object and are collected into the run report instead of being raised.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional


class SubsetFlowError(Exception):
    """Base exception for all SubsetFlow errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        suggested_actions: Optional[List[str]] = None,
        recoverable: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__.upper()
        self.context = context or {}
        self.suggested_actions = suggested_actions or []
        self.recoverable = recoverable
        self.timestamp = datetime.utcnow()

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "context": {k: str(v) for k, v in self.context.items()},
            "suggested_actions": self.suggested_actions,
            "recoverable": self.recoverable,
            "timestamp": self.timestamp.isoformat(),
        }

    def __str__(self) -> str:
        base_message = self.message

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_message += f" (Context: {context_str})"

        return base_message


class StatementError(SubsetFlowError):
    """A single SQL statement was rejected by the database."""

    def __init__(
        self,
        statement: str,
        db_code: Optional[str],
        db_message: str,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            message=f"{db_code or 'database error'}: {db_message}",
            error_code="STATEMENT_FAILED",
        )
        self.statement = statement
        self.db_code = db_code
        self.db_message = db_message
        self.original_error = original_error


# Fatal run errors


class FatalRunError(SubsetFlowError):
    """Error that aborts the whole run.

    ``report`` is set by the run coordinator to the partial run report, which
    records the last state that completed before the failure.
    """

    report: Any = None

    def __init__(
        self,
        message: str,
        original_error: Optional[Exception] = None,
        context: Optional[Dict[str, Any]] = None,
        suggested_actions: Optional[List[str]] = None,
    ):
        run_context = dict(context or {})
        if original_error is not None:
            run_context["original_error"] = str(original_error)
            run_context["original_error_type"] = type(original_error).__name__
        super().__init__(
            message=message,
            context=run_context,
            suggested_actions=suggested_actions,
            recoverable=False,
        )
        self.original_error = original_error


class SourceUnavailableError(FatalRunError):
    """The consistency token could not be read from the source."""

    def __init__(self, link: str, original_error: Optional[Exception] = None):
        super().__init__(
            f"Could not capture a consistency token through link '{link}'",
            original_error=original_error,
            context={"link": link},
            suggested_actions=[
                "Check that the database link resolves and the source is open"
            ],
        )
        self.link = link


class TargetUnavailableError(FatalRunError):
    """The target database could not be reached."""

    def __init__(self, target: str, original_error: Optional[Exception] = None):
        super().__init__(
            f"Could not connect to target {target}",
            original_error=original_error,
            context={"target": target},
        )
        self.target = target


class SchemaProvisionError(FatalRunError):
    """Dropping schemas or importing their metadata failed."""

    def __init__(
        self,
        message: str,
        job_state: Optional[str] = None,
        schema: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        context: Dict[str, Any] = {}
        if job_state is not None:
            context["job_state"] = job_state
        if schema is not None:
            context["schema"] = schema
        super().__init__(message, original_error=original_error, context=context)
        self.job_state = job_state
        self.schema = schema


class ConstraintSuspendError(FatalRunError):
    """A foreign key constraint or trigger could not be disabled.

    ``suspension`` holds the objects already disabled before the failure.
    """

    def __init__(
        self,
        object_name: str,
        suspension: Any = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            f"Failed to disable {object_name}",
            original_error=original_error,
            context={"object": object_name},
            suggested_actions=[
                "Objects listed in the run report are still disabled on the target"
            ],
        )
        self.object_name = object_name
        self.suspension = suspension


class HookError(FatalRunError):
    """A pre-run or post-run hook statement failed."""

    def __init__(
        self,
        phase: str,
        index: int,
        statement: str,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(
            f"{phase} hook #{index + 1} failed",
            original_error=original_error,
            context={"phase": phase, "index": index},
        )
        self.phase = phase
        self.index = index
        self.statement = statement


# Recoverable diagnostics


class TableCopyError(SubsetFlowError):
    """One table's insert-select failed; the run continues."""

    def __init__(self, table: str, statement: str, db_code: Optional[str], db_message: str):
        super().__init__(
            f"Copy of {table} failed: {db_code or 'database error'}: {db_message}",
            context={"table": table},
            recoverable=True,
        )
        self.table = table
        self.statement = statement
        self.db_code = db_code
        self.db_message = db_message


class ConstraintRestoreError(SubsetFlowError):
    """One constraint or trigger could not be re-enabled; the run continues."""

    def __init__(self, object_name: str, db_code: Optional[str], db_message: str):
        super().__init__(
            f"Failed to re-enable {object_name}: {db_code or 'database error'}: {db_message}",
            context={"object": object_name},
            recoverable=True,
        )
        self.object_name = object_name
        self.db_code = db_code
        self.db_message = db_message


# Configuration errors


class PlanValidationError(SubsetFlowError):
    """The run plan is inconsistent."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = errors or []


class ProfileError(SubsetFlowError):
    """A run profile could not be loaded."""

    def __init__(self, path: str, errors: List[str]):
        super().__init__(
            f"Invalid run profile '{path}':\n"
            + "\n".join(f"  - {error}" for error in errors)
        )
        self.path = path
        self.errors = errors

    def __str__(self) -> str:
        return self.message


class SubsetKeyError(SubsetFlowError):
    """A subset key (for example an event product code) could not be resolved."""

    def __init__(self, code: str, reason: str = "no matching row"):
        super().__init__(f"Invalid subset code '{code}': {reason}", context={"code": code})
        self.code = code


__all__ = [
    "SubsetFlowError",
    "StatementError",
    "FatalRunError",
    "SourceUnavailableError",
    "TargetUnavailableError",
    "SchemaProvisionError",
    "ConstraintSuspendError",
    "HookError",
    "TableCopyError",
    "ConstraintRestoreError",
    "PlanValidationError",
    "ProfileError",
    "SubsetKeyError",
]
