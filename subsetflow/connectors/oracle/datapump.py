"""Oracle Data Pump job control over ``DBMS_DATAPUMP``.

A ``DataPumpJob`` owns one job handle opened on the target session. The
schema provisioner drives it through open, configure, start, wait and detach.
"""

import time
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Optional

import oracledb

from subsetflow.connectors.oracle.utils import split_error
from subsetflow.exceptions import StatementError
from subsetflow.logging import get_logger

logger = get_logger(__name__)

TIMED_OUT = "TIMED OUT"
TERMINAL_STATES = frozenset({"COMPLETED", "STOPPED", "NOT RUNNING"})

_GET_STATUS_BLOCK = """
declare
  l_state varchar2(30);
  l_status ku$_Status;
begin
  dbms_datapump.get_status(:handle, dbms_datapump.ku$_status_job_status, 0, l_state, l_status);
  :job_state := l_state;
end;
"""


@contextmanager
def _driver_call(statement: str) -> Iterator[None]:
    try:
        yield
    except oracledb.Error as e:
        code, message = split_error(e)
        raise StatementError(statement, code, message, e) from e


class DataPumpJob:
    """One ``DBMS_DATAPUMP`` job, attached through a raw driver cursor."""

    def __init__(self, cursor: Any, handle: int, sleep: Callable[[float], None] = time.sleep):
        self._cursor = cursor
        self.handle = handle
        self._sleep = sleep
        self._detached = False

    @classmethod
    def open(
        cls,
        session: Any,
        remote_link: Optional[str],
        version: str = "COMPATIBLE",
        operation: str = "IMPORT",
        mode: str = "SCHEMA",
        job_name: Optional[str] = None,
    ) -> "DataPumpJob":
        cursor = session.cursor()
        with _driver_call("DBMS_DATAPUMP.OPEN"):
            handle = cursor.callfunc(
                "DBMS_DATAPUMP.OPEN", int, [operation, mode, remote_link, job_name, version]
            )
        logger.debug(f"Opened Data Pump {operation} job, handle {handle}")
        return cls(cursor, handle)

    def set_metadata_filter(self, name: str, value: str) -> None:
        self._call("METADATA_FILTER", name, value)

    def set_data_filter(self, name: str, value: Any) -> None:
        self._call("DATA_FILTER", name, value)

    def set_parameter(self, name: str, value: Any) -> None:
        self._call("SET_PARAMETER", name, value)

    def remap_tablespace(self, source: str, target: str) -> None:
        self._call("METADATA_REMAP", "REMAP_TABLESPACE", source, target)

    def start(self) -> None:
        self._call("START_JOB")

    def wait_for_completion(
        self, timeout: Optional[float] = None, poll_interval: float = 30.0
    ) -> str:
        """Block until the job reaches a terminal state.

        Without a timeout this is ``WAIT_FOR_JOB``. With one, the job state is
        polled every ``poll_interval`` seconds and ``TIMED OUT`` is returned
        once the deadline passes.
        """
        if timeout is None:
            state = self._cursor.var(str)
            with _driver_call("DBMS_DATAPUMP.WAIT_FOR_JOB"):
                self._cursor.callproc("DBMS_DATAPUMP.WAIT_FOR_JOB", [self.handle, state])
            return (state.getvalue() or "").upper()

        deadline = time.monotonic() + timeout
        while True:
            state = self.poll_state()
            if state in TERMINAL_STATES:
                return state
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                logger.warning(
                    f"Data Pump job {self.handle} still {state} after {timeout:.0f}s"
                )
                return TIMED_OUT
            logger.debug(f"Data Pump job {self.handle} is {state}")
            self._sleep(min(poll_interval, remaining))

    def poll_state(self) -> str:
        state = self._cursor.var(str)
        with _driver_call("DBMS_DATAPUMP.GET_STATUS"):
            self._cursor.execute(_GET_STATUS_BLOCK, handle=self.handle, job_state=state)
        return (state.getvalue() or "").upper()

    def detach(self) -> None:
        if self._detached:
            return
        try:
            self._call("DETACH")
        finally:
            self._detached = True
            self._cursor.close()
        logger.debug(f"Detached from Data Pump job {self.handle}")

    def _call(self, procedure: str, *args: Any) -> None:
        name = f"DBMS_DATAPUMP.{procedure}"
        with _driver_call(name):
            self._cursor.callproc(name, [self.handle, *args])
