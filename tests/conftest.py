"""Pytest configuration for SubsetFlow tests."""

import tempfile
from contextlib import contextmanager
from typing import Any, Dict, Generator, List, Optional, Tuple

import pytest

from subsetflow.core.models import ConsistencyToken, SourceLink
from subsetflow.core.planner import SubsetPlanBuilder
from subsetflow.exceptions import StatementError


class FakeSession:
    """Scripted in-memory stand-in for ``OracleSession``.

    Rules are matched in registration order against a lower-cased substring
    of the statement. A rule either returns a value (row count for
    ``execute``, rows for ``query``, a value for ``scalar``) or raises a
    ``StatementError``. Unmatched statements succeed with empty results.
    """

    def __init__(self):
        self.rules: List[Dict[str, Any]] = []
        self.log: List[Tuple[str, str, Optional[Dict[str, Any]]]] = []
        self.autocommit = False
        self.commits = 0
        self.closed = False

    def on(self, fragment: str, result: Any = None, times: Optional[int] = None):
        self.rules.append({"fragment": fragment.lower(), "result": result, "error": None, "times": times})
        return self

    def fail(
        self,
        fragment: str,
        code: str = "ORA-00942",
        message: str = "table or view does not exist",
        times: Optional[int] = None,
    ):
        self.rules.append(
            {"fragment": fragment.lower(), "result": None, "error": (code, message), "times": times}
        )
        return self

    @property
    def executed(self) -> List[str]:
        return [sql for kind, sql, _ in self.log if kind == "execute"]

    @property
    def statements(self) -> List[str]:
        return [sql for _, sql, _ in self.log]

    def enable_autocommit(self) -> None:
        self.autocommit = True

    def execute(self, sql: str, params: Optional[Dict[str, Any]] = None) -> int:
        self.log.append(("execute", sql, params))
        result = self._match(sql)
        return result if isinstance(result, int) else 0

    def query(self, sql: str, params: Optional[Dict[str, Any]] = None) -> List[Tuple]:
        self.log.append(("query", sql, params))
        result = self._match(sql, params)
        return list(result or [])

    def scalar(self, sql: str, params: Optional[Dict[str, Any]] = None) -> Any:
        self.log.append(("scalar", sql, params))
        return self._match(sql, params)

    def commit(self) -> None:
        self.commits += 1

    def close(self) -> None:
        self.closed = True

    def _match(self, sql: str, params: Optional[Dict[str, Any]] = None) -> Any:
        text = sql.lower()
        for rule in self.rules:
            if rule["fragment"] not in text or rule["times"] == 0:
                continue
            if rule["times"] is not None:
                rule["times"] -= 1
            if rule["error"]:
                code, message = rule["error"]
                raise StatementError(sql, code, message)
            result = rule["result"]
            return result(sql, params) if callable(result) else result
        return None


class FakeImportJob:
    """Records calls made through the metadata import job protocol."""

    def __init__(self, final_state: str = "COMPLETED", fail_on: Optional[str] = None):
        self.final_state = final_state
        self.fail_on = fail_on
        self.calls: List[Tuple] = []
        self.opened_with: Optional[Tuple] = None
        self.detached = False

    def factory(self, session: Any, remote_link: str, version: str) -> "FakeImportJob":
        self.opened_with = (remote_link, version)
        return self

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name,) + args)
        if self.fail_on == name:
            raise StatementError(f"DBMS_DATAPUMP.{name}", "ORA-39001", "invalid argument value")

    def set_metadata_filter(self, name: str, value: str) -> None:
        self._record("METADATA_FILTER", name, value)

    def set_data_filter(self, name: str, value: Any) -> None:
        self._record("DATA_FILTER", name, value)

    def set_parameter(self, name: str, value: Any) -> None:
        self._record("SET_PARAMETER", name, value)

    def remap_tablespace(self, source: str, target: str) -> None:
        self._record("METADATA_REMAP", "REMAP_TABLESPACE", source, target)

    def start(self) -> None:
        self._record("START_JOB")

    def wait_for_completion(self, timeout=None, poll_interval=30.0) -> str:
        self._record("WAIT_FOR_JOB", timeout, poll_interval)
        return self.final_state

    def detach(self) -> None:
        self.calls.append(("DETACH",))
        self.detached = True


@pytest.fixture
def temp_dir() -> Generator[str, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmp_dir:
        yield tmp_dir


@pytest.fixture
def fake_session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def fake_job() -> FakeImportJob:
    return FakeImportJob()


@pytest.fixture
def make_job():
    """Factory for import jobs ending in a chosen state or failing on a call."""
    return FakeImportJob


@pytest.fixture
def session_factory(fake_session):
    """Session factory for ``RunCoordinator`` that yields ``fake_session``."""

    @contextmanager
    def factory(profile):
        try:
            yield fake_session
        finally:
            fake_session.close()

    return factory


@pytest.fixture
def token() -> ConsistencyToken:
    return ConsistencyToken(scn=4711)


@pytest.fixture
def source() -> SourceLink:
    return SourceLink("JADE_PROD")


@pytest.fixture
def plan_builder() -> SubsetPlanBuilder:
    """A builder for a small two-schema event import plan."""
    return (
        SubsetPlanBuilder()
        .connect(user="jadebackup", password="jade", dsn="localhost/XEPDB1")
        .import_from("JADE_PROD")
        .import_schema("JADE")
        .import_schema("JADE_REPORTS")
        .remap_tablespace("WJ_DATA", "USERS")
        .filter_param("eventid", "100,101")
    )


@pytest.fixture
def sample_profile_yaml() -> str:
    """Return a sample run profile."""
    return """
connection:
  user: jadebackup
  password: ${SUBSETFLOW_TEST_PASSWORD|jade}
  dsn: localhost/XEPDB1
source:
  link: JADE_PROD
schemas: [JADE, JADE_REPORTS]
drop_schemas: true
tablespace_remaps:
  WJ_DATA: USERS
  WJ_INDEX: USERS
filters:
  by_event: "where eventid in (:eventid)"
tables:
  - {schema: JADE, table: COUNTRY_CODE}
  - {schema: JADE, table: EVENT, filter: by_event}
  - schema: JADE
    table: BLOCK
    where: "where exists (select * from jade.event@:sourcedb e where e.eventid = x.eventid and e.eventid in (:eventid))"
pre_run:
  - "insert into jade.person_temp_list@:sourcedb_current (personid) select personid from jade.registrant@:sourcedb"
subset_key:
  parameter: eventid
"""
