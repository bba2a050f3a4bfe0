"""Per-table filtered data copy.

Each configured table becomes one ``insert ... select`` statement that reads
the remote table as of the run's SCN, optionally narrowed by its resolved
filter predicate. A failing table is recorded and the copy moves on.

Entries are copied in the configured order; ordering against the target's
foreign key graph is the plan's responsibility.
"""

import time
from typing import Any, List, Mapping, Optional, Sequence

from subsetflow.core.models import ConsistencyToken, CopyResult, TableCopyEntry
from subsetflow.core.templates import TemplateResolver
from subsetflow.exceptions import StatementError
from subsetflow.logging import get_logger

logger = get_logger(__name__)

SOURCE_ROW_ALIAS = "x"


def build_copy_statement(
    entry: TableCopyEntry,
    link: str,
    token: ConsistencyToken,
    resolver: Optional[TemplateResolver] = None,
) -> str:
    """Build the insert-select statement for one table.

    Filter predicates refer to the row being copied through the ``x`` alias.
    """
    qualified = entry.ref.qualified
    sql = (
        f"insert into {qualified}\n"
        f"select * from {qualified}@{link} {token.qualifier} {SOURCE_ROW_ALIAS}"
    )
    if entry.filter_template:
        resolver = resolver or TemplateResolver(token)
        sql += " " + resolver.resolve(entry.filter_template).strip()
    return sql


class TableCopyExecutor:
    """Copies each configured table, continuing past per-table failures."""

    def copy_all(
        self,
        session: Any,
        entries: Sequence[TableCopyEntry],
        link: str,
        token: ConsistencyToken,
        params: Mapping[str, str],
    ) -> List[CopyResult]:
        resolver = TemplateResolver(token, params)
        results = [self.copy_one(session, entry, link, token, resolver) for entry in entries]

        failed = sum(1 for result in results if not result.succeeded)
        rows = sum(result.rows or 0 for result in results)
        logger.info(
            f"Copied {rows} rows into {len(results) - failed} tables"
            + (f", {failed} tables failed" if failed else "")
        )
        return results

    def copy_one(
        self,
        session: Any,
        entry: TableCopyEntry,
        link: str,
        token: ConsistencyToken,
        resolver: TemplateResolver,
    ) -> CopyResult:
        sql = build_copy_statement(entry, link, token, resolver)
        start = time.perf_counter()
        try:
            rows = session.execute(sql)
        except StatementError as e:
            logger.error(
                f"Importing data for {entry.ref}... FAILED! "
                f"Error code: {e.db_code}; message: {e.db_message}"
            )
            logger.error(f"Failing SQL is: {sql}")
            return CopyResult(
                ref=entry.ref,
                status="FAILURE",
                statement=sql,
                error_code=e.db_code,
                error_message=e.db_message,
                duration_ms=(time.perf_counter() - start) * 1000,
            )

        logger.info(f"Importing data for {entry.ref}... {rows} rows")
        return CopyResult(
            ref=entry.ref,
            status="SUCCESS",
            statement=sql,
            rows=rows,
            duration_ms=(time.perf_counter() - start) * 1000,
        )
