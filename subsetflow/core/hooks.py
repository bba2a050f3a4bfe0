"""Ordered pre-run and post-run SQL hooks.

Pre-run hooks usually seed working data on the source (for example the list
of people related to the chosen events) that later filters read. Post-run
hooks clean up references to rows that were not copied and scrub
environment-specific values. Any failure stops the run.
"""

from typing import Any, Mapping, Sequence

from subsetflow.core.models import ConsistencyToken
from subsetflow.core.templates import TemplateResolver
from subsetflow.exceptions import HookError, StatementError
from subsetflow.logging import get_logger

logger = get_logger(__name__)

PRE_RUN = "pre-run"
POST_RUN = "post-run"


class HookRunner:
    def run_all(
        self,
        session: Any,
        templates: Sequence[str],
        token: ConsistencyToken,
        params: Mapping[str, str],
        phase: str = PRE_RUN,
    ) -> int:
        """Resolve and execute each hook in order.

        Returns:
            Total rows affected by the hooks

        Raises:
            HookError: on the first hook that fails
        """
        if not templates:
            return 0

        logger.info(f"Running {len(templates)} {phase} hooks")
        resolver = TemplateResolver(token, params)
        total = 0
        for index, template in enumerate(templates):
            sql = resolver.resolve(template)
            try:
                rows = session.execute(sql)
            except StatementError as e:
                logger.error(
                    f"Hook SQL failed. Error code: {e.db_code}; message: {e.db_message}"
                )
                logger.error(f"Failing SQL is: {sql}")
                raise HookError(phase, index, sql, e) from e
            logger.debug(f"{phase} hook #{index + 1} affected {rows} rows")
            total += rows
        return total
