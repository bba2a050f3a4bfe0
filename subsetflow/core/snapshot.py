"""Capture of the run's consistency token.

Every remote read of a run is qualified with ``as of scn N`` for the single
SCN captured here, so the many independent insert-select statements see the
source exactly as one transaction would. The token is only usable while the
SCN stays inside the source's undo retention window.
"""

from typing import Any

from subsetflow.core.models import ConsistencyToken, SourceLink
from subsetflow.exceptions import SourceUnavailableError, StatementError
from subsetflow.logging import get_logger

logger = get_logger(__name__)


class SnapshotCoordinator:
    """Reads the source's current SCN exactly once."""

    def capture(self, session: Any, source: SourceLink) -> ConsistencyToken:
        sql = f"select current_scn from v$database@{source.name}"
        try:
            value = session.scalar(sql)
        except StatementError as e:
            raise SourceUnavailableError(source.name, original_error=e) from e

        if value is None:
            raise SourceUnavailableError(source.name)

        try:
            token = ConsistencyToken(scn=int(value))
        except (TypeError, ValueError) as e:
            raise SourceUnavailableError(source.name, original_error=e) from e

        logger.info(f"Importing from SCN {token.scn} on source database")
        return token
