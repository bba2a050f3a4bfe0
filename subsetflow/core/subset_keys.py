"""Translation of user-facing codes into subset key values.

Operators name events by product code; filters select rows by event id. The
lookup query is a template that may reference the source link through
``@:sourcedb_current`` and must bind the code as ``:code``.
"""

from dataclasses import dataclass
from typing import Any, Iterable, List

from subsetflow.core.models import LIVE_SOURCE_PARAM, SOURCE_PARAM, SourceLink
from subsetflow.core.templates import substitute_parameters
from subsetflow.exceptions import StatementError, SubsetKeyError
from subsetflow.logging import get_logger

logger = get_logger(__name__)

DEFAULT_LOOKUP = (
    "select to_char(eventid) from jade.event@:sourcedb_current "
    "where eventproductcode = :code"
)


@dataclass(frozen=True)
class SubsetKeyConfig:
    parameter: str = "eventid"
    lookup: str = DEFAULT_LOOKUP
    separator: str = ","


class SubsetKeyResolver:
    def __init__(self, config: SubsetKeyConfig = SubsetKeyConfig()):
        self.config = config

    def resolve(self, session: Any, source: SourceLink, codes: Iterable[str]) -> List[str]:
        """Look up the key value for each code, in the order given.

        Raises:
            SubsetKeyError: if no codes are given or a code has no match
        """
        codes = [code.strip() for code in codes if code and code.strip()]
        if not codes:
            raise SubsetKeyError("", "no codes specified for import")

        sql = substitute_parameters(
            self.config.lookup, {SOURCE_PARAM: source.name, LIVE_SOURCE_PARAM: source.name}
        )
        values: List[str] = []
        for code in codes:
            try:
                value = session.scalar(sql, {"code": code})
            except StatementError as e:
                raise SubsetKeyError(code, e.message) from e
            if value is None:
                raise SubsetKeyError(code)
            logger.info(f"Code {code} resolves to {self.config.parameter} {value}")
            values.append(str(value))
        return values

    def to_parameter_value(self, values: Iterable[str]) -> str:
        return self.config.separator.join(values)
