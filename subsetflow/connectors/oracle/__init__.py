"""Oracle connectivity: the target session and the Data Pump job control."""

from subsetflow.connectors.oracle.datapump import DataPumpJob
from subsetflow.connectors.oracle.session import OracleSession, build_engine
from subsetflow.connectors.oracle.utils import (
    quote_identifier,
    split_error,
    translate_oracle_parameters,
)

__all__ = [
    "DataPumpJob",
    "OracleSession",
    "build_engine",
    "quote_identifier",
    "split_error",
    "translate_oracle_parameters",
]
