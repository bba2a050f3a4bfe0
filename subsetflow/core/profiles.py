"""YAML run profiles.

A profile describes one subset import plan. Environment variables are
substituted into string values with ``${VAR}`` or ``${VAR|default}`` before
the plan is read. Example::

    connection:
      user: jadebackup
      password: ${JADE_PASSWORD}
      dsn: ${TARGET_DSN|localhost/XEPDB1}
    source:
      link: jade_prod
    schemas: [JADE]
    tablespace_remaps:
      WJ_DATA: USERS
    filters:
      by_event: "where eventid in (:eventid)"
    tables:
      - {schema: JADE, table: EVENT, filter: by_event}
      - {schema: JADE, table: MARKET, where: "where eventid in (:eventid)"}
    subset_key:
      parameter: eventid

Every problem found is collected and reported together in one
``ProfileError``.
"""

import os
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

import yaml

from subsetflow.connectors.oracle.utils import translate_oracle_parameters
from subsetflow.core.models import ConnectionProfile, RunSpec
from subsetflow.core.planner import SubsetPlanBuilder
from subsetflow.core.subset_keys import SubsetKeyConfig
from subsetflow.exceptions import PlanValidationError, ProfileError
from subsetflow.logging import get_logger

logger = get_logger(__name__)

_VARIABLE_PATTERN = re.compile(r"\$\{([^}|]+)(?:\|([^}]+))?\}")

KNOWN_SECTIONS = {
    "connection",
    "source",
    "schemas",
    "drop_schemas",
    "tablespace_remaps",
    "parameters",
    "filters",
    "tables",
    "pre_run",
    "post_run",
    "import_job",
    "subset_key",
    "validation",
}
CONNECTION_KEYS = {"user", "password", "dsn", "host", "port", "service_name"}
IMPORT_JOB_KEYS = {"version", "exclude_paths", "create_users", "wait_timeout", "poll_interval"}


@dataclass
class RunProfile:
    """A loaded profile, ready to be completed and built into a ``RunSpec``.

    ``builder`` is fresh for every load, so callers may add parameters or
    override flags before calling ``build``.
    """

    path: str
    connection: ConnectionProfile
    builder: SubsetPlanBuilder
    subset_key: Optional[SubsetKeyConfig] = None
    strict: bool = False

    def build(self, strict: Optional[bool] = None) -> RunSpec:
        return self.builder.build(strict=self.strict if strict is None else strict)


def substitute_environment(value: Any, environ: Optional[Mapping[str, str]] = None) -> Any:
    """Substitute ``${VAR|default}`` in every string of a parsed YAML tree.

    References with neither a value nor a default are left in place.
    """
    env = os.environ if environ is None else environ

    if isinstance(value, str):

        def replace(match):
            name = match.group(1).strip()
            default = match.group(2)
            if name in env:
                return env[name]
            if default is not None:
                return default.strip().strip("'\"")
            return match.group(0)

        return _VARIABLE_PATTERN.sub(replace, value)
    if isinstance(value, dict):
        return {k: substitute_environment(v, env) for k, v in value.items()}
    if isinstance(value, list):
        return [substitute_environment(v, env) for v in value]
    return value


def _find_unresolved(value: Any, location: str = "") -> List[str]:
    if isinstance(value, str):
        return [
            f"{location or 'profile'}: environment variable '{m.group(1).strip()}' is not set"
            for m in _VARIABLE_PATTERN.finditer(value)
        ]
    if isinstance(value, dict):
        found = []
        for key, item in value.items():
            found.extend(_find_unresolved(item, f"{location}.{key}" if location else str(key)))
        return found
    if isinstance(value, list):
        found = []
        for index, item in enumerate(value):
            found.extend(_find_unresolved(item, f"{location}[{index}]"))
        return found
    return []


def _as_list(data: Dict[str, Any], key: str, errors: List[str]) -> List[Any]:
    value = data.get(key) or []
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list):
        errors.append(f"'{key}' must be a list")
        return []
    return value


_TRUE_WORDS = {"true", "yes", "on", "1"}
_FALSE_WORDS = {"false", "no", "off", "0"}


def _as_bool(value: Any, location: str, errors: List[str]) -> Optional[bool]:
    """Read a flag that may arrive as text after ``${VAR}`` substitution."""
    if isinstance(value, bool):
        return value
    word = str(value).strip().lower()
    if word in _TRUE_WORDS:
        return True
    if word in _FALSE_WORDS:
        return False
    errors.append(f"{location}: expected true or false, got '{value}'")
    return None


def _as_seconds(value: Any, location: str, errors: List[str]) -> Optional[float]:
    if isinstance(value, bool):
        errors.append(f"{location}: expected a number of seconds, got '{value}'")
        return None
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        errors.append(f"{location}: expected a number of seconds, got '{value}'")
        return None
    if seconds <= 0:
        errors.append(f"{location}: must be greater than zero")
        return None
    return seconds


class ProfileLoader:
    """Reads run profiles from YAML files or already parsed dictionaries."""

    def __init__(self, environ: Optional[Mapping[str, str]] = None):
        self.environ = environ

    def load(self, path: str) -> RunProfile:
        logger.debug(f"Loading run profile from '{path}'")
        if not os.path.exists(path):
            raise ProfileError(path, [f"file not found: {path}"])

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ProfileError(path, [f"invalid YAML: {e}"]) from e

        return self.load_dict(data or {}, path)

    def load_dict(self, data: Any, path: str = "<profile>") -> RunProfile:
        if not isinstance(data, dict):
            raise ProfileError(path, ["profile must be a mapping"])

        data = substitute_environment(data, self.environ)
        errors = _find_unresolved(data)

        for key in sorted(set(data) - KNOWN_SECTIONS):
            errors.append(f"unknown section '{key}'")

        builder = SubsetPlanBuilder()
        connection = self._read_connection(data, builder, errors)
        self._read_source(data, builder, errors)

        for schema in _as_list(data, "schemas", errors):
            builder.import_schema(str(schema))
        if "drop_schemas" in data:
            drop = _as_bool(data["drop_schemas"], "drop_schemas", errors)
            if drop is not None:
                builder.drop_schemas(drop)

        self._read_remaps(data, builder, errors)
        self._read_parameters(data, builder, errors)
        self._read_tables(data, builder, errors)

        for sql in _as_list(data, "pre_run", errors):
            builder.pre_run(str(sql))
        for sql in _as_list(data, "post_run", errors):
            builder.post_run(str(sql))

        self._read_import_job(data, builder, errors)
        subset_key = self._read_subset_key(data, errors)

        validation = data.get("validation") or {}
        strict = False
        if not isinstance(validation, dict):
            errors.append("'validation' must be a mapping")
        elif "strict" in validation:
            strict = bool(_as_bool(validation["strict"], "validation.strict", errors))

        if errors:
            raise ProfileError(path, errors)

        logger.info(f"Loaded run profile '{path}'")
        return RunProfile(
            path=path,
            connection=connection,
            builder=builder,
            subset_key=subset_key,
            strict=strict,
        )

    def _read_connection(
        self, data: Dict[str, Any], builder: SubsetPlanBuilder, errors: List[str]
    ) -> Optional[ConnectionProfile]:
        section = data.get("connection")
        if not isinstance(section, dict):
            errors.append("'connection' section is required and must be a mapping")
            return None

        try:
            params = translate_oracle_parameters(section)
        except (TypeError, ValueError):
            errors.append("connection: 'port' must be a number")
            return None
        unknown = sorted(set(params) - CONNECTION_KEYS)
        if unknown:
            errors.append(f"connection: unknown keys {unknown}")
            return None
        if not params.get("user"):
            errors.append("connection: 'user' is required")
            return None

        params["password"] = str(params.get("password") or "")
        try:
            builder.connect(**params)
        except (TypeError, ValueError) as e:
            errors.append(f"connection: {e}")
            return None
        return builder.target

    def _read_source(self, data: Dict[str, Any], builder: SubsetPlanBuilder, errors: List[str]):
        source = data.get("source")
        link = source.get("link") if isinstance(source, dict) else None
        if not link:
            errors.append("'source.link' is required")
            return
        builder.import_from(str(link))

    def _read_remaps(self, data: Dict[str, Any], builder: SubsetPlanBuilder, errors: List[str]):
        remaps = data.get("tablespace_remaps") or {}
        if isinstance(remaps, dict):
            pairs = list(remaps.items())
        elif isinstance(remaps, list):
            pairs = []
            for index, item in enumerate(remaps):
                if isinstance(item, dict) and {"source", "target"} <= set(item):
                    pairs.append((item["source"], item["target"]))
                elif isinstance(item, (list, tuple)) and len(item) == 2:
                    pairs.append(tuple(item))
                else:
                    errors.append(f"tablespace_remaps[{index}]: expected a source/target pair")
        else:
            errors.append("'tablespace_remaps' must be a mapping or a list")
            return

        for source, target in pairs:
            builder.remap_tablespace(str(source), str(target))

    def _read_parameters(self, data: Dict[str, Any], builder: SubsetPlanBuilder, errors: List[str]):
        params = data.get("parameters") or {}
        if not isinstance(params, dict):
            errors.append("'parameters' must be a mapping")
            return
        for name, value in params.items():
            try:
                builder.filter_param(str(name), value)
            except PlanValidationError as e:
                errors.append(f"parameters: {e.message}")

    def _read_tables(self, data: Dict[str, Any], builder: SubsetPlanBuilder, errors: List[str]):
        filters = data.get("filters") or {}
        if not isinstance(filters, dict):
            errors.append("'filters' must be a mapping of name to predicate")
            filters = {}

        for index, item in enumerate(_as_list(data, "tables", errors)):
            where = f"tables[{index}]"
            if not isinstance(item, dict):
                errors.append(f"{where}: expected a mapping with 'schema' and 'table'")
                continue
            if not item.get("schema") or not item.get("table"):
                errors.append(f"{where}: 'schema' and 'table' are required")
                continue
            if "filter" in item and "where" in item:
                errors.append(f"{where}: use either 'filter' or 'where', not both")
                continue

            predicate = item.get("where")
            if "filter" in item:
                name = item["filter"]
                if name not in filters:
                    errors.append(f"{where}: unknown filter '{name}'")
                    continue
                predicate = filters[name]

            try:
                builder.import_table(str(item["schema"]), str(item["table"]), predicate)
            except PlanValidationError as e:
                errors.append(f"{where}: {e.message}")

    def _read_import_job(self, data: Dict[str, Any], builder: SubsetPlanBuilder, errors: List[str]):
        options = data.get("import_job")
        if options is None:
            return
        if not isinstance(options, dict):
            errors.append("'import_job' must be a mapping")
            return
        unknown = sorted(set(options) - IMPORT_JOB_KEYS)
        if unknown:
            errors.append(f"import_job: unknown keys {unknown}")
            return

        options = dict(options)
        count = len(errors)
        if "version" in options:
            options["version"] = str(options["version"])
        if "exclude_paths" in options:
            paths = options["exclude_paths"] or []
            options["exclude_paths"] = [str(p) for p in (paths if isinstance(paths, list) else [paths])]
        if "create_users" in options:
            options["create_users"] = _as_bool(options["create_users"], "import_job.create_users", errors)
        if options.get("wait_timeout") is not None:
            options["wait_timeout"] = _as_seconds(options["wait_timeout"], "import_job.wait_timeout", errors)
        if "poll_interval" in options:
            options["poll_interval"] = _as_seconds(options["poll_interval"], "import_job.poll_interval", errors)
        if len(errors) == count:
            builder.job_options(**options)

    def _read_subset_key(self, data: Dict[str, Any], errors: List[str]) -> Optional[SubsetKeyConfig]:
        section = data.get("subset_key")
        if section is None:
            return None
        if not isinstance(section, dict):
            errors.append("'subset_key' must be a mapping")
            return None
        unknown = sorted(set(section) - {"parameter", "lookup", "separator"})
        if unknown:
            errors.append(f"subset_key: unknown keys {unknown}")
            return None
        return SubsetKeyConfig(**section)


def load_profile(path: str, environ: Optional[Mapping[str, str]] = None) -> RunProfile:
    return ProfileLoader(environ).load(path)
