"""Building and validating run plans.

``SubsetPlanBuilder`` collects a plan step by step and produces an immutable
``RunSpec``. Validation looks at which source tables each filter reads
through the pinned ``@:sourcedb`` alias and checks them against the copy set:

* a filter that reads a configured table copied *later* is an ordering issue;
* a filter that reads a table outside the copy set is a coverage issue;
* dependency cycles between configured tables are reported.

Reads through ``@:sourcedb_current`` address live working data (such as a
list seeded by a pre-run hook) and are not dependencies. In strict mode the
issues above are errors; otherwise they are warnings. Parameters that are
never registered are always warnings, since the database reports them when
the statement runs.
"""

import re
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Dict, List, Optional

import networkx as nx

from subsetflow.core.models import (
    LIVE_SOURCE_PARAM,
    SCN_PARAM,
    SOURCE_PARAM,
    ConnectionProfile,
    ImportJobOptions,
    RunSpec,
    SourceLink,
    TableCopyEntry,
    TablespaceRemap,
    TableRef,
)
from subsetflow.core.templates import find_snapshot_references, find_unresolved_parameters
from subsetflow.exceptions import PlanValidationError
from subsetflow.logging import get_logger

logger = get_logger(__name__)

_PARAMETER_NAME = re.compile(r"^[A-Za-z_]\w*$")
RESERVED_PARAMETERS = frozenset({SOURCE_PARAM, LIVE_SOURCE_PARAM, SCN_PARAM})


@dataclass
class ValidationResult:
    """Result of plan validation."""

    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def __bool__(self) -> bool:
        return self.is_valid


class TableDependencyGraph:
    """Directed graph of snapshot reads between configured tables.

    An edge ``A -> B`` means the filter of ``B`` reads ``A`` from the source.
    """

    def __init__(self, entries: List[TableCopyEntry]):
        self.graph = nx.DiGraph()
        self.positions: Dict[TableRef, int] = {}
        self.external: Dict[TableRef, List[TableRef]] = {}

        for position, entry in enumerate(entries):
            self.graph.add_node(entry.ref, position=position)
            self.positions[entry.ref] = position

        for entry in entries:
            references = find_snapshot_references(entry.filter_template or "")
            for owner, table in sorted(references):
                referenced = TableRef(owner, table)
                if referenced == entry.ref:
                    continue
                if referenced in self.positions:
                    self.graph.add_edge(referenced, entry.ref)
                else:
                    self.external.setdefault(entry.ref, []).append(referenced)

    def ordering_violations(self) -> List[tuple]:
        """Edges whose source table is copied after the table that reads it."""
        return [
            (parent, child)
            for parent, child in self.graph.edges()
            if self.positions[parent] > self.positions[child]
        ]

    def has_cycles(self) -> bool:
        return not nx.is_directed_acyclic_graph(self.graph)

    def find_cycle(self) -> Optional[List[TableRef]]:
        try:
            return [u for u, v in nx.find_cycle(self.graph)]
        except nx.NetworkXNoCycle:
            return None

    def get_topological_sort(self) -> List[TableRef]:
        """A copy order with every read table before its readers.

        Ties keep the configured order.
        """
        return list(
            nx.lexicographical_topological_sort(
                self.graph, key=lambda ref: self.positions[ref]
            )
        )


def validate_plan(spec: RunSpec, strict: bool = False) -> ValidationResult:
    """Check a run plan for structural problems."""
    errors: List[str] = []
    warnings: List[str] = []
    issues = errors if strict else warnings

    if not spec.schemas:
        errors.append("No schemas configured for import")
    if not spec.tables:
        warnings.append("No tables configured for copy")

    schema_set = set(spec.schemas)
    for entry in spec.tables:
        if entry.schema not in schema_set:
            warnings.append(
                f"Table {entry.ref} belongs to schema {entry.schema}, which is not imported"
            )

    graph = TableDependencyGraph(list(spec.tables))
    for parent, child in graph.ordering_violations():
        issues.append(f"Filter of {child} reads {parent}, which is copied later")
    for ref, referenced in graph.external.items():
        names = ", ".join(str(r) for r in referenced)
        issues.append(f"Filter of {ref} reads tables that are not copied: {names}")
    if graph.has_cycles():
        cycle = graph.find_cycle() or []
        issues.append("Filter dependency cycle: " + " -> ".join(str(r) for r in cycle))

    known = set(spec.parameters) | RESERVED_PARAMETERS
    known_params = {name: "" for name in known}
    for entry in spec.tables:
        missing = find_unresolved_parameters(entry.filter_template or "", known_params)
        if missing:
            warnings.append(f"Filter of {entry.ref} uses unregistered parameters: {missing}")
    for phase, hooks in (("pre-run", spec.pre_hooks), ("post-run", spec.post_hooks)):
        for index, hook in enumerate(hooks):
            missing = find_unresolved_parameters(hook, known_params)
            if missing:
                warnings.append(
                    f"{phase} hook #{index + 1} uses unregistered parameters: {missing}"
                )

    return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)


class SubsetPlanBuilder:
    """Collects a subset import plan.

    Example::

        plan = SubsetPlanBuilder()
        plan.connect(dsn="target", user="jadebackup", password="jade")
        plan.import_from("JADE_PROD")
        plan.import_schema("JADE")
        plan.remap_tablespace("WJ_DATA", "USERS")
        plan.filter_param("eventid", "100,101")
        plan.import_table("JADE", "EVENT", "where eventid in (:eventid)")
        spec = plan.build()

    Registering the same table twice is rejected.
    """

    def __init__(self):
        self._target: Optional[ConnectionProfile] = None
        self._source: Optional[SourceLink] = None
        self._schemas: List[str] = []
        self._remaps: List[TablespaceRemap] = []
        self._tables: Dict[TableRef, TableCopyEntry] = {}
        self._params: Dict[str, str] = {}
        self._pre_run: List[str] = []
        self._post_run: List[str] = []
        self._drop_schemas = False
        self._job_options = ImportJobOptions()

    @property
    def target(self) -> Optional[ConnectionProfile]:
        return self._target

    @property
    def source(self) -> Optional[SourceLink]:
        return self._source

    @property
    def parameters(self) -> Dict[str, str]:
        return dict(self._params)

    def connect(self, user: str, password: str = "", dsn: Optional[str] = None, **kwargs: Any):
        self._target = ConnectionProfile(user=user, password=password, dsn=dsn, **kwargs)
        return self

    def import_from(self, network_link: str):
        self._source = SourceLink(network_link)
        self._params[SOURCE_PARAM] = network_link
        self._params[LIVE_SOURCE_PARAM] = network_link
        return self

    def import_schema(self, schema: str):
        schema = schema.strip().upper()
        if schema in self._schemas:
            logger.debug(f"Schema {schema} already registered")
        else:
            self._schemas.append(schema)
        return self

    def remap_tablespace(self, source: str, target: str):
        self._remaps.append(TablespaceRemap(source.upper(), target.upper()))
        return self

    def filter_param(self, name: str, value: Any):
        if not _PARAMETER_NAME.match(name):
            raise PlanValidationError(f"Invalid filter parameter name '{name}'")
        self._params[name] = str(value)
        return self

    def import_table(self, schema: str, table: str, filter_sql: Optional[str] = None):
        ref = TableRef.of(schema, table)
        if ref in self._tables:
            raise PlanValidationError(f"Table {ref} is already registered for copy")
        self._tables[ref] = TableCopyEntry(ref, filter_sql or None)
        return self

    def pre_run(self, sql: str):
        self._pre_run.append(sql)
        return self

    def post_run(self, sql: str):
        self._post_run.append(sql)
        return self

    def drop_schemas(self, do_drop: bool = True):
        self._drop_schemas = do_drop
        return self

    def job_options(self, **kwargs: Any):
        if "exclude_paths" in kwargs:
            kwargs["exclude_paths"] = tuple(kwargs["exclude_paths"])
        self._job_options = replace(self._job_options, **kwargs)
        return self

    def assemble(self) -> RunSpec:
        missing = []
        if self._target is None:
            missing.append("target connection (connect)")
        if self._source is None:
            missing.append("source link (import_from)")
        if missing:
            raise PlanValidationError(
                "Plan is incomplete: missing " + ", ".join(missing), errors=missing
            )

        return RunSpec(
            target=self._target,
            source=self._source,
            schemas=tuple(self._schemas),
            tables=tuple(self._tables.values()),
            tablespace_remaps=tuple(self._remaps),
            pre_hooks=tuple(self._pre_run),
            post_hooks=tuple(self._post_run),
            parameters=MappingProxyType(dict(self._params)),
            drop_schemas=self._drop_schemas,
            job_options=self._job_options,
        )

    def validate(self, strict: bool = False) -> ValidationResult:
        return validate_plan(self.assemble(), strict=strict)

    def build(self, strict: bool = False) -> RunSpec:
        """Assemble and validate the plan.

        Raises:
            PlanValidationError: if the plan is incomplete or has errors
        """
        spec = self.assemble()
        result = validate_plan(spec, strict=strict)
        for warning in result.warnings:
            logger.warning(f"Plan: {warning}")
        if not result.is_valid:
            raise PlanValidationError(
                "Plan validation failed:\n" + "\n".join(f"  - {e}" for e in result.errors),
                errors=result.errors,
            )
        return spec
