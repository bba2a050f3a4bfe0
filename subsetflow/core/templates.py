"""Predicate template resolution.

Filter predicates and hook statements are opaque SQL templates with two kinds
of placeholders:

* ``@:sourcedb`` marks a read from the source database. Each occurrence is
  pinned to the run's consistency token by appending ``as of scn N``.
  ``@:sourcedb_current`` is a different token (reads of live working data)
  and is never pinned.
* ``:name`` is replaced by the literal registered for ``name``. Names are
  matched as whole tokens, so ``:p`` never matches inside ``:p2``. Unknown
  names are left as they are so that the database rejects the statement.

Snapshot pinning runs before parameter substitution; parameter values are
inserted verbatim and are never rescanned.
"""

import re
from typing import Dict, List, Mapping, Optional, Set, Tuple

from subsetflow.core.models import SNAPSHOT_ALIAS, ConsistencyToken
from subsetflow.logging import get_logger

logger = get_logger(__name__)

_SNAPSHOT_PATTERN = re.compile(
    re.escape(SNAPSHOT_ALIAS) + r"\b(?!\s+as\s+of\s+scn\b)", re.IGNORECASE
)
_PARAMETER_PATTERN = re.compile(r"(?<![\w:]):([A-Za-z_]\w*)\b")
_SNAPSHOT_REFERENCE_PATTERN = re.compile(
    r"\b([A-Za-z_][\w$#]*)\.([A-Za-z_][\w$#]*)" + re.escape(SNAPSHOT_ALIAS) + r"\b",
    re.IGNORECASE,
)


def pin_snapshot(template: str, token: ConsistencyToken) -> str:
    """Append the ``as of scn`` qualifier to every unpinned source alias."""
    return _SNAPSHOT_PATTERN.sub(lambda m: f"{m.group(0)} {token.qualifier}", template)


def substitute_parameters(template: str, params: Mapping[str, str]) -> str:
    """Replace registered ``:name`` tokens with their literal values."""

    def _replace(match: "re.Match[str]") -> str:
        name = match.group(1)
        if name in params:
            return str(params[name])
        return match.group(0)

    return _PARAMETER_PATTERN.sub(_replace, template)


def resolve_template(
    template: str, token: ConsistencyToken, params: Mapping[str, str]
) -> str:
    """Resolve a predicate or hook template for one run.

    Args:
        template: SQL fragment containing ``@:sourcedb`` and ``:name`` tokens
        token: The run's consistency token
        params: Registered parameter values

    Returns:
        The resolved SQL text
    """
    if not template:
        return template
    return substitute_parameters(pin_snapshot(template, token), params)


def find_parameters(template: str) -> List[str]:
    """Return the distinct parameter names in a template, in order of appearance."""
    seen: Dict[str, None] = {}
    for match in _PARAMETER_PATTERN.finditer(template or ""):
        seen.setdefault(match.group(1), None)
    return list(seen)


def find_unresolved_parameters(template: str, params: Mapping[str, str]) -> List[str]:
    return [name for name in find_parameters(template) if name not in params]


def find_snapshot_references(template: str) -> Set[Tuple[str, str]]:
    """Return ``(OWNER, TABLE)`` pairs read through the pinned source alias."""
    return {
        (owner.upper(), table.upper())
        for owner, table in _SNAPSHOT_REFERENCE_PATTERN.findall(template or "")
    }


class TemplateResolver:
    """Resolves templates against one token and parameter mapping.

    The resolver caches results since hook and filter templates are commonly
    shared between several tables.
    """

    def __init__(self, token: ConsistencyToken, params: Optional[Mapping[str, str]] = None):
        self.token = token
        self.params = dict(params or {})
        self._cache: Dict[str, str] = {}

    def resolve(self, template: str) -> str:
        if template in self._cache:
            return self._cache[template]

        resolved = resolve_template(template, self.token, self.params)
        unresolved = find_unresolved_parameters(resolved, self.params)
        if unresolved:
            logger.debug(f"Template left unresolved parameters: {unresolved}")

        self._cache[template] = resolved
        return resolved
