"""Tests for predicate template resolution."""

import pytest

from subsetflow.core.models import ConsistencyToken
from subsetflow.core.templates import (
    TemplateResolver,
    find_parameters,
    find_snapshot_references,
    find_unresolved_parameters,
    pin_snapshot,
    resolve_template,
    substitute_parameters,
)


@pytest.fixture
def params():
    return {"sourcedb": "JADE_PROD", "sourcedb_current": "JADE_PROD", "eventid": "100,101"}


class TestPinSnapshot:
    def test_pins_every_source_alias(self, token):
        sql = "select * from jade.event@:sourcedb e, jade.block@:sourcedb b"
        assert pin_snapshot(sql, token) == (
            "select * from jade.event@:sourcedb as of scn 4711 e, "
            "jade.block@:sourcedb as of scn 4711 b"
        )

    def test_live_alias_is_not_pinned(self, token):
        sql = "select * from jade.person_temp_list@:sourcedb_current p"
        assert pin_snapshot(sql, token) == sql

    def test_already_pinned_alias_is_left_alone(self, token):
        sql = "select * from jade.event@:sourcedb as of scn 4711 e"
        assert pin_snapshot(sql, token) == sql

    def test_alias_at_end_of_text(self, token):
        assert pin_snapshot("jade.event@:sourcedb", token) == "jade.event@:sourcedb as of scn 4711"


class TestSubstituteParameters:
    def test_whole_token_match_only(self):
        sql = "where a = :p and b = :p2"
        assert substitute_parameters(sql, {"p": "1"}) == "where a = 1 and b = :p2"

    def test_longer_name_is_not_touched_by_prefix(self):
        sql = "where a in (:eventid) and b = :event"
        result = substitute_parameters(sql, {"event": "X", "eventid": "7"})
        assert result == "where a in (7) and b = X"

    def test_unknown_parameter_stays_verbatim(self):
        sql = "where eventid in (:eventid) and season = :season"
        assert substitute_parameters(sql, {"eventid": "1"}) == "where eventid in (1) and season = :season"

    def test_values_are_not_rescanned(self):
        result = substitute_parameters("x = :a", {"a": ":b", "b": "oops"})
        assert result == "x = :b"

    def test_double_colon_is_not_a_parameter(self):
        sql = "select x::text, :a from dual"
        assert substitute_parameters(sql, {"text": "T", "a": "1"}) == "select x::text, 1 from dual"


class TestResolveTemplate:
    def test_pins_then_substitutes(self, token, params):
        sql = "where exists (select * from jade.event@:sourcedb e where e.eventid in (:eventid))"
        assert resolve_template(sql, token, params) == (
            "where exists (select * from jade.event@JADE_PROD as of scn 4711 e "
            "where e.eventid in (100,101))"
        )

    def test_live_alias_resolves_to_link_without_qualifier(self, token, params):
        sql = "select * from jade.person_temp_list@:sourcedb_current p"
        assert resolve_template(sql, token, params) == "select * from jade.person_temp_list@JADE_PROD p"

    def test_resolution_is_idempotent(self, token, params):
        sql = (
            "where exists (select * from jade.registrant@:sourcedb r "
            "where r.eventid in (:eventid)) and x.p in "
            "(select personid from jade.person_temp_list@:sourcedb_current)"
        )
        once = resolve_template(sql, token, params)
        assert resolve_template(once, token, params) == once

    def test_idempotent_without_link_parameter(self, token):
        once = resolve_template("jade.event@:sourcedb e", token, {})
        assert once == "jade.event@:sourcedb as of scn 4711 e"
        assert resolve_template(once, token, {}) == once

    def test_empty_template(self, token, params):
        assert resolve_template("", token, params) == ""


class TestFinders:
    def test_find_parameters_in_order(self):
        sql = "where a = :b and c in (:a) and d = :b and e@:sourcedb"
        assert find_parameters(sql) == ["b", "a", "sourcedb"]

    def test_find_unresolved_parameters(self):
        assert find_unresolved_parameters("where a = :a and b = :b", {"a": "1"}) == ["b"]

    def test_find_snapshot_references(self):
        sql = (
            "where exists (select * from jade.event@:sourcedb e) "
            "and exists (select * from JADE.Block@:sourcedb b) "
            "and exists (select * from jade.person_temp_list@:sourcedb_current p)"
        )
        assert find_snapshot_references(sql) == {("JADE", "EVENT"), ("JADE", "BLOCK")}


class TestTemplateResolver:
    def test_resolves_and_caches(self, token, params):
        resolver = TemplateResolver(token, params)
        first = resolver.resolve("where eventid in (:eventid)")
        assert first == "where eventid in (100,101)"
        assert resolver.resolve("where eventid in (:eventid)") is first

    def test_params_are_copied(self, token, params):
        resolver = TemplateResolver(token, params)
        params["eventid"] = "999"
        assert resolver.resolve(":eventid") == "100,101"
