"""Tests for foreign key and trigger suspension."""

import pytest

from subsetflow.core.integrity import IntegritySuspensionManager
from subsetflow.core.models import SuspendedConstraint, SuspendedTrigger, Suspension, TableRef
from subsetflow.exceptions import ConstraintSuspendError

TABLES = [TableRef("JADE", "EVENT"), TableRef("JADE", "BLOCK")]


def discovery(constraints, triggers):
    """Rule callbacks answering the discovery queries per table."""

    def constraint_rows(sql, params):
        return [(name,) for name in constraints.get(params["table_name"], [])]

    def trigger_rows(sql, params):
        return [(owner, name) for owner, name in triggers.get(params["table_name"], [])]

    return constraint_rows, trigger_rows


@pytest.fixture
def scripted(fake_session):
    constraint_rows, trigger_rows = discovery(
        {"EVENT": ["FK_EVENT_CLIENT"], "BLOCK": ["FK_BLOCK_EVENT", "FK_BLOCK_HOTEL"]},
        {"EVENT": [("JADE", "TRG_EVENT_AUDIT")]},
    )
    fake_session.on("from all_constraints", constraint_rows)
    fake_session.on("from all_triggers", trigger_rows)
    return fake_session


class TestDisable:
    def test_disables_and_records_everything(self, scripted):
        suspension = IntegritySuspensionManager().disable(scripted, TABLES)

        assert suspension.constraints == [
            SuspendedConstraint("JADE", "EVENT", "FK_EVENT_CLIENT"),
            SuspendedConstraint("JADE", "BLOCK", "FK_BLOCK_EVENT"),
            SuspendedConstraint("JADE", "BLOCK", "FK_BLOCK_HOTEL"),
        ]
        assert suspension.triggers == [SuspendedTrigger("JADE", "TRG_EVENT_AUDIT", "JADE", "EVENT")]
        assert len(suspension) == 4
        assert scripted.executed == [
            'alter table "JADE"."EVENT" disable constraint "FK_EVENT_CLIENT"',
            'alter trigger "JADE"."TRG_EVENT_AUDIT" disable',
            'alter table "JADE"."BLOCK" disable constraint "FK_BLOCK_EVENT"',
            'alter table "JADE"."BLOCK" disable constraint "FK_BLOCK_HOTEL"',
        ]

    def test_discovery_binds_owner_and_table(self, scripted):
        IntegritySuspensionManager().disable(scripted, [TableRef("JADE", "EVENT")])
        queries = [params for kind, _, params in scripted.log if kind == "query"]
        assert queries == [{"owner": "JADE", "table_name": "EVENT"}] * 2

    def test_failed_disable_carries_partial_suspension(self, scripted):
        scripted.rules.insert(0, {
            "fragment": 'disable constraint "fk_block_hotel"',
            "result": None,
            "error": ("ORA-02431", "cannot disable constraint - no such constraint"),
            "times": None,
        })

        with pytest.raises(ConstraintSuspendError) as exc_info:
            IntegritySuspensionManager().disable(scripted, TABLES)

        partial = exc_info.value.suspension
        assert [c.name for c in partial.constraints] == ["FK_EVENT_CLIENT", "FK_BLOCK_EVENT"]
        assert [t.name for t in partial.triggers] == ["TRG_EVENT_AUDIT"]
        assert "FK_BLOCK_HOTEL" in exc_info.value.object_name

    def test_failed_discovery_is_fatal(self, fake_session):
        fake_session.fail("from all_constraints", "ORA-00942", "table or view does not exist")
        with pytest.raises(ConstraintSuspendError):
            IntegritySuspensionManager().disable(fake_session, TABLES)


class TestRestore:
    def test_round_trip_reenables_exactly_the_disabled_set(self, scripted):
        manager = IntegritySuspensionManager()
        suspension = manager.disable(scripted, TABLES)
        disabled = list(scripted.executed)

        failures = manager.restore(scripted, suspension)

        assert failures == []
        enabled = scripted.executed[len(disabled):]
        assert enabled == [
            'alter table "JADE"."EVENT" enable constraint "FK_EVENT_CLIENT"',
            'alter table "JADE"."BLOCK" enable constraint "FK_BLOCK_EVENT"',
            'alter table "JADE"."BLOCK" enable constraint "FK_BLOCK_HOTEL"',
            'alter trigger "JADE"."TRG_EVENT_AUDIT" enable',
        ]
        assert sorted(s.replace(" enable", " disable") for s in enabled) == sorted(disabled)

    def test_restore_never_requeries_target(self, fake_session):
        suspension = Suspension(
            constraints=[SuspendedConstraint("JADE", "EVENT", "FK_EVENT_CLIENT")],
            triggers=[SuspendedTrigger("JADE", "TRG_EVENT_AUDIT")],
        )
        IntegritySuspensionManager().restore(fake_session, suspension)
        assert all(kind == "execute" for kind, _, _ in fake_session.log)

    def test_restore_failure_is_reported_and_others_continue(self, fake_session):
        fake_session.fail(
            'enable constraint "fk_2"', "ORA-02298", "cannot validate - parent keys not found"
        )
        suspension = Suspension(
            constraints=[
                SuspendedConstraint("JADE", "T1", "FK_1"),
                SuspendedConstraint("JADE", "T2", "FK_2"),
                SuspendedConstraint("JADE", "T3", "FK_3"),
            ],
            triggers=[SuspendedTrigger("JADE", "TRG_1")],
        )

        failures = IntegritySuspensionManager().restore(fake_session, suspension)

        assert len(failures) == 1
        assert failures[0].kind == "constraint"
        assert failures[0].name == "JADE.T2.FK_2"
        assert failures[0].error_code == "ORA-02298"
        assert len(fake_session.executed) == 4
        assert fake_session.executed[-1] == 'alter trigger "JADE"."TRG_1" enable'

    def test_trigger_failure_is_reported(self, fake_session):
        fake_session.fail('"trg_1" enable', "ORA-04080", "trigger does not exist")
        suspension = Suspension(triggers=[SuspendedTrigger("JADE", "TRG_1")])

        failures = IntegritySuspensionManager().restore(fake_session, suspension)

        assert [(f.kind, f.name) for f in failures] == [("trigger", "JADE.TRG_1")]
