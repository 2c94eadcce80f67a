import pytest

from dbcutover.config.policy import ERR_CODE_INVALID_PARAMETER_VALUE
from dbcutover.core.controllers.lifecycle import InstanceLifecycle, blue_green_enabled
from dbcutover.core.entities.resources import ResourceChange
from dbcutover.core.errors import RemoteAPIError


@pytest.fixture
def lifecycle(plane, orchestration_config, clock):
    return InstanceLifecycle(plane, config=orchestration_config, clock=clock, sleep=clock.sleep)


def test_unchanged_or_ignored_attributes_are_a_no_op(lifecycle, plane, make_config):
    plane.add_instance("db")
    current = make_config(plane, "db", tags={"team": "a"})
    desired = dict(current, tags={"team": "b"}, skip_final_snapshot=True, blue_green_update={"enabled": True})

    result = lifecycle.update_instance(current, desired)

    assert result.success
    assert result.stages == []
    assert plane.calls == []


def test_blue_green_flag_routes_to_orchestrator(lifecycle, plane, make_config):
    plane.add_instance("db", backup_retention_period=7)
    current = make_config(plane, "db")
    desired = dict(current, engine_version="8.0.36", blue_green_update={"enabled": True})

    result = lifecycle.update_instance(current, desired)

    assert result.success, result.diagnostics
    assert "switchover" in result.stages
    assert plane.calls_to("create_deployment")[0][1]["request"]["target_engine_version"] == "8.0.36"
    assert result.snapshot.attributes["engine_version"] == "8.0.36"


def test_in_place_modify_without_blue_green(lifecycle, plane, make_config):
    plane.add_instance("db")
    current = make_config(plane, "db")
    desired = dict(
        current,
        instance_class="db.m5.large",
        engine_version="8.0.36",
        allow_major_version_upgrade=True,
        apply_immediately=True,
    )

    result = lifecycle.update_instance(current, desired)

    assert result.success, result.diagnostics
    assert result.stages == ["modify"]
    (args, kwargs), = plane.calls_to("modify_instance")
    assert args == ("db",)
    assert kwargs["changes"] == {
        "db_instance_class": "db.m5.large",
        "deletion_protection": False,
        "apply_immediately": True,
        "engine_version": "8.0.36",
        "allow_major_version_upgrade": True,
    }
    assert plane.calls_to("create_deployment") == []
    assert result.snapshot.status == "available"


def test_in_place_modify_failure_is_reported(lifecycle, plane, make_config):
    plane.add_instance("db")
    plane.fail("modify_instance", RemoteAPIError("InvalidParameterCombination", "No modifications were requested"))
    current = make_config(plane, "db")

    result = lifecycle.update_instance(current, dict(current, port=3307))

    assert [item.summary for item in result.diagnostics.errors()] == [
        "updating DB Instance (db): modifying in place: InvalidParameterCombination: No modifications were requested"
    ]


def test_clearing_replication_source_promotes(lifecycle, plane, make_config):
    plane.add_instance("replica", replicate_source_db="primary")
    current = make_config(plane, "replica", replicate_source_db="primary", backup_window="03:00-04:00")
    desired = dict(current, replicate_source_db="")

    result = lifecycle.update_instance(current, desired)

    assert result.success, result.diagnostics
    assert result.stages == ["promote"]
    assert plane.calls_to("promote_read_replica") == [
        (("replica",), {"backup_retention_period": 7, "backup_window": "03:00-04:00"})
    ]
    assert "replicate_source_db" not in plane.instance("replica").attributes
    # Read back after the promotion, like every other update path.
    assert result.snapshot is not None
    assert result.snapshot.identifier == "replica"
    assert result.snapshot.status == "available"
    assert plane.calls[-1][0] == "describe_instance"


def test_new_replication_source_is_rejected(lifecycle, plane, make_config):
    plane.add_instance("db")
    current = make_config(plane, "db")

    result = lifecycle.update_instance(current, dict(current, replicate_source_db="other"))

    assert [item.summary for item in result.diagnostics.errors()] == [
        "cannot elect new source database for replication"
    ]
    assert plane.calls == []


def test_blue_green_enabled_accepts_mapping_or_bool():
    assert blue_green_enabled(ResourceChange({}, {"blue_green_update": {"enabled": True}}))
    assert blue_green_enabled(ResourceChange({}, {"blue_green_update": True}))
    assert not blue_green_enabled(ResourceChange({}, {"blue_green_update": {"enabled": False}}))
    assert not blue_green_enabled(ResourceChange({}, {}))


def test_delete_requires_final_snapshot_identifier(lifecycle, plane):
    plane.add_instance("db")

    diagnostics = lifecycle.delete_instance({"identifier": "db", "skip_final_snapshot": False})

    assert [item.summary for item in diagnostics] == [
        "final_snapshot_identifier is required when skip_final_snapshot is false"
    ]
    assert plane.calls == []


def test_delete_with_final_snapshot(lifecycle, plane):
    plane.add_instance("db")

    diagnostics = lifecycle.delete_instance(
        {"identifier": "db", "final_snapshot_identifier": "db-final", "delete_automated_backups": False}
    )

    assert not diagnostics.has_error()
    assert plane.calls_to("delete_instance") == [
        (
            ("db",),
            {
                "skip_final_snapshot": False,
                "final_snapshot_identifier": "db-final",
                "delete_automated_backups": False,
            },
        )
    ]
    assert "db" not in plane.instances


def test_delete_disables_protection_when_allowed(lifecycle, plane):
    plane.add_instance("db", deletion_protection=True)

    diagnostics = lifecycle.delete_instance(
        {"identifier": "db", "skip_final_snapshot": True, "deletion_protection": False, "apply_immediately": True}
    )

    assert not diagnostics.has_error(), diagnostics
    assert len(plane.calls_to("delete_instance")) == 2
    assert plane.calls_to("modify_instance")[0][1]["changes"]["deletion_protection"] is False
    assert "db" not in plane.instances


def test_delete_keeps_protection_without_apply_immediately(lifecycle, plane):
    plane.add_instance("db", deletion_protection=True)

    diagnostics = lifecycle.delete_instance({"identifier": "db", "skip_final_snapshot": True})

    assert len(diagnostics.errors()) == 1
    assert diagnostics.errors()[0].summary.startswith("deleting DB Instance (db): InvalidParameterCombination")
    assert plane.calls_to("modify_instance") == []
    assert "db" in plane.instances


def test_delete_of_missing_instance_succeeds(lifecycle, plane):
    diagnostics = lifecycle.delete_instance({"identifier": "ghost", "skip_final_snapshot": True})

    assert len(diagnostics) == 0


def test_delete_tolerates_delete_in_progress(lifecycle, plane):
    plane.add_instance("db", status="deleting")
    plane.script_instance("db", "deleting", None)

    diagnostics = lifecycle.delete_instance({"identifier": "db", "skip_final_snapshot": True})

    assert not diagnostics.has_error(), diagnostics
    assert "db" not in plane.instances


def test_delete_reports_other_api_errors(lifecycle, plane):
    plane.add_instance("db")
    plane.fail("delete_instance", RemoteAPIError(ERR_CODE_INVALID_PARAMETER_VALUE, "bad request"))

    diagnostics = lifecycle.delete_instance({"identifier": "db", "skip_final_snapshot": True})

    assert [item.summary for item in diagnostics] == [
        "deleting DB Instance (db): InvalidParameterValue: bad request"
    ]
