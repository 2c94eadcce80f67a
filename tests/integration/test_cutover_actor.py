"""
Integration tests for CutoverActor and the RayCutoverRunner façade.
"""

from __future__ import annotations

import pytest
import ray

from dbcutover.core.actors import ActorConfig, CutoverActor
from dbcutover.core.controllers import RayCutoverRunner
from dbcutover.core.errors import RemoteAPIError


def test_runner_executes_cutover(ray_runtime, plane, make_config, fast_config_path, runner_name):
    plane.add_instance("orders", backup_retention_period=7)
    current = make_config(plane, "orders")
    desired = dict(current, instance_class="db.m5.large")

    runner = RayCutoverRunner(plane, runner_name, config_path=fast_config_path)
    try:
        payload = runner.run_cutover(current, desired)

        assert payload["success"] is True, payload
        assert payload["snapshot"]["identifier"] == "orders"
        assert payload["snapshot"]["attributes"]["db_instance_class"] == "db.m5.large"
        assert payload["deployment_id"] == "bgd-0001"
        assert payload["stages"][-1] == "retire_source"

        stats = runner.stats()
        assert stats[0]["name"] == f"{runner_name}-0"
        assert stats[0]["succeeded"] == 1
        assert stats[0]["failed"] == 0
    finally:
        runner.shutdown()


def test_runner_fans_out_independent_cutovers(ray_runtime, plane, make_config, fast_config_path, runner_name):
    requests = []
    for name in ("users", "events", "billing"):
        plane.add_instance(name, backup_retention_period=7)
        current = make_config(plane, name)
        requests.append((current, dict(current, instance_class="db.r6g.large")))

    runner = RayCutoverRunner(plane, runner_name, replicas=2, config_path=fast_config_path)
    try:
        assert runner.replicas == 2
        results = runner.run_cutovers(requests)

        assert [payload["success"] for payload in results] == [True, True, True]
        assert [payload["snapshot"]["identifier"] for payload in results] == ["users", "events", "billing"]
        assert sum(item["succeeded"] for item in runner.stats()) == 3
    finally:
        runner.shutdown()


def test_runner_rejects_concurrent_cutovers_of_one_instance(ray_runtime, plane, make_config, fast_config_path, runner_name):
    plane.add_instance("orders")
    current = make_config(plane, "orders")
    runner = RayCutoverRunner(plane, runner_name, replicas=2, config_path=fast_config_path)
    try:
        with pytest.raises(ValueError, match="orders"):
            runner.run_cutovers([(current, dict(current, port=1)), (current, dict(current, port=2))])
    finally:
        runner.shutdown()


def test_failure_is_reported_as_dict(ray_runtime, plane, make_config, fast_config_path, runner_name):
    plane.add_instance("orders", backup_retention_period=7)
    plane.fail("create_deployment", RemoteAPIError("InvalidParameterValue", "bad engine version"))
    current = make_config(plane, "orders")

    runner = RayCutoverRunner(plane, runner_name, config_path=fast_config_path)
    try:
        payload = runner.run_cutover(current, dict(current, engine_version="9.9"))

        assert payload["success"] is False
        assert payload["error"] == (
            "updating DB Instance (orders): creating Blue/Green Deployment: InvalidParameterValue: bad engine version"
        )
        assert runner.stats()[0]["last_error"] == payload["error"]
    finally:
        runner.shutdown()


def test_actor_update_and_delete(ray_runtime, plane, make_config, fast_config_path, runner_name):
    plane.add_instance("orders")
    current = make_config(plane, "orders")
    actor = CutoverActor.remote(plane, ActorConfig(name=runner_name, config_path=fast_config_path))

    unchanged = ray.get(actor.update_instance.remote(current, dict(current, tags={"a": "b"})))
    assert unchanged == {"success": True, "snapshot": None, "diagnostics": [], "stages": []}

    modified = ray.get(actor.update_instance.remote(current, dict(current, port=3307, apply_immediately=True)))
    assert modified["success"] is True, modified
    assert modified["snapshot"]["attributes"]["db_port_number"] == 3307

    deleted = ray.get(actor.delete_instance.remote({"identifier": "orders", "skip_final_snapshot": True}))
    assert deleted == {"success": True, "diagnostics": []}

    described = ray.get(actor.describe_instance.remote("orders"))
    assert described["success"] is False
    assert "orders" in described["error"]

    invalid = ray.get(actor.update_instance.remote({}, {}))
    assert invalid["success"] is False

    stats = ray.get(actor.stats.remote())
    assert stats["succeeded"] == 3
    assert stats["failed"] == 1
    ray.kill(actor, no_restart=True)


def test_actor_config_validation():
    with pytest.raises(ValueError):
        ActorConfig(name="bad", replicas=0)
    assert ActorConfig(name="runner").replica_name(2) == "runner-2"
