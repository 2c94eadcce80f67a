#!/usr/bin/env python3
"""
dbcutover 蓝绿切换演示

展示：
1. 本地执行一次完整的蓝绿切换
2. 切换失败时的清理与诊断信息
3. 在 Ray actor 上并发执行多个独立切换
"""

import logging
import tempfile

import ray
import yaml

from dbcutover.core.config import load_orchestration_config
from dbcutover.core.controllers import InstanceLifecycle, RayCutoverRunner
from dbcutover.core.utils import install_stdout_logger
from dbcutover.simple import InMemoryControlPlane

# 演示用的快速配置：不等待 settle，轮询间隔走指数退避
FAST_CONFIG = {
    "waiters": {
        "instance": {"poll_interval": 0, "settle_delay": 0, "continuous_target_occurrence": 1},
        "deployment": {"poll_interval": 0, "settle_delay": 0},
    },
    "retry": {"backoff": 0.1},
}


def write_fast_config() -> str:
    handle = tempfile.NamedTemporaryFile("w", suffix=".yaml", delete=False)
    with handle:
        yaml.safe_dump(FAST_CONFIG, handle)
    return handle.name


def instance_config(identifier: str, **overrides):
    config = {
        "identifier": identifier,
        "engine": "mysql",
        "engine_version": "8.0.35",
        "instance_class": "db.t3.micro",
        "backup_retention_period": 7,
        "deletion_protection": False,
    }
    config.update(overrides)
    return config


def demo_local_cutover(config_path: str):
    """演示本地蓝绿切换"""
    print("\n" + "=" * 60)
    print("示例 1: 本地蓝绿切换")
    print("=" * 60)

    plane = InMemoryControlPlane()
    plane.add_instance("orders-db", instance_class="db.t3.micro", backup_retention_period=7)
    lifecycle = InstanceLifecycle(plane, config=load_orchestration_config(config_path))

    current = instance_config("orders-db", arn=plane.arn("orders-db"))
    desired = dict(current, instance_class="db.m5.large", blue_green_update={"enabled": True})

    result = lifecycle.update_instance(current, desired)
    print(f"   - 成功: {result.success}")
    print(f"   - 阶段: {result.stages}")
    print(f"   - 实例: {result.snapshot.to_dict() if result.snapshot else None}")
    print(f"   - 剩余实例: {sorted(plane.instances)}")


def demo_failed_switchover(config_path: str):
    """演示切换失败后的清理"""
    print("\n" + "=" * 60)
    print("示例 2: 切换失败")
    print("=" * 60)

    plane = InMemoryControlPlane()
    plane.add_instance("billing-db", backup_retention_period=7)
    plane.script_deployment(
        "bgd-0001",
        "PROVISIONING",
        "AVAILABLE",
        "SWITCHOVER_IN_PROGRESS",
        "SWITCHOVER_FAILED",
        details="Switchover timed out waiting for replication to catch up",
    )
    lifecycle = InstanceLifecycle(plane, config=load_orchestration_config(config_path))

    current = instance_config("billing-db", arn=plane.arn("billing-db"))
    desired = dict(current, engine_version="8.0.36", blue_green_update={"enabled": True})

    result = lifecycle.update_instance(current, desired)
    print(f"   - 成功: {result.success}")
    for diagnostic in result.diagnostics:
        print(f"   - [{diagnostic.severity.value}] {diagnostic.summary}")
    print(f"   - 剩余实例: {sorted(plane.instances)}")


def demo_ray_fan_out(config_path: str):
    """演示 Ray 上的并发切换"""
    print("\n" + "=" * 60)
    print("示例 3: Ray 并发切换")
    print("=" * 60)

    plane = InMemoryControlPlane()
    requests = []
    for name in ("users-db", "events-db"):
        plane.add_instance(name, backup_retention_period=7)
        current = instance_config(name, arn=plane.arn(name))
        requests.append((current, dict(current, instance_class="db.r6g.large")))

    runner = RayCutoverRunner(plane, "demo-runner", replicas=2, config_path=config_path)
    try:
        for payload in runner.run_cutovers(requests):
            print(f"   - {payload['snapshot']['identifier'] if payload['snapshot'] else '?'}: success={payload['success']}")
        for stats in runner.stats():
            print(f"   - {stats['name']}: succeeded={stats['succeeded']} failed={stats['failed']}")
    finally:
        runner.shutdown()


if __name__ == "__main__":
    install_stdout_logger(logging.INFO)
    path = write_fast_config()

    demo_local_cutover(path)
    demo_failed_switchover(path)

    ray.init(ignore_reinit_error=True)
    try:
        demo_ray_fan_out(path)
    finally:
        ray.shutdown()
