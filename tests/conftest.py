"""
Shared pytest fixtures.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, List

import pytest
import ray

from dbcutover.core.config import OrchestrationConfig
from dbcutover.simple import InMemoryControlPlane

logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s", force=True)
logging.getLogger("dbcutover").setLevel(logging.DEBUG)


class FakeClock:
    """Virtual monotonic clock; ``sleep`` advances time instead of blocking."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def plane() -> InMemoryControlPlane:
    return InMemoryControlPlane()


@pytest.fixture
def orchestration_config() -> OrchestrationConfig:
    """Bundled defaults: 60s settle delay, 10s polling, 80m update budget."""
    return OrchestrationConfig()


def instance_config(plane: InMemoryControlPlane, identifier: str = "db", **overrides: Any) -> Dict[str, Any]:
    """Attribute map of an existing instance, as the caller would track it."""
    config: Dict[str, Any] = {
        "identifier": identifier,
        "arn": plane.arn(identifier),
        "engine": "mysql",
        "engine_version": "8.0.35",
        "instance_class": "db.t3.micro",
        "backup_retention_period": 7,
        "deletion_protection": False,
    }
    config.update(overrides)
    return config


@pytest.fixture
def make_config():
    return instance_config


@pytest.fixture
def fast_config_path(tmp_path):
    """YAML overrides that let real-time runs finish in well under a second."""
    path = tmp_path / "dbcutover.yaml"
    path.write_text(
        "waiters:\n"
        "  instance:\n"
        "    poll_interval: 0\n"
        "    settle_delay: 0\n"
        "    continuous_target_occurrence: 1\n"
        "  deployment:\n"
        "    poll_interval: 0\n"
        "    settle_delay: 0\n"
        "retry:\n"
        "  backoff: 0.01\n",
        encoding="utf-8",
    )
    return str(path)


@pytest.fixture
def ray_runtime():
    """Spin up a local Ray runtime for tests and mirror worker logs to the driver."""
    try:
        ray.init(
            ignore_reinit_error=True,
            local_mode=True,
            logging_level=logging.INFO,
        )
    except PermissionError as exc:
        pytest.skip(f"Ray init requires system permissions not available in this environment: {exc}")
    except Exception as exc:  # pragma: no cover - restricted sandboxes
        if "Operation not permitted" in str(exc):
            pytest.skip(f"Ray init skipped due to restricted environment: {exc}")
        raise
    try:
        yield
    finally:
        ray.shutdown()


@pytest.fixture
def runner_name() -> str:
    return f"test-runner-{uuid.uuid4().hex[:8]}"
