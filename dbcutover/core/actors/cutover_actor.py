"""
CutoverActor - 在 Ray actor 中执行实例更新 / 蓝绿切换 / 删除。

Each actor owns one control plane client and one lifecycle service.  Runs
share nothing but configuration, so several actors can drive cutovers of
different instances at the same time.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Mapping, Optional

import ray
from ray.util import metrics

from dbcutover.core.actors.config import ActorConfig
from dbcutover.core.config import get_orchestration_config, load_orchestration_config
from dbcutover.core.control_plane import ControlPlane
from dbcutover.core.controllers.lifecycle import InstanceLifecycle
from dbcutover.core.entities.types import CutoverResult, Diagnostics
from dbcutover.core.errors import CutoverError
from dbcutover.core.utils import configure_runtime_logging

logger = logging.getLogger(__name__)


@ray.remote
class CutoverActor:
    """Hosts an :class:`InstanceLifecycle`; every method returns a plain dict."""

    def __init__(self, control_plane: ControlPlane, config: ActorConfig):
        configure_runtime_logging()
        self.config = config
        self.settings = (
            load_orchestration_config(config.config_path) if config.config_path else get_orchestration_config()
        )
        self.control_plane = control_plane
        self.lifecycle = InstanceLifecycle(control_plane, config=self.settings)
        self._outcomes: Dict[str, int] = {"succeeded": 0, "failed": 0}
        self._last_error: Optional[str] = None

        # 在 actor 初始化时创建指标，避免重复注册
        self.run_counter = metrics.Counter(
            name="dbcutover_runs_total",
            description="Lifecycle operations handled by the actor",
            tag_keys=("actor", "operation", "outcome"),
        )
        self.run_latency_gauge = metrics.Gauge(
            name="dbcutover_run_duration_s",
            description="Duration of the last lifecycle operation (s)",
            tag_keys=("actor", "operation"),
        )
        logger.info("CutoverActor[%s] 初始化 update_timeout=%.0fs", config.name, self.settings.timeouts.update)

    # ------------------------------------------------------------------ #
    # Lifecycle operations
    # ------------------------------------------------------------------ #

    def run_cutover(
        self,
        current: Mapping[str, Any],
        desired: Mapping[str, Any],
        total_timeout: Optional[float] = None,
    ) -> dict:
        """Force a blue/green cutover regardless of ``blue_green_update``."""
        started = time.perf_counter()
        try:
            result = self.lifecycle.orchestrator.run_cutover(current, desired, total_timeout)
        except (CutoverError, ValueError) as exc:
            return self._failure("run_cutover", started, exc)
        return self._report("run_cutover", started, result.to_dict())

    def update_instance(
        self,
        current: Mapping[str, Any],
        desired: Mapping[str, Any],
        timeout: Optional[float] = None,
    ) -> dict:
        started = time.perf_counter()
        try:
            result: CutoverResult = self.lifecycle.update_instance(current, desired, timeout)
        except (CutoverError, ValueError) as exc:
            return self._failure("update_instance", started, exc)
        return self._report("update_instance", started, result.to_dict())

    def delete_instance(self, config: Mapping[str, Any], timeout: Optional[float] = None) -> dict:
        started = time.perf_counter()
        diagnostics: Diagnostics = self.lifecycle.delete_instance(config, timeout)
        payload: Dict[str, Any] = {
            "success": not diagnostics.has_error(),
            "diagnostics": diagnostics.to_list(),
        }
        errors = diagnostics.errors()
        if errors:
            payload["error"] = errors[0].summary
        return self._report("delete_instance", started, payload)

    def describe_instance(self, identifier: str) -> dict:
        try:
            snapshot = self.control_plane.describe_instance(identifier)
        except CutoverError as exc:
            return {"success": False, "error": str(exc)}
        return {"success": True, "snapshot": snapshot.to_dict()}

    def stats(self) -> dict:
        return {
            "name": self.config.name,
            "metadata": dict(self.config.metadata),
            "succeeded": self._outcomes["succeeded"],
            "failed": self._outcomes["failed"],
            "last_error": self._last_error,
        }

    # ------------------------------------------------------------------ #
    # Internals
    # ------------------------------------------------------------------ #

    def _failure(self, operation: str, started: float, exc: Exception) -> dict:
        logger.warning("CutoverActor[%s] %s 失败: %s", self.config.name, operation, exc)
        return self._report(operation, started, {"success": False, "error": str(exc), "diagnostics": []})

    def _report(self, operation: str, started: float, payload: Dict[str, Any]) -> dict:
        outcome = "succeeded" if payload.get("success") else "failed"
        self._outcomes[outcome] += 1
        if outcome == "failed":
            self._last_error = payload.get("error")

        tags = {"actor": self.config.name, "operation": operation}
        self.run_latency_gauge.set(time.perf_counter() - started, tags=tags)
        self.run_counter.inc(tags={**tags, "outcome": outcome})

        logger.info(
            "CutoverActor[%s] %s 完成 success=%s latency=%.2fs",
            self.config.name,
            operation,
            payload.get("success"),
            time.perf_counter() - started,
        )
        return payload
