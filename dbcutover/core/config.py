"""Configuration helpers for dbcutover.

This module loads optional YAML configuration files to customize runtime
behaviour such as waiter cadence, timeouts and retry rules.  Configuration
precedence:

1. Environment variable ``DBCUTOVER_CONFIG`` pointing to a YAML file.
2. ``dbcutover.yaml`` in the current working directory.
3. Built-in defaults bundled with the package (``config/default.yaml``).

Sections missing from a user file fall back to the bundled defaults.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from dbcutover.config.policy import RetryCallSite, RetryRuleSpec, coerce_rule, resolve_call_site

__all__ = [
    "OrchestrationConfig",
    "RetrySettings",
    "Timeouts",
    "WaiterDefaults",
    "get_orchestration_config",
    "load_orchestration_config",
    "reset_orchestration_config",
]


_ENV_VAR = "DBCUTOVER_CONFIG"
_CWD_FILE = "dbcutover.yaml"


@dataclass
class WaiterDefaults:
    poll_interval: float = 10.0
    settle_delay: float = 60.0
    continuous_target_occurrence: int = 3
    not_found_checks: int = 20


@dataclass
class Timeouts:
    create: float = 2400.0
    update: float = 4800.0
    delete: float = 3600.0


@dataclass
class RetrySettings:
    backoff: float = 0.5
    delete_source_timeout: float = 300.0
    switchover_timeout: float = 600.0
    rules: Dict[RetryCallSite, List[RetryRuleSpec]] = field(default_factory=dict)


@dataclass
class OrchestrationConfig:
    timeouts: Timeouts = field(default_factory=Timeouts)
    instance_waiter: WaiterDefaults = field(default_factory=WaiterDefaults)
    deployment_waiter: WaiterDefaults = field(
        default_factory=lambda: WaiterDefaults(continuous_target_occurrence=1)
    )
    retry: RetrySettings = field(default_factory=RetrySettings)
    blue_green_engines: Tuple[str, ...] = ("mariadb", "mysql")

    def extra_rules(self, site: RetryCallSite) -> List[RetryRuleSpec]:
        return list(self.retry.rules.get(site, []))


_orchestration_config: Optional[OrchestrationConfig] = None


def _resolve_config_path() -> Optional[Path]:
    env_path = os.environ.get(_ENV_VAR)
    if env_path:
        candidate = Path(env_path).expanduser()
        if candidate.is_file():
            return candidate

    cwd_file = Path.cwd() / _CWD_FILE
    if cwd_file.is_file():
        return cwd_file
    return None


def _load_default_dict() -> Dict[str, Any]:
    from importlib import resources

    with resources.files("dbcutover.config").joinpath("default.yaml").open("r", encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


def _load_yaml_dict(path: Optional[Path] = None) -> Dict[str, Any]:
    data = _load_default_dict()
    path = path or _resolve_config_path()
    if path is None:
        return data

    with path.open("r", encoding="utf-8") as fh:
        override = yaml.safe_load(fh) or {}
    if not isinstance(override, dict):
        raise ValueError(f"Configuration file {path} must contain a mapping")
    return _merge(data, override)


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    node = data.get(name) or {}
    if not isinstance(node, dict):
        raise ValueError(f"'{name}' section must be a mapping")
    return node


def _positive(value: Any, name: str, *, allow_zero: bool = True) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"'{name}' must be a number, got {value!r}") from exc
    if number < 0 or (not allow_zero and number == 0):
        raise ValueError(f"'{name}' must be {'non-negative' if allow_zero else 'positive'}, got {number}")
    return number


def _build_waiter(node: Dict[str, Any], name: str) -> WaiterDefaults:
    occurrence = int(_positive(node.get("continuous_target_occurrence", 1), f"{name}.continuous_target_occurrence", allow_zero=False))
    return WaiterDefaults(
        poll_interval=_positive(node.get("poll_interval", 10), f"{name}.poll_interval"),
        settle_delay=_positive(node.get("settle_delay", 0), f"{name}.settle_delay"),
        continuous_target_occurrence=occurrence,
        not_found_checks=int(_positive(node.get("not_found_checks", 20), f"{name}.not_found_checks")),
    )


def _build_rules(raw: Any) -> Dict[RetryCallSite, List[RetryRuleSpec]]:
    if not raw:
        return {}
    if not isinstance(raw, dict):
        raise ValueError("'retry.rules' must be a mapping of call site to rule list")
    rules: Dict[RetryCallSite, List[RetryRuleSpec]] = {}
    for key, entries in raw.items():
        site, hint = resolve_call_site(key)
        if site is None:
            raise ValueError(f"Invalid retry call site in 'retry.rules': {hint}")
        if not isinstance(entries, list):
            raise ValueError(f"'retry.rules.{key}' must be a list of mappings")
        rules[site] = [coerce_rule(item) for item in entries]
    return rules


def _build_orchestration_config(data: Dict[str, Any]) -> OrchestrationConfig:
    timeouts = _section(data, "timeouts")
    waiters = _section(data, "waiters")
    retry = _section(data, "retry")
    blue_green = _section(data, "blue_green")

    instance_node = waiters.get("instance") or {}
    deployment_node = waiters.get("deployment") or {}
    if not isinstance(instance_node, dict) or not isinstance(deployment_node, dict):
        raise ValueError("'waiters.instance' and 'waiters.deployment' must be mappings")

    engines = blue_green.get("engines", ["mariadb", "mysql"])
    if not isinstance(engines, list) or not engines:
        raise ValueError("'blue_green.engines' must be a non-empty list")

    return OrchestrationConfig(
        timeouts=Timeouts(
            create=_positive(timeouts.get("create", 2400), "timeouts.create", allow_zero=False),
            update=_positive(timeouts.get("update", 4800), "timeouts.update", allow_zero=False),
            delete=_positive(timeouts.get("delete", 3600), "timeouts.delete", allow_zero=False),
        ),
        instance_waiter=_build_waiter(instance_node, "waiters.instance"),
        deployment_waiter=_build_waiter(deployment_node, "waiters.deployment"),
        retry=RetrySettings(
            backoff=_positive(retry.get("backoff", 0.5), "retry.backoff"),
            delete_source_timeout=_positive(retry.get("delete_source_timeout", 300), "retry.delete_source_timeout"),
            switchover_timeout=_positive(retry.get("switchover_timeout", 600), "retry.switchover_timeout"),
            rules=_build_rules(retry.get("rules")),
        ),
        blue_green_engines=tuple(str(engine).strip().lower() for engine in engines),
    )


def load_orchestration_config(path: Optional[Path | str] = None) -> OrchestrationConfig:
    """Build a fresh configuration, bypassing the process-wide cache."""
    resolved = Path(path).expanduser() if path is not None else None
    return _build_orchestration_config(_load_yaml_dict(resolved))


def get_orchestration_config() -> OrchestrationConfig:
    global _orchestration_config
    if _orchestration_config is None:
        _orchestration_config = load_orchestration_config()
    return _orchestration_config


def reset_orchestration_config() -> None:
    """Reset cached orchestration configuration (intended for tests)."""
    global _orchestration_config
    _orchestration_config = None
