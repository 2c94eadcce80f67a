from pathlib import Path
from textwrap import dedent

import pytest

from dbcutover.config.policy import RetryCallSite, default_rules, resolve_call_site
from dbcutover.core.config import (
    get_orchestration_config,
    load_orchestration_config,
    reset_orchestration_config,
)


@pytest.fixture(autouse=True)
def clear_config(monkeypatch, tmp_path):
    monkeypatch.delenv("DBCUTOVER_CONFIG", raising=False)
    monkeypatch.chdir(tmp_path)
    reset_orchestration_config()
    yield
    reset_orchestration_config()


def write_config(path: Path, body: str) -> Path:
    path.write_text(dedent(body), encoding="utf-8")
    return path


def test_bundled_defaults():
    cfg = get_orchestration_config()

    assert cfg.timeouts.create == 2400
    assert cfg.timeouts.update == 4800
    assert cfg.timeouts.delete == 3600
    assert cfg.instance_waiter.settle_delay == 60
    assert cfg.instance_waiter.poll_interval == 10
    assert cfg.instance_waiter.continuous_target_occurrence == 3
    assert cfg.deployment_waiter.continuous_target_occurrence == 1
    assert cfg.instance_waiter.not_found_checks == 20
    assert cfg.retry.delete_source_timeout == 300
    assert cfg.blue_green_engines == ("mariadb", "mysql")
    assert cfg.extra_rules(RetryCallSite.MODIFY_INSTANCE) == []


def test_env_file_merges_over_defaults(tmp_path: Path, monkeypatch):
    config_file = write_config(
        tmp_path / "custom.yaml",
        """
        timeouts:
          update: 900
        waiters:
          instance:
            settle_delay: 5
        retry:
          rules:
            modify:
              - code: Throttling
              - code: InvalidDBInstanceState
                message: busy
        """,
    )
    monkeypatch.setenv("DBCUTOVER_CONFIG", str(config_file))
    reset_orchestration_config()

    cfg = get_orchestration_config()

    assert cfg.timeouts.update == 900
    assert cfg.timeouts.delete == 3600
    assert cfg.instance_waiter.settle_delay == 5
    assert cfg.instance_waiter.continuous_target_occurrence == 3
    assert cfg.extra_rules(RetryCallSite.MODIFY_INSTANCE) == [
        {"code": "Throttling"},
        {"code": "InvalidDBInstanceState", "message": "busy"},
    ]


def test_cwd_file_is_picked_up(tmp_path: Path):
    write_config(
        tmp_path / "dbcutover.yaml",
        """
        blue_green:
          engines: [MySQL]
        """,
    )

    assert get_orchestration_config().blue_green_engines == ("mysql",)


def test_config_is_cached_until_reset(tmp_path: Path):
    first = get_orchestration_config()
    assert get_orchestration_config() is first

    write_config(tmp_path / "dbcutover.yaml", "timeouts:\n  update: 60\n")
    assert get_orchestration_config().timeouts.update == 4800

    reset_orchestration_config()
    assert get_orchestration_config().timeouts.update == 60


@pytest.mark.parametrize(
    "body",
    [
        "waiters:\n  instance:\n    poll_interval: -1\n",
        "timeouts:\n  update: 0\n",
        "retry:\n  rules:\n    teleport: [{code: X}]\n",
        "retry:\n  rules:\n    modify_instance: [{message: no code}]\n",
        "blue_green:\n  engines: []\n",
        "- not a mapping\n",
    ],
)
def test_invalid_values_are_rejected(tmp_path: Path, body: str):
    path = write_config(tmp_path / "broken.yaml", body)

    with pytest.raises(ValueError):
        load_orchestration_config(path)


def test_resolve_call_site_aliases():
    assert resolve_call_site("delete-deployment")[0] is RetryCallSite.DELETE_DEPLOYMENT
    assert resolve_call_site("Modify")[0] is RetryCallSite.MODIFY_INSTANCE
    assert resolve_call_site(RetryCallSite.SWITCHOVER) == (RetryCallSite.SWITCHOVER, "enum:SWITCHOVER")
    assert resolve_call_site(None) == (None, None)

    site, hint = resolve_call_site("teleport")
    assert site is None
    assert "teleport" in hint


def test_default_rules_are_copies():
    rules = default_rules(RetryCallSite.DELETE_INSTANCE)
    rules[0]["code"] = "mutated"

    assert default_rules(RetryCallSite.DELETE_INSTANCE)[0]["code"] != "mutated"
