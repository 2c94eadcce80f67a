"""
Client-facing RayCutoverRunner façade.

Starts a small pool of :class:`CutoverActor` replicas and exposes a
synchronous API; independent cutovers (different instances) fan out across
the replicas round-robin.
"""

from __future__ import annotations

import itertools
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import ray

from dbcutover.core.actors.config import ActorConfig
from dbcutover.core.actors.cutover_actor import CutoverActor
from dbcutover.core.control_plane import ControlPlane

CutoverRequest = Tuple[Mapping[str, Any], Mapping[str, Any]]


class RayCutoverRunner:
    """Thin wrapper around a pool of CutoverActor replicas."""

    def __init__(
        self,
        control_plane: ControlPlane,
        name: str = "dbcutover-runner",
        *,
        replicas: int = 1,
        config_path: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None,
        namespace: Optional[str] = None,
    ):
        """
        Create the actor replicas.

        Args:
            control_plane: Client handed to every replica (serialized by Ray).
            name: Logical name; replicas are named ``<name>-<index>``.
            replicas: Number of actors; each runs one operation at a time.
            config_path: Orchestration YAML used by every replica.
            metadata: Free-form labels reported back by ``stats``.
            namespace: Ray namespace to place the actors in.
        """
        self.name = name
        self.config = ActorConfig(
            name=name,
            replicas=replicas,
            metadata=dict(metadata or {}),
            config_path=config_path,
        )
        actor_options: Dict[str, Any] = {}
        if namespace is not None:
            actor_options["namespace"] = namespace

        self._actors: List[ray.actor.ActorHandle] = [
            CutoverActor.options(**actor_options).remote(
                control_plane,
                ActorConfig(
                    name=self.config.replica_name(index),
                    replicas=1,
                    metadata=self.config.metadata,
                    config_path=config_path,
                ),
            )
            for index in range(replicas)
        ]
        self._cycle = itertools.cycle(range(replicas))

    def _ensure_actors(self) -> List[ray.actor.ActorHandle]:
        if not self._actors:
            raise RuntimeError("RayCutoverRunner has been shut down")
        return self._actors

    def _next_actor(self) -> ray.actor.ActorHandle:
        actors = self._ensure_actors()
        return actors[next(self._cycle)]

    @property
    def replicas(self) -> int:
        return len(self._actors)

    def submit_cutover(
        self,
        current: Mapping[str, Any],
        desired: Mapping[str, Any],
        total_timeout: Optional[float] = None,
    ) -> ray.ObjectRef:
        return self._next_actor().run_cutover.remote(current, desired, total_timeout)

    def run_cutover(
        self,
        current: Mapping[str, Any],
        desired: Mapping[str, Any],
        total_timeout: Optional[float] = None,
    ) -> dict:
        return ray.get(self.submit_cutover(current, desired, total_timeout))

    def run_cutovers(
        self,
        requests: Sequence[CutoverRequest],
        total_timeout: Optional[float] = None,
    ) -> List[dict]:
        """
        Run independent cutovers concurrently; results keep the request order.

        Each request must target a different instance.
        """
        identifiers = [dict(desired).get("identifier") or dict(current).get("identifier") for current, desired in requests]
        duplicates = {identifier for identifier in identifiers if identifiers.count(identifier) > 1}
        if duplicates:
            raise ValueError(f"Concurrent cutovers of the same DB Instance are not allowed: {sorted(duplicates)}")
        refs = [self.submit_cutover(current, desired, total_timeout) for current, desired in requests]
        return ray.get(refs)

    def update_instance(
        self,
        current: Mapping[str, Any],
        desired: Mapping[str, Any],
        timeout: Optional[float] = None,
    ) -> dict:
        return ray.get(self._next_actor().update_instance.remote(current, desired, timeout))

    def delete_instance(self, config: Mapping[str, Any], timeout: Optional[float] = None) -> dict:
        return ray.get(self._next_actor().delete_instance.remote(config, timeout))

    def stats(self) -> List[dict]:
        return ray.get([actor.stats.remote() for actor in self._ensure_actors()])

    def shutdown(self) -> None:
        for actor in self._actors:
            ray.kill(actor, no_restart=True)
        self._actors = []
