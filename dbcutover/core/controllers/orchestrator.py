"""
Blue/green deployment orchestrator.

Sequences one zero-downtime cutover of a DB instance:

1. pre-conditions (eligibility, backups, deletion protection on the source)
2. create the deployment (green environment)      -> registers "delete deployment"
3. wait for the deployment to become AVAILABLE
4. wait for the green instance itself to become available
5. apply the requested changes to the green instance
6. switch over and wait for SWITCHOVER_COMPLETED
7. retire the old (blue) instance                 -> registers "wait source deleted"
8. drain cleanup actions in reverse order, on every exit path

One :class:`DeadlineBudget` bounds the whole run; each wait point sizes its
timeout from whatever is left.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterator, List, Mapping, Optional

from dbcutover.config.policy import (
    ERR_CODE_INVALID_DB_INSTANCE_STATE,
    MSG_ALREADY_DELETING,
    RetryCallSite,
)
from dbcutover.core.config import OrchestrationConfig, get_orchestration_config
from dbcutover.core.control_plane import ControlPlane, deployment_status_fetch
from dbcutover.core.controllers.instance import InstanceHandler
from dbcutover.core.engine.cleanup import CleanupStack
from dbcutover.core.engine.deadline import DeadlineBudget
from dbcutover.core.engine.waiter import build_wait_spec
from dbcutover.core.entities.resources import Deployment, InstanceSnapshot, ResourceChange, parse_instance_arn
from dbcutover.core.entities.status import (
    DEPLOYMENT_AVAILABLE_PENDING,
    DEPLOYMENT_AVAILABLE_TARGET,
    DEPLOYMENT_DELETED_PENDING,
    DEPLOYMENT_FAILED_STATES,
    DEPLOYMENT_SWITCHOVER_PENDING,
    DEPLOYMENT_SWITCHOVER_TARGET,
    EMPTY_TARGET,
    DeploymentStatus,
)
from dbcutover.core.entities.types import CutoverResult, Diagnostics
from dbcutover.core.errors import (
    CutoverError,
    NotFoundError,
    RemoteAPIError,
    StageError,
    UnexpectedStateError,
    WaitTimeoutError,
)

logger = logging.getLogger(__name__)


class CutoverStage(str, Enum):
    """Stages of one cutover run; values double as error prefixes."""

    PRECONDITION = "checking pre-conditions"
    CREATE = "creating Blue/Green Deployment"
    WAIT_CREATED = "creating Blue/Green Deployment: waiting for Blue/Green Deployment"
    WAIT_TARGET_READY = "creating Blue/Green Deployment: waiting for Green environment"
    MODIFY_TARGET = "modifying Green environment"
    SWITCHOVER = "switching over Blue/Green Deployment"
    RETIRE_SOURCE = "deleting Blue/Green Deployment source"


@dataclass
class CutoverRun:
    """Mutable state of one orchestration run; never shared between runs."""

    resource_id: str
    budget: DeadlineBudget
    deployment: Optional[Deployment] = None
    target_id: Optional[str] = None
    source_id: Optional[str] = None
    stage: Optional[CutoverStage] = None
    stages: List[str] = field(default_factory=list)

    @property
    def switched_over(self) -> bool:
        return self.deployment is not None and self.deployment.status == DeploymentStatus.SWITCHOVER_COMPLETED.value


def _identifier_from_arn(arn: str) -> str:
    try:
        return parse_instance_arn(arn)
    except ValueError as exc:
        raise CutoverError(str(exc)) from exc


class BlueGreenOrchestrator:
    """Drives one blue/green cutover per :meth:`run_cutover` call."""

    def __init__(
        self,
        plane: ControlPlane,
        *,
        config: Optional[OrchestrationConfig] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.plane = plane
        self.config = config or get_orchestration_config()
        self._clock = clock
        self.handler = InstanceHandler(plane, config=self.config, clock=clock, sleep=sleep)
        self.waiter = self.handler.waiter
        self.runner = self.handler.runner

    # ------------------------------------------------------------------ #
    # Entry point
    # ------------------------------------------------------------------ #

    def run_cutover(
        self,
        current: Mapping[str, Any],
        desired: Mapping[str, Any],
        total_timeout: Optional[float] = None,
    ) -> CutoverResult:
        """
        Run the full cutover for the instance described by ``current``/``desired``.

        Args:
            current: Attribute map as it is today.
            desired: Attribute map requested by the caller.
            total_timeout: Budget for the whole run in seconds; defaults to
                the configured update timeout.

        Returns:
            :class:`CutoverResult` with the final snapshot (on success) and an
            ordered diagnostics list: the primary failure, if any, first,
            followed by cleanup failures.
        """
        change = ResourceChange(current, desired)
        budget = DeadlineBudget(
            total_timeout if total_timeout is not None else self.config.timeouts.update,
            clock=self._clock,
        )
        return self.execute(change, budget)

    def execute(self, change: ResourceChange, budget: DeadlineBudget) -> CutoverResult:
        run = CutoverRun(resource_id=change.resource_id, budget=budget)
        cleanup = CleanupStack()
        diagnostics = Diagnostics()
        result = CutoverResult(diagnostics=diagnostics)

        logger.info(
            "Starting Blue/Green update of DB Instance (%s), budget %.0fs, changes=%s",
            run.resource_id,
            budget.total,
            change.changed_keys(),
        )
        failed = False
        try:
            self._run_stages(change, run, cleanup, diagnostics)
        except CutoverError as exc:
            failed = True
            logger.warning("Blue/Green update of DB Instance (%s) failed: %s", run.resource_id, exc)
            diagnostics.append_error(str(exc))
        finally:
            executed = cleanup.drain(diagnostics)
            if executed:
                logger.info("Cleanup for DB Instance (%s) ran: %s", run.resource_id, executed)

        result.stages = list(run.stages)
        if run.deployment is not None:
            result.deployment_id = run.deployment.identifier
        if not failed:
            result.snapshot = self._final_snapshot(run, diagnostics)
        return result

    # ------------------------------------------------------------------ #
    # Main sequence
    # ------------------------------------------------------------------ #

    @contextmanager
    def _stage(self, run: CutoverRun, stage: CutoverStage) -> Iterator[None]:
        run.stage = stage
        run.stages.append(stage.name.lower())
        logger.debug("Updating DB Instance (%s): %s", run.resource_id, stage.value)
        try:
            run.budget.ensure_remaining(stage.value)
            yield
        except StageError:
            raise
        except CutoverError as exc:
            raise StageError(stage.value, run.resource_id, exc) from exc

    def _run_stages(
        self,
        change: ResourceChange,
        run: CutoverRun,
        cleanup: CleanupStack,
        diagnostics: Diagnostics,
    ) -> None:
        with self._stage(run, CutoverStage.PRECONDITION):
            self.handler.precondition(change, run.budget)
            source_arn = self.handler.source_arn(change)

        with self._stage(run, CutoverStage.CREATE):
            request = self.handler.create_deployment_request(change, source_arn)
            run.deployment = self.runner.run(
                lambda: self.plane.create_deployment(request),
                self.handler.classifier(RetryCallSite.CREATE_DEPLOYMENT),
                run.budget.remaining(),
                description=f"create Blue/Green Deployment for DB Instance ({run.resource_id})",
            )
            # Registered before anything else so later failures still tear it down.
            cleanup.push(
                f"updating DB Instance ({run.resource_id}): deleting Blue/Green Deployment",
                self._cleanup_delete_deployment,
                run,
            )
            diagnostics.append_info(f"created Blue/Green Deployment ({run.deployment.identifier})")

        with self._stage(run, CutoverStage.WAIT_CREATED):
            self._track(run, lambda: self.wait_deployment_available(run.deployment.identifier, run.budget.remaining()))

        with self._stage(run, CutoverStage.WAIT_TARGET_READY):
            run.target_id = _identifier_from_arn(run.deployment.target)
            self.handler.wait_available(run.target_id, run.budget.remaining())

        with self._stage(run, CutoverStage.MODIFY_TARGET):
            self.handler.modify_target(run.target_id, change, run.budget)

        with self._stage(run, CutoverStage.SWITCHOVER):
            self._track(run, lambda: self.switchover(run.deployment.identifier, run.budget))
            diagnostics.append_info(f"switched over Blue/Green Deployment ({run.deployment.identifier})")

        with self._stage(run, CutoverStage.RETIRE_SOURCE):
            self._retire_source(run, cleanup)

    def _track(self, run: CutoverRun, wait: Callable[[], Optional[Deployment]]) -> None:
        """Keep ``run.deployment`` pointing at the freshest observation, even on failure."""
        try:
            deployment = wait()
        except (UnexpectedStateError, WaitTimeoutError) as exc:
            if isinstance(exc.observation, Deployment):
                run.deployment = exc.observation
            raise
        except NotFoundError:
            run.deployment = None
            raise
        if deployment is not None:
            run.deployment = deployment

    def _retire_source(self, run: CutoverRun, cleanup: CleanupStack) -> None:
        run.source_id = _identifier_from_arn(run.deployment.source)
        try:
            source = self.plane.describe_instance(run.source_id)
        except NotFoundError:
            logger.info("Blue/Green Deployment source (%s) already gone", run.source_id)
            return

        if source.deletion_protection:
            self.handler.disable_deletion_protection(run.source_id, run.budget)

        timeout = min(self.config.retry.delete_source_timeout, run.budget.remaining())
        try:
            self.handler.delete_with_retry(run.source_id, timeout)
        except NotFoundError:
            logger.info("Blue/Green Deployment source (%s) disappeared before delete", run.source_id)
            return
        except RemoteAPIError as exc:
            if not (exc.code == ERR_CODE_INVALID_DB_INSTANCE_STATE and MSG_ALREADY_DELETING in exc.message):
                raise
            logger.info("Blue/Green Deployment source (%s) is already being deleted", run.source_id)

        cleanup.push(
            f"updating DB Instance ({run.resource_id}): {CutoverStage.RETIRE_SOURCE.value}: waiting for completion",
            self._cleanup_wait_source_deleted,
            run,
            run.source_id,
        )

    def _final_snapshot(self, run: CutoverRun, diagnostics: Diagnostics) -> Optional[InstanceSnapshot]:
        try:
            return self.plane.describe_instance(run.resource_id)
        except CutoverError as exc:
            diagnostics.append_warning(f"reading DB Instance ({run.resource_id}) after update: {exc}")
            return None

    # ------------------------------------------------------------------ #
    # Deployment wait points
    # ------------------------------------------------------------------ #

    def wait_deployment_available(
        self,
        identifier: str,
        timeout: float,
        *,
        settle_delay: Optional[float] = None,
    ) -> Optional[Deployment]:
        spec = build_wait_spec(
            DEPLOYMENT_AVAILABLE_PENDING,
            DEPLOYMENT_AVAILABLE_TARGET,
            timeout,
            self.config.deployment_waiter,
            settle_delay=settle_delay,
        )
        return self.waiter.wait(
            deployment_status_fetch(self.plane, identifier),
            spec,
            resource=f"Blue/Green Deployment ({identifier})",
        )

    def switchover(self, identifier: str, budget: DeadlineBudget) -> Optional[Deployment]:
        """
        Issue the switchover and wait for SWITCHOVER_COMPLETED.

        ``INVALID_CONFIGURATION`` / ``SWITCHOVER_FAILED`` are reported with the
        deployment's status details as the message.
        """
        self.runner.run(
            lambda: self.plane.switchover_deployment(identifier),
            self.handler.classifier(RetryCallSite.SWITCHOVER),
            min(self.config.retry.switchover_timeout, budget.remaining()),
            description=f"switchover Blue/Green Deployment ({identifier})",
        )
        spec = build_wait_spec(
            DEPLOYMENT_SWITCHOVER_PENDING,
            DEPLOYMENT_SWITCHOVER_TARGET,
            budget.remaining(),
            self.config.deployment_waiter,
        )
        try:
            return self.waiter.wait(
                deployment_status_fetch(self.plane, identifier),
                spec,
                resource=f"Blue/Green Deployment ({identifier})",
            )
        except UnexpectedStateError as exc:
            if exc.state in DEPLOYMENT_FAILED_STATES and isinstance(exc.observation, Deployment):
                details = exc.observation.status_details or exc.state
                raise UnexpectedStateError(exc.state, exc.expected, exc.observation, message=details) from exc
            raise

    def wait_deployment_deleted(
        self,
        identifier: str,
        timeout: float,
        *,
        settle_delay: Optional[float] = None,
    ) -> None:
        spec = build_wait_spec(
            DEPLOYMENT_DELETED_PENDING,
            EMPTY_TARGET,
            timeout,
            self.config.deployment_waiter,
            settle_delay=settle_delay,
        )
        self.waiter.wait(
            deployment_status_fetch(self.plane, identifier),
            spec,
            resource=f"Blue/Green Deployment ({identifier})",
        )

    # ------------------------------------------------------------------ #
    # Cleanup actions
    # ------------------------------------------------------------------ #

    def _cleanup_delete_deployment(self, run: CutoverRun, *, settle_delay: Optional[float] = None) -> None:
        deployment = run.deployment
        if deployment is None:
            logger.debug("Updating DB Instance (%s): Blue/Green Deployment disappeared", run.resource_id)
            return

        # Until switchover completed, the green instance is ours to remove too.
        delete_target = not run.switched_over
        logger.info(
            "Deleting Blue/Green Deployment (%s) delete_target=%s",
            deployment.identifier,
            delete_target,
        )
        try:
            self.runner.run(
                lambda: self.plane.delete_deployment(deployment.identifier, delete_target=delete_target),
                self.handler.classifier(RetryCallSite.DELETE_DEPLOYMENT),
                run.budget.remaining(),
                description=f"delete Blue/Green Deployment ({deployment.identifier})",
            )
        except NotFoundError:
            logger.info("Blue/Green Deployment (%s) already deleted", deployment.identifier)
            return

        self.wait_deployment_deleted(deployment.identifier, run.budget.remaining(), settle_delay=settle_delay)

    def _cleanup_wait_source_deleted(
        self,
        run: CutoverRun,
        source_id: str,
        *,
        settle_delay: Optional[float] = None,
    ) -> None:
        self.handler.wait_deleted(source_id, run.budget.remaining(), settle_delay=settle_delay)
