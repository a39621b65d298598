"""
Lifecycle Trigger.

Decides, on every convergence pass, whether the Action Target must run, and
keeps the Physical Identity that tells the declarative engine whether the
logical resource is the same instance or a replacement.

State machine per logical resource::

    ABSENT ──┐
    APPLIED ─┼─(identity changed)─> PENDING ─┬─> APPLIED
    FAILED ──┘                                └─> FAILED (error re-raised)

    any ─(delete)─> REMOVED   (no invocation)
"""

import structlog

from resource_initializer.config import Settings, get_settings
from resource_initializer.exceptions import InvocationError
from resource_initializer.fingerprint import fingerprint, physical_identity, serialize_payload
from resource_initializer.models import (
    ConfigurationPayload,
    TriggerPlan,
    TriggerRecord,
    TriggerState,
)
from resource_initializer.state_store import StateStore
from resource_initializer.targets import ActionTarget

logger = structlog.get_logger(__name__)


class LifecycleTrigger:
    """
    Invoke an Action Target at most once per distinct (version, payload).

    The candidate identity ``{logical_name}-AwsSdkCall-{version}{fingerprint}``
    is compared with the last applied identity. Only a difference leads to an
    invocation, so repeated passes with unchanged input are no-ops.
    """

    def __init__(
        self,
        logical_name: str,
        target: ActionTarget,
        store: StateStore,
        settings: Settings | None = None,
    ):
        self.logical_name = logical_name
        self.target = target
        self.store = store
        self.settings = settings or get_settings()
        self._lock = store.resource_lock(logical_name)

    @property
    def timeout(self) -> float:
        return self.settings.initializer.timeout_seconds

    def record(self) -> TriggerRecord:
        """Current record; a removed instance counts as a fresh, absent one."""
        record = self.store.get(self.logical_name)
        if record is None or record.state == TriggerState.REMOVED:
            return TriggerRecord(logical_name=self.logical_name)
        return record

    @property
    def state(self) -> TriggerState:
        return self.record().state

    def plan(self, payload: ConfigurationPayload) -> TriggerPlan:
        """Compute the candidate identity without invoking anything."""
        record = self.record()
        digest = fingerprint(payload, length=self.settings.initializer.fingerprint_length)
        version = self.target.version
        return TriggerPlan(
            logical_name=self.logical_name,
            fingerprint=digest,
            version=version,
            candidate_id=physical_identity(self.logical_name, version, digest),
            current_id=record.physical_id,
            state=record.state,
        )

    def converge(self, payload: ConfigurationPayload) -> TriggerRecord:
        """
        Run one convergence pass ("on create or update").

        Returns:
            The applied record

        Raises:
            InvocationError: If the Action Target fails or times out. The
                record is left FAILED. Errors outside the InvocationError
                family are wrapped in one.
        """
        log = logger.bind(logical_name=self.logical_name, target=self.target.name)

        with self._lock:
            record = self.record()
            plan = self.plan(payload)

            if not plan.needs_invocation:
                if record.state != TriggerState.APPLIED:
                    # Input reverted to the last applied identity; its result is still valid
                    record = record.transition(TriggerState.APPLIED, error=None, attempted_id=None)
                    self.store.put(record)
                    log.info("Restored applied identity", physical_id=record.physical_id)
                else:
                    log.info("Identity unchanged, skipping invocation", physical_id=record.physical_id)
                return record

            log.info(
                "Identity changed, invoking action target",
                previous_id=plan.current_id,
                candidate_id=plan.candidate_id,
            )
            request_body = serialize_payload(payload)
            pending = record.transition(TriggerState.PENDING, attempted_id=plan.candidate_id)
            self.store.put(pending)

            try:
                result = self.target.invoke(request_body, self.timeout)
            except Exception as e:
                failed = pending.transition(
                    TriggerState.FAILED,
                    error=str(e) or type(e).__name__,
                    invocation_count=pending.invocation_count + 1,
                )
                self.store.put(failed)
                log.error("Action target invocation failed", candidate_id=plan.candidate_id, error=failed.error)
                if isinstance(e, InvocationError):
                    raise
                raise InvocationError(
                    f"Action target {self.target.name!r} failed: {failed.error}",
                    target=self.target.name,
                    error_type=type(e).__name__,
                ) from e

            applied = pending.transition(
                TriggerState.APPLIED,
                physical_id=plan.candidate_id,
                fingerprint=plan.fingerprint,
                version=plan.version,
                attempted_id=None,
                result=result,
                error=None,
                invocation_count=pending.invocation_count + 1,
            )
            self.store.put(applied)
            log.info("Action target applied", physical_id=applied.physical_id)
            return applied

    def remove(self) -> TriggerRecord:
        """
        Handle deletion of the logical resource ("on delete").

        Nothing is sent to the Action Target and its side effects are left
        in place.
        """
        with self._lock:
            record = self.store.get(self.logical_name) or TriggerRecord(logical_name=self.logical_name)
            removed = record.transition(TriggerState.REMOVED)
            self.store.put(removed)
        logger.info("Logical resource removed", logical_name=self.logical_name, physical_id=removed.physical_id)
        return removed
