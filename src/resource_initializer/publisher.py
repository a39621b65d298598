"""
Result Publisher.

Exposes fields of the Action Target's result as deferred values that are
only resolvable once the trigger has reached APPLIED.
"""

from typing import Any

from resource_initializer.exceptions import ResultUnavailableError
from resource_initializer.models import TriggerState
from resource_initializer.state_store import StateStore


class DeferredValue:
    """A field of an invocation result, read when resolved."""

    def __init__(self, store: StateStore, logical_name: str, field: str):
        self._store = store
        self.logical_name = logical_name
        self.field = field

    def resolve(self) -> Any:
        """
        Return the field value from the current applied result.

        Raises:
            ResultUnavailableError: If the trigger is not APPLIED or the
                field is absent from the result
        """
        record = self._store.get(self.logical_name)
        if record is None:
            raise ResultUnavailableError(self.logical_name, self.field, "never applied")
        if record.state != TriggerState.APPLIED:
            reason = f"trigger is {record.state.value}"
            if record.error:
                reason = f"{reason}: {record.error}"
            raise ResultUnavailableError(self.logical_name, self.field, reason)
        if record.result is None or self.field not in record.result.fields:
            raise ResultUnavailableError(self.logical_name, self.field, "no such field in result")
        return record.result.fields[self.field]

    def __repr__(self) -> str:
        return f"DeferredValue({self.logical_name!r}, {self.field!r})"


class ResultPublisher:
    """Hands out deferred values for one logical resource."""

    def __init__(self, store: StateStore, logical_name: str):
        self._store = store
        self.logical_name = logical_name

    def field(self, name: str) -> DeferredValue:
        return DeferredValue(self._store, self.logical_name, name)
