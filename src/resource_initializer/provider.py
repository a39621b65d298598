"""
CloudFormation custom resource adapter.

Maps lifecycle events onto the Lifecycle Trigger: Create and Update run a
convergence pass, Delete only records the removal.
"""

from collections.abc import Mapping
from typing import Any

import structlog

from resource_initializer.exceptions import ConfigurationError
from resource_initializer.models import ConfigurationPayload
from resource_initializer.trigger import LifecycleTrigger

logger = structlog.get_logger(__name__)

CONVERGE_EVENTS = {"Create", "Update"}
DELETE_EVENT = "Delete"


def payload_from_event(event: Mapping[str, Any], required: tuple[str, ...] = ()) -> ConfigurationPayload:
    """Read the configuration payload from ``ResourceProperties.Config``."""
    properties = event.get("ResourceProperties") or {}
    config = properties.get("Config")
    if not isinstance(config, Mapping):
        raise ConfigurationError("ResourceProperties.Config must be a mapping", field="Config")
    return ConfigurationPayload.from_mapping(config, required=required)


def handle_event(
    event: Mapping[str, Any],
    trigger: LifecycleTrigger,
    required: tuple[str, ...] = (),
) -> dict[str, Any]:
    """
    Handle one custom resource event.

    Returns:
        ``PhysicalResourceId`` and ``Data`` for the custom resource response

    Raises:
        ConfigurationError: For an unknown request type or bad properties
        InvocationError: If the Action Target fails; the engine marks the
            resource failed and rolls the deployment back
    """
    request_type = event.get("RequestType")
    logger.info("Custom resource event", request_type=request_type, logical_name=trigger.logical_name)

    if request_type in CONVERGE_EVENTS:
        record = trigger.converge(payload_from_event(event, required))
        return {
            "PhysicalResourceId": record.physical_id,
            "Data": dict(record.result.fields) if record.result else {},
        }

    if request_type == DELETE_EVENT:
        record = trigger.remove()
        return {"PhysicalResourceId": event.get("PhysicalResourceId") or record.physical_id}

    raise ConfigurationError(f"Unsupported request type: {request_type!r}", field="RequestType")


def on_event(event: Mapping[str, Any], context: Any = None) -> dict[str, Any]:
    """
    Lambda entry point for a custom resource provider.

    The Action Target is named by ``ResourceProperties.TargetFunction`` and
    trigger records go to the store selected by the settings.
    """
    from resource_initializer.config import get_settings
    from resource_initializer.state_store import get_state_store
    from resource_initializer.targets import LambdaActionTarget

    properties = event.get("ResourceProperties") or {}
    function = properties.get("TargetFunction")
    if not function:
        raise ConfigurationError("ResourceProperties.TargetFunction is required", field="TargetFunction")

    settings = get_settings()
    trigger = LifecycleTrigger(
        event.get("LogicalResourceId") or function,
        LambdaActionTarget(function, version=properties.get("TargetVersion"), settings=settings),
        get_state_store(settings),
        settings=settings,
    )
    return handle_event(event, trigger)
