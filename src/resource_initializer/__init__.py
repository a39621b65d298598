"""
Resource Initializer - run a one-shot action once per distinct configuration.

Bridges a declarative, idempotent deployment with an imperative side effect
(such as initializing a database) by deriving the resource identity from the
action's version and a fingerprint of its configuration.
"""

__version__ = "0.1.0"

from resource_initializer.config import Settings
from resource_initializer.fingerprint import fingerprint, physical_identity
from resource_initializer.models import ConfigurationPayload, TriggerState
from resource_initializer.publisher import ResultPublisher
from resource_initializer.trigger import LifecycleTrigger

__all__ = [
    "Settings",
    "ConfigurationPayload",
    "TriggerState",
    "LifecycleTrigger",
    "ResultPublisher",
    "fingerprint",
    "physical_identity",
    "__version__",
]
