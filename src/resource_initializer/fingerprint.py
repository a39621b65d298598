"""
Invocation fingerprinting.

A fingerprint is a short digest of the deterministic serialization of a
configuration payload. It only has to tell "same" from "different", so a
truncated MD5 is enough.
"""

import hashlib
import json
from collections.abc import Mapping
from typing import Any

from resource_initializer.models import ConfigurationPayload

DEFAULT_FINGERPRINT_LENGTH = 6
IDENTITY_MARKER = "AwsSdkCall"


def serialize_payload(payload: ConfigurationPayload | Mapping[str, Any]) -> str:
    """
    Serialize a payload deterministically.

    Keys are sorted at every level and separators are compact, so payloads
    built in a different key order serialize to the same string. The result
    is also the request body sent to the Action Target.

    A ``ConfigurationPayload`` is serialized as its request envelope. A plain
    mapping is serialized as given, so it matches a payload's fingerprint only
    when it is that payload's ``envelope()``.

    Raises:
        TypeError: If the payload holds values JSON cannot represent
        ValueError: If the payload holds NaN or an infinite float
    """
    body = payload.envelope() if isinstance(payload, ConfigurationPayload) else payload
    return json.dumps(body, sort_keys=True, separators=(",", ":"), ensure_ascii=False, allow_nan=False)


def fingerprint(
    payload: ConfigurationPayload | Mapping[str, Any],
    length: int = DEFAULT_FINGERPRINT_LENGTH,
) -> str:
    """Return the first ``length`` hex characters of the payload digest."""
    digest = hashlib.md5(serialize_payload(payload).encode("utf-8"), usedforsecurity=False)
    return digest.hexdigest()[:length]


def physical_identity(logical_name: str, version: str | int, fingerprint: str) -> str:
    """Format the identity token handed to the declarative engine."""
    return f"{logical_name}-{IDENTITY_MARKER}-{version}{fingerprint}"
