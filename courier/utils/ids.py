"""Deterministic ids for platform objects."""

import uuid

_NAMESPACE = uuid.UUID("6b2b9b8e-5a4c-4f57-9d8c-2f4f4e0a6d11")


def string_to_uuid(value: str) -> str:
    """Map an arbitrary string to a stable UUID string."""
    return str(uuid.uuid5(_NAMESPACE, value))


def scoped_id(platform_id: object, agent_id: str) -> str:
    """Id of a platform object as seen by one agent."""
    return string_to_uuid(f"{platform_id}-{agent_id}")
