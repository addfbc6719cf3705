"""Utility functions for rollsuite"""

import getpass
import os
import secrets
from copy import deepcopy
from dataclasses import fields, is_dataclass

JSONValues = None | str | int | bool | list["JSONValues"] | dict[str, "JSONValues"]


def generate_tail(tail=5):
    """Returns random suffix"""
    return secrets.token_urlsafe(tail).translate(str.maketrans("", "", "-_")).lower()


def randomize(name, tail=5):
    "To avoid conflicts returns modified name with random suffix"
    return f"{name}-{generate_tail(tail)}"


def generate_topic_name():
    """Random KafkaTopic name"""
    return randomize("my-topic", tail=8)


def generate_consumer_group():
    """Random consumer group, a fresh group always starts from the earliest offset"""
    return randomize("my-consumer-group", tail=8)


def generate_user_name():
    """Random KafkaUser name"""
    return randomize("my-user", tail=6)


def _whoami():
    """Returns username"""
    try:
        return getpass.getuser()
    # want to catch broad exception and fallback at any circumstance
    # pylint: disable=broad-except
    except Exception:
        return str(os.getuid())


def asdict(obj) -> dict[str, JSONValues]:
    """
    Converts dataclass into the dict sent to the API server.
    Unlike `dataclasses.asdict` it skips None fields and defers to `asdict()` of nested objects,
    which is how CR sections like `valueFrom.configMapKeyRef` get their shape.
    """
    if not is_dataclass(obj):
        raise TypeError("asdict() should be called on dataclass instances")
    return _serialize(obj)


def _serialize(value):
    if hasattr(value, "asdict"):
        return value.asdict()
    if is_dataclass(value):
        present = ((field.name, getattr(value, field.name)) for field in fields(value))
        return {name: _serialize(item) for name, item in present if item is not None}
    if isinstance(value, list):
        return [_serialize(item) for item in value]
    if isinstance(value, dict):
        return {key: _serialize(item) for key, item in value.items()}
    return deepcopy(value)
