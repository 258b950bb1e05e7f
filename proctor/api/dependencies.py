"""
FastAPI dependency providers.

Routes receive the object store and passcode registry through ``Depends`` so
tests can swap them with ``app.dependency_overrides``.
"""

from functools import lru_cache

from proctor.services.storage import create_object_store, create_passcode_registry
from proctor.services.storage.base import BaseObjectStore
from proctor.services.storage.sheets import PasscodeRegistry


@lru_cache
def get_object_store() -> BaseObjectStore:
    return create_object_store()


@lru_cache
def get_passcode_registry() -> PasscodeRegistry:
    return create_passcode_registry()
