"""
Storage module - cloud object store and passcode registry.
"""

from .base import BaseObjectStore, StoredFile

__all__ = [
    "BaseObjectStore",
    "StoredFile",
    "create_object_store",
    "create_passcode_registry",
]


def create_object_store(**kwargs) -> BaseObjectStore:
    """Factory function to create the Drive-backed object store."""
    from .drive import DriveStorage

    return DriveStorage(**kwargs)


def create_passcode_registry(**kwargs):
    """Factory function to create the Sheets-backed passcode registry."""
    from .sheets import PasscodeRegistry

    return PasscodeRegistry(**kwargs)
