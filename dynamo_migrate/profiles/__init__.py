"""
Migration profiles and the profile registry.
"""

from dynamo_migrate.utils.registry import Registry

from .base import MigrationProfile, group_by_key
from .pictures import PicturesProfile


def default_profile_registry() -> Registry:
    """Registry of the profiles shipped with the engine."""
    return Registry("profile", {
        PicturesProfile.name: PicturesProfile,
    })


__all__ = [
    "MigrationProfile",
    "PicturesProfile",
    "group_by_key",
    "default_profile_registry",
]
