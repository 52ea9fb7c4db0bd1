"""
Domain models — Pydantic types for picolayer.

All models are re-exported here for convenient access:

    from picolayer.core.models import InstallRequest, InstallResult, ReleaseAsset
"""

from picolayer.core.models.release import Digest, ReleaseAsset
from picolayer.core.models.request import BackendKind, InstallRequest
from picolayer.core.models.result import InstallResult, Outcome
from picolayer.core.models.settings import RetrySettings, Settings
from picolayer.core.models.version import VersionConstraint

__all__ = [
    "BackendKind",
    "Digest",
    "InstallRequest",
    "InstallResult",
    "Outcome",
    "ReleaseAsset",
    "RetrySettings",
    "Settings",
    "VersionConstraint",
]
