"""
Release models — digests and resolved release assets.
"""

from __future__ import annotations

import hashlib
import re

from pydantic import BaseModel, ConfigDict

from picolayer.core.errors import InvalidRequest

# algorithm → hex length
SUPPORTED_ALGORITHMS: dict[str, int] = {
    "sha256": 64,
    "sha384": 96,
    "sha512": 128,
    "sha1": 40,
}

_HEX_RE = re.compile(r"^[0-9a-fA-F]+$")


class Digest(BaseModel):
    """An algorithm-tagged hash, written ``algorithm:hex``."""

    model_config = ConfigDict(frozen=True)

    algorithm: str
    value: str

    @classmethod
    def parse(cls, text: str) -> Digest:
        """Parse ``sha256:abc…``.  Raises ``InvalidRequest`` when malformed."""
        if ":" not in text:
            raise InvalidRequest(
                f"Invalid checksum {text!r}: expected 'algorithm:hex'"
            )
        algorithm, value = text.split(":", 1)
        algorithm = algorithm.strip().lower()
        value = value.strip().lower()
        expected_len = SUPPORTED_ALGORITHMS.get(algorithm)
        if expected_len is None:
            raise InvalidRequest(f"Unsupported checksum algorithm: {algorithm!r}")
        if len(value) != expected_len or not _HEX_RE.match(value):
            raise InvalidRequest(
                f"Invalid {algorithm} digest: expected {expected_len} hex characters"
            )
        return cls(algorithm=algorithm, value=value)

    @classmethod
    def from_hex(cls, value: str) -> Digest:
        """Build a digest from a bare hex string, guessing the algorithm by length."""
        value = value.strip().lower()
        for algorithm, length in SUPPORTED_ALGORITHMS.items():
            if len(value) == length:
                return cls.parse(f"{algorithm}:{value}")
        raise InvalidRequest(f"Cannot infer checksum algorithm for {value!r}")

    @classmethod
    def compute(cls, data: bytes, algorithm: str = "sha256") -> Digest:
        return cls(algorithm=algorithm, value=hashlib.new(algorithm, data).hexdigest())

    def __str__(self) -> str:
        return f"{self.algorithm}:{self.value}"


class ReleaseAsset(BaseModel):
    """One downloadable asset of a resolved release."""

    model_config = ConfigDict(frozen=True)

    tag: str
    name: str
    url: str
    checksum: str | None = None
    platform: str = ""
    size: int = 0

    @property
    def digest(self) -> Digest | None:
        return Digest.parse(self.checksum) if self.checksum else None
