import hashlib
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

from mindex.oci.defaults import (
    default_digest_algorithm,
    image_index_media_type,
    image_manifest_media_type,
)

# for reference:
#   https://github.com/opencontainers/image-spec/blob/main/descriptor.md#digests
digest_pattern = re.compile(
    r"^(?P<algorithm>[a-z0-9]+(?:[+._-][a-z0-9]+)*):(?P<encoded>[a-f0-9]+)$"
)

registered_algorithms = {
    "sha256": re.compile(r"^[a-f0-9]{64}$"),
    "sha512": re.compile(r"^[a-f0-9]{128}$"),
}


class MediaType(Enum):
    ImageManifest = image_manifest_media_type
    ImageIndex = image_index_media_type
    Unrecognized = None

    @classmethod
    def from_string(cls, media_type: str) -> "MediaType":
        for member in (cls.ImageManifest, cls.ImageIndex):
            if member.value == media_type:
                return member
        return cls.Unrecognized


def split_digest(digest: str) -> Tuple[str, str]:
    """
    Split ``<algorithm>:<encoded>`` into its two parts.
    Raises ValueError if the digest does not follow the OCI digest grammar.
    """
    if not isinstance(digest, str):
        raise ValueError(f"digest must be a string, got {type(digest).__name__}")
    match = digest_pattern.match(digest)
    if match is None:
        raise ValueError(f"malformed digest {digest!r}")
    return match.group("algorithm"), match.group("encoded")


def digest_problems(digest: str) -> list:
    try:
        algorithm, encoded = split_digest(digest)
    except ValueError as e:
        return [str(e)]
    encoded_pattern = registered_algorithms.get(algorithm)
    if encoded_pattern is not None and not encoded_pattern.match(encoded):
        return [f"malformed {algorithm} digest {digest!r}"]
    return []


@dataclass(frozen=True)
class Platform:
    """
    ref: https://github.com/opencontainers/image-spec/blob/main/image-index.md
    """

    os: str
    architecture: str
    variant: Optional[str] = None
    os_version: Optional[str] = None
    os_features: Optional[Tuple[str, ...]] = None

    def __post_init__(self):
        # empty refinements are not serialized, so they are no refinements
        for name in ("variant", "os_version", "os_features"):
            if not getattr(self, name):
                object.__setattr__(self, name, None)
        if self.os_features is not None:
            object.__setattr__(self, "os_features", tuple(self.os_features))

    @property
    def key(self) -> Tuple[str, str, Optional[str]]:
        return (self.os, self.architecture, self.variant or None)

    @classmethod
    def parse(cls, platform: str) -> "Platform":
        """Parse ``os/architecture[/variant]``, e.g. ``linux/arm64/v8``."""
        parts = platform.split("/")
        if len(parts) not in (2, 3) or not all(parts):
            raise ValueError(
                f"invalid platform {platform!r}, expected os/architecture[/variant]"
            )
        return cls(*parts)

    @classmethod
    def from_dict(cls, data: dict) -> "Platform":
        os_features = data.get("os.features")
        return cls(
            os=data.get("os", ""),
            architecture=data.get("architecture", ""),
            variant=data.get("variant"),
            os_version=data.get("os.version"),
            os_features=tuple(os_features) if os_features is not None else None,
        )

    def to_dict(self) -> dict:
        platform = {"architecture": self.architecture, "os": self.os}
        if self.variant:
            platform["variant"] = self.variant
        if self.os_version:
            platform["os.version"] = self.os_version
        if self.os_features:
            platform["os.features"] = list(self.os_features)
        return platform

    def problems(self) -> list:
        problems = []
        if not isinstance(self.os, str) or not self.os:
            problems.append("platform os is empty")
        if not isinstance(self.architecture, str) or not self.architecture:
            problems.append("platform architecture is empty")
        return problems

    def __str__(self):
        return "/".join(part for part in self.key if part)


@dataclass(frozen=True)
class Descriptor:
    """
    ref: https://github.com/opencontainers/image-spec/blob/main/descriptor.md
    """

    media_type: str
    digest: str
    size: int
    annotations: dict = field(default_factory=dict, compare=True, hash=False)

    @property
    def kind(self) -> MediaType:
        return MediaType.from_string(self.media_type)

    @property
    def algorithm(self) -> str:
        return split_digest(self.digest)[0]

    @classmethod
    def from_content(
        cls, content: bytes, media_type: str = image_manifest_media_type
    ) -> "Descriptor":
        checksum = hashlib.new(default_digest_algorithm, content).hexdigest()
        return cls(
            media_type=media_type,
            digest=f"{default_digest_algorithm}:{checksum}",
            size=len(content),
        )

    @classmethod
    def from_dict(cls, data: dict) -> "Descriptor":
        return cls(
            media_type=data.get("mediaType", ""),
            digest=data.get("digest", ""),
            size=data.get("size", 0),
            annotations=dict(data.get("annotations") or {}),
        )

    def to_dict(self) -> dict:
        descriptor = {
            "mediaType": self.media_type,
            "digest": self.digest,
            "size": self.size,
        }
        if self.annotations:
            descriptor["annotations"] = dict(self.annotations)
        return descriptor

    def problems(self) -> list:
        """
        Return every well-formedness problem of this descriptor, an empty
        list means the descriptor may be placed in an index.
        """
        problems = []
        if self.kind is MediaType.Unrecognized:
            problems.append(f"unrecognized media type {self.media_type!r}")
        problems.extend(digest_problems(self.digest))
        if isinstance(self.size, bool) or not isinstance(self.size, int):
            problems.append(f"size must be an integer, got {self.size!r}")
        elif self.size < 0:
            problems.append(f"size must not be negative, got {self.size}")
        return problems


@dataclass(frozen=True)
class ManifestReference:
    descriptor: Descriptor
    platform: Platform

    @classmethod
    def from_dict(cls, data: dict) -> "ManifestReference":
        return cls(
            descriptor=Descriptor.from_dict(data),
            platform=Platform.from_dict(data.get("platform") or {}),
        )

    def to_dict(self) -> dict:
        entry = self.descriptor.to_dict()
        entry["platform"] = self.platform.to_dict()
        return entry

    def problems(self) -> list:
        return self.descriptor.problems() + self.platform.problems()
