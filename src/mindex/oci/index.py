import dataclasses
import json
import logging
import threading
from dataclasses import dataclass, field
from typing import Optional

from mindex.oci.crypto import construct_entry_signed_data_string, sign_data
from mindex.oci.defaults import (
    annotation_signature_key,
    annotation_signed_string_key,
    image_index_media_type,
    index_schema_version,
)
from mindex.oci.descriptor import Descriptor, ManifestReference, Platform
from mindex.oci.errors import (
    DuplicatePlatformError,
    EmptyIndexError,
    InvalidDescriptorError,
    InvalidKeyError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImageIndex:
    """
    ref: https://github.com/opencontainers/image-spec/blob/main/image-index.md

    A parsed index is not necessarily valid, see mindex.oci.validator.
    Indexes produced by IndexBuilder.build are.
    """

    manifests: tuple = ()
    annotations: dict = field(default_factory=dict, hash=False)
    schema_version: int = index_schema_version
    media_type: Optional[str] = image_index_media_type

    def platforms(self) -> list:
        return [entry.platform for entry in self.manifests]

    def find(
        self, os: str, architecture: str, variant: Optional[str] = None
    ) -> Optional[ManifestReference]:
        key = (os, architecture, variant or None)
        for entry in self.manifests:
            if entry.platform.key == key:
                return entry
        return None


def to_dict(index: ImageIndex) -> dict:
    document = {"schemaVersion": index.schema_version}
    if index.media_type is not None:
        document["mediaType"] = index.media_type
    document["manifests"] = [entry.to_dict() for entry in index.manifests]
    if index.annotations:
        document["annotations"] = dict(index.annotations)
    return document


def serialize(index: ImageIndex) -> bytes:
    """
    Canonical JSON encoding of an index. Keys are sorted and no whitespace is
    emitted so the same index always hashes to the same digest; the manifests
    keep their order.
    """
    return json.dumps(
        to_dict(index), sort_keys=True, separators=(",", ":"), ensure_ascii=False
    ).encode("utf-8")


def index_descriptor(index: ImageIndex) -> Descriptor:
    return Descriptor.from_content(serialize(index), image_index_media_type)


def check_entry(descriptor: Descriptor, platform: Platform):
    problems = descriptor.problems() + platform.problems()
    if problems:
        raise InvalidDescriptorError(
            f"invalid descriptor {descriptor.digest!r} for {platform}: "
            + "; ".join(problems),
            digest=descriptor.digest,
        )


class IndexBuilder:
    """
    Accumulates per-platform manifests into an image index.

    Every mutating call validates its input and either fully applies or
    raises, so producers for different architectures may share one builder
    across threads.
    """

    def __init__(self, private_key: Optional[str] = None):
        self.private_key_path = private_key
        self._manifests = []
        self._annotations = {}
        self._lock = threading.Lock()

    @classmethod
    def from_index(
        cls, index: ImageIndex, private_key: Optional[str] = None
    ) -> "IndexBuilder":
        """
        Start a new builder from an existing index, to produce its replacement.
        Entries are validated again and keep their signatures.
        """
        builder = cls(private_key=private_key)
        for entry in index.manifests:
            builder._append(entry)
        for key, value in index.annotations.items():
            builder.set_annotation(key, value)
        return builder

    def __len__(self):
        with self._lock:
            return len(self._manifests)

    def _reference(
        self, descriptor: Descriptor, platform: Platform
    ) -> ManifestReference:
        check_entry(descriptor, platform)
        if self.private_key_path:
            descriptor = self.sign_entry(descriptor, platform)
        return ManifestReference(descriptor=descriptor, platform=platform)

    def _position(self, platform: Platform) -> Optional[int]:
        for i, entry in enumerate(self._manifests):
            if entry.platform.key == platform.key:
                return i
        return None

    def _append(self, entry: ManifestReference):
        check_entry(entry.descriptor, entry.platform)
        with self._lock:
            if self._position(entry.platform) is not None:
                raise DuplicatePlatformError(entry.platform)
            self._manifests.append(entry)

    def add_manifest(
        self, descriptor: Descriptor, platform: Platform
    ) -> ManifestReference:
        entry = self._reference(descriptor, platform)
        self._append(entry)
        logger.debug(f"Added {entry.descriptor.digest} for {platform}")
        return entry

    def replace_manifest(
        self, descriptor: Descriptor, platform: Platform
    ) -> Optional[ManifestReference]:
        """
        replaces the entry of the same platform with a new manifest entry,
        appends it if the platform is not part of the index yet
        """
        entry = self._reference(descriptor, platform)
        with self._lock:
            position = self._position(platform)
            if position is None:
                logger.debug(f"Did NOT find entry for {platform}, appending")
                self._manifests.append(entry)
                return None
            old_entry = self._manifests[position]
            self._manifests[position] = entry
        logger.debug(
            f"Replaced {old_entry.descriptor.digest} with {descriptor.digest} for {platform}"
        )
        return old_entry

    def remove_manifest(self, platform: Platform) -> ManifestReference:
        with self._lock:
            position = self._position(platform)
            if position is None:
                raise KeyError(f"no manifest for platform {platform}")
            return self._manifests.pop(position)

    def set_annotation(self, key: str, value: str):
        if not isinstance(key, str) or not key:
            raise InvalidKeyError("annotation key must not be empty")
        if not isinstance(value, str):
            raise InvalidKeyError(f"annotation value for {key!r} must be a string")
        with self._lock:
            self._annotations[key] = value

    def build(self) -> ImageIndex:
        with self._lock:
            if not self._manifests:
                raise EmptyIndexError("can not build an index without manifests")
            index = ImageIndex(
                manifests=tuple(self._manifests),
                annotations=dict(self._annotations),
            )
        logger.debug(f"Built index with {len(index.manifests)} manifests")
        return index

    def sign_entry(self, descriptor: Descriptor, platform: Platform) -> Descriptor:
        if not self.private_key_path:
            raise ValueError(
                "No Private Key was given. Can not sign, but signing was required."
            )
        data_to_sign = construct_entry_signed_data_string(descriptor, platform)
        signature = sign_data(data_to_sign, self.private_key_path)
        annotations = dict(descriptor.annotations)
        annotations.update(
            {
                annotation_signature_key: signature,
                annotation_signed_string_key: data_to_sign,
            }
        )
        return dataclasses.replace(descriptor, annotations=annotations)

