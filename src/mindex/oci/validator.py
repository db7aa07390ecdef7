import hashlib
import json
import logging
from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional

import jsonschema

from mindex.oci.crypto import (
    construct_entry_signed_data_string,
    verify_digest,
    verify_signature,
)
from mindex.oci.defaults import (
    annotation_signature_key,
    annotation_signed_string_key,
    image_index_media_type,
    index_schema_version,
)
from mindex.oci.descriptor import ManifestReference
from mindex.oci.errors import (
    ContentNotFoundError,
    DigestMismatchError,
    MalformedDocumentError,
    UnsupportedDigestAlgorithmError,
    describe_platform,
)
from mindex.oci.index import ImageIndex
from mindex.oci.schemas import index as indexSchema

logger = logging.getLogger(__name__)


class ViolationKind(Enum):
    SchemaMismatch = auto()
    EmptyIndex = auto()
    DuplicatePlatform = auto()
    InvalidDescriptor = auto()
    DigestMismatch = auto()
    UnsupportedDigestAlgorithm = auto()
    InvalidSignature = auto()


@dataclass(frozen=True)
class Violation:
    kind: ViolationKind
    message: str
    position: Optional[int] = None

    def __str__(self):
        if self.position is None:
            return f"{self.kind.name}: {self.message}"
        return f"{self.kind.name}: manifests[{self.position}]: {self.message}"


@dataclass(frozen=True)
class ParsedIndex:
    """
    An index as read from bytes, together with the byte range every entry
    of ``manifests`` occupies in ``raw``.
    """

    index: ImageIndex
    raw: bytes
    entry_ranges: tuple

    @property
    def digest(self) -> str:
        return f"sha256:{hashlib.sha256(self.raw).hexdigest()}"

    def entry_bytes(self, position: int) -> bytes:
        start, end = self.entry_ranges[position]
        return self.raw[start:end]


def _skip_whitespace(text: str, pos: int) -> int:
    while pos < len(text) and text[pos] in " \t\n\r":
        pos += 1
    return pos


def _expect(text: str, pos: int, token: str) -> int:
    pos = _skip_whitespace(text, pos)
    if not text.startswith(token, pos):
        raise ValueError(f"expected {token!r} at offset {pos}")
    return pos + 1


def find_entry_ranges(text: str) -> list:
    """
    Locate the character range of every element of the top level
    ``manifests`` array. ``text`` must already be known to be valid JSON.
    """
    decoder = json.JSONDecoder()
    ranges = []
    pos = _expect(text, 0, "{")
    pos = _skip_whitespace(text, pos)
    if text.startswith("}", pos):
        return ranges
    while True:
        pos = _skip_whitespace(text, pos)
        key, pos = decoder.raw_decode(text, pos)
        pos = _expect(text, pos, ":")
        pos = _skip_whitespace(text, pos)
        if key == "manifests" and text.startswith("[", pos):
            # a repeated key replaces earlier values, as in json.loads
            ranges = []
            pos = _skip_whitespace(text, pos + 1)
            if text.startswith("]", pos):
                pos += 1
            else:
                while True:
                    start = _skip_whitespace(text, pos)
                    _, pos = decoder.raw_decode(text, start)
                    ranges.append((start, pos))
                    pos = _skip_whitespace(text, pos)
                    if text.startswith("]", pos):
                        pos += 1
                        break
                    pos = _expect(text, pos, ",")
        else:
            _, pos = decoder.raw_decode(text, pos)
        pos = _skip_whitespace(text, pos)
        if text.startswith("}", pos):
            return ranges
        pos = _expect(text, pos, ",")


def parse(data: bytes) -> ParsedIndex:
    """
    Read a serialized image index.

    Raises MalformedDocumentError if data is not JSON or does not match the
    image index schema. Semantic problems are left to validate.
    """
    try:
        text = data.decode("utf-8")
        document = json.loads(text)
    except (UnicodeDecodeError, ValueError) as e:
        raise MalformedDocumentError(f"index is not valid JSON: {e}") from e
    except RecursionError as e:
        raise MalformedDocumentError("index is not valid JSON: nesting too deep") from e

    try:
        jsonschema.validate(document, schema=indexSchema)
    except jsonschema.ValidationError as e:
        location = "/".join(str(part) for part in e.absolute_path) or "document"
        raise MalformedDocumentError(
            f"index does not match schema at {location}: {e.message}"
        ) from e

    char_ranges = find_entry_ranges(text)
    # offsets into the decoded text, translated back into byte offsets
    entry_ranges = tuple(
        (len(text[:start].encode("utf-8")), len(text[:end].encode("utf-8")))
        for start, end in char_ranges
    )

    index = ImageIndex(
        manifests=tuple(
            ManifestReference.from_dict(entry) for entry in document["manifests"]
        ),
        annotations=dict(document.get("annotations") or {}),
        schema_version=document["schemaVersion"],
        media_type=document.get("mediaType"),
    )
    logger.debug(f"Parsed index with {len(index.manifests)} manifests")
    return ParsedIndex(index=index, raw=data, entry_ranges=entry_ranges)


def _fetcher(fetch):
    if fetch is None or callable(fetch):
        return fetch
    return fetch.fetch


def check_schema(index: ImageIndex) -> list:
    violations = []
    if index.schema_version != index_schema_version:
        violations.append(
            Violation(
                ViolationKind.SchemaMismatch,
                f"schemaVersion must be {index_schema_version}, got {index.schema_version!r}",
            )
        )
    if index.media_type != image_index_media_type:
        violations.append(
            Violation(
                ViolationKind.SchemaMismatch,
                f"mediaType must be {image_index_media_type}, got {index.media_type!r}",
            )
        )
    return violations


def check_duplicates(index: ImageIndex) -> list:
    positions = {}
    for i, entry in enumerate(index.manifests):
        positions.setdefault(entry.platform.key, []).append(i)

    violations = []
    for key, found_at in positions.items():
        if len(found_at) > 1:
            violations.append(
                Violation(
                    ViolationKind.DuplicatePlatform,
                    f"duplicate platform {describe_platform(key)} "
                    f"in manifests {', '.join(str(i) for i in found_at)}",
                )
            )
    return violations


def check_descriptors(index: ImageIndex) -> list:
    violations = []
    for i, entry in enumerate(index.manifests):
        problems = entry.problems()
        if problems:
            violations.append(
                Violation(ViolationKind.InvalidDescriptor, "; ".join(problems), i)
            )
    return violations


def check_digests(index: ImageIndex, fetch, skip: set) -> list:
    violations = []
    for i, entry in enumerate(index.manifests):
        if i in skip:
            continue
        descriptor = entry.descriptor
        try:
            content = fetch(descriptor)
        except ContentNotFoundError as e:
            logger.warning(f"Can not verify manifests[{i}]: {e}")
            continue
        try:
            verify_digest(descriptor, content)
        except DigestMismatchError as e:
            violations.append(Violation(ViolationKind.DigestMismatch, str(e), i))
        except UnsupportedDigestAlgorithmError as e:
            violations.append(
                Violation(
                    ViolationKind.UnsupportedDigestAlgorithm,
                    f"{e} in {descriptor.digest}",
                    i,
                )
            )
    return violations


def check_signatures(index: ImageIndex, public_key: str, skip: set) -> list:
    violations = []
    for i, entry in enumerate(index.manifests):
        if i in skip:
            continue
        try:
            verify_entry_signature(entry, public_key)
        except ValueError as e:
            violations.append(Violation(ViolationKind.InvalidSignature, str(e), i))
    return violations


def verify_entry_signature(entry: ManifestReference, public_key: str):
    annotations = entry.descriptor.annotations
    if annotation_signature_key not in annotations:
        raise ValueError(f"manifest entry {entry.descriptor.digest} is not signed")
    if annotation_signed_string_key not in annotations:
        raise ValueError(f"manifest entry {entry.descriptor.digest} is not signed")
    signature = annotations[annotation_signature_key]
    signed_data = annotations[annotation_signed_string_key]
    signed_data_expected = construct_entry_signed_data_string(
        entry.descriptor, entry.platform
    )
    if signed_data_expected != signed_data:
        raise ValueError(
            f"Signed data does not match expected signed data. {signed_data} != {signed_data_expected}"
        )
    verify_signature(signed_data, signature, public_key)


def validate(
    index: ImageIndex, fetch=None, public_key: Optional[str] = None
) -> list:
    """
    Check an index and report every violation found, in check order.

    :param index: the index to check, usually ParsedIndex.index
    :param fetch: optional callable or content store returning the bytes of a
        descriptor, enables digest verification
    :param public_key: optional path to a PEM certificate, enables signature
        verification of the manifest entries

    An empty list means the index is valid.
    """
    violations = check_schema(index)
    if not index.manifests:
        violations.append(
            Violation(ViolationKind.EmptyIndex, "index contains no manifests")
        )
    violations.extend(check_duplicates(index))
    descriptor_violations = check_descriptors(index)
    violations.extend(descriptor_violations)

    # malformed entries are already reported once
    malformed = {v.position for v in descriptor_violations}
    fetch = _fetcher(fetch)
    if fetch is not None:
        violations.extend(check_digests(index, fetch, malformed))
    if public_key is not None:
        violations.extend(check_signatures(index, public_key, malformed))

    for violation in violations:
        logger.debug(f"Violation {violation}")
    return violations


def check(data: bytes, fetch=None, public_key: Optional[str] = None) -> list:
    return validate(parse(data).index, fetch=fetch, public_key=public_key)
