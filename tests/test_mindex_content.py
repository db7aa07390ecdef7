import json

import pytest

from mindex.oci.content import LayoutContentStore
from mindex.oci.defaults import image_index_media_type, image_manifest_media_type
from mindex.oci.descriptor import Descriptor
from mindex.oci.errors import ContentNotFoundError, InvalidDescriptorError
from mindex.oci.helper import get_uri_for_digest, write_bytes_to_file
from mindex.oci.index import IndexBuilder, serialize
from mindex.oci.registry import RegistryContentStore
from mindex.oci.validator import ViolationKind, validate
from helper import LINUX_AMD64, LINUX_ARM64, fake_digest, manifest_bytes

CONTAINER_NAME_EXAMPLE = "127.0.0.1:18081/examplecontainer2:today"


class FakeResponse:
    def __init__(self, status_code=200, content=b""):
        self.status_code = status_code
        self.content = content
        self.reason = "OK" if status_code == 200 else "Not Found"

    def json(self):
        return json.loads(self.content)


class FakeRegistry:
    """records requests and serves manifests by digest"""

    def __init__(self, blobs):
        self.blobs = blobs
        self.requests = []

    def do_request(self, url, method="GET", data=None, headers=None, json=None, stream=False):
        self.requests.append((method, url, headers, data))
        if method == "PUT":
            return FakeResponse(201)
        reference = url.rsplit("/", 1)[-1]
        if reference not in self.blobs:
            return FakeResponse(404)
        return FakeResponse(200, self.blobs[reference])


@pytest.fixture
def registry_store():
    amd64 = manifest_bytes("amd64")
    blobs = {Descriptor.from_content(amd64).digest: amd64}
    fake = FakeRegistry(blobs)
    store = RegistryContentStore(CONTAINER_NAME_EXAMPLE, insecure=True)
    store.do_request = fake.do_request
    return store, fake


def test_layout_fetch(layout):
    content = manifest_bytes("arm64")
    descriptor = Descriptor.from_content(content)
    (layout / "blobs" / "sha256" / descriptor.digest[len("sha256:"):]).write_bytes(
        content
    )
    store = LayoutContentStore(str(layout))
    assert store.fetch(descriptor) == content
    assert store.index_path().endswith("index.json")


def test_layout_missing_blob(layout):
    store = LayoutContentStore(str(layout))
    with pytest.raises(ContentNotFoundError):
        store.fetch(Descriptor.from_content(b"missing"))


def test_layout_rejects_malformed_digest(layout):
    with pytest.raises(InvalidDescriptorError):
        LayoutContentStore(str(layout)).blob_path("../../etc/passwd")


def test_registry_fetch(registry_store):
    store, fake = registry_store
    amd64 = manifest_bytes("amd64")
    descriptor = Descriptor.from_content(amd64)

    assert store.fetch(descriptor) == amd64
    method, url, headers, _ = fake.requests[0]
    assert method == "GET"
    assert url == f"http://127.0.0.1:18081/v2/examplecontainer2/manifests/{descriptor.digest}"
    assert headers["Accept"] == descriptor.media_type


def test_registry_fetch_missing(registry_store):
    store, _ = registry_store
    with pytest.raises(ContentNotFoundError):
        store.fetch(Descriptor.from_content(b"missing"))


def test_registry_as_validation_source(registry_store):
    store, _ = registry_store
    builder = IndexBuilder()
    builder.add_manifest(Descriptor.from_content(manifest_bytes("amd64")), LINUX_AMD64)
    builder.add_manifest(
        Descriptor(image_manifest_media_type, fake_digest("a"), 10),
        LINUX_ARM64,
    )
    assert validate(builder.build(), fetch=store) == []


def test_registry_digest_mismatch(registry_store):
    store, fake = registry_store
    claimed = Descriptor.from_content(b"claimed manifest")
    fake.blobs[claimed.digest] = b"served manifest"
    builder = IndexBuilder()
    builder.add_manifest(claimed, LINUX_AMD64)
    violations = validate(builder.build(), fetch=store)
    assert [v.kind for v in violations] == [ViolationKind.DigestMismatch]


def test_push_index(registry_store):
    store, fake = registry_store
    builder = IndexBuilder()
    builder.add_manifest(Descriptor.from_content(manifest_bytes("amd64")), LINUX_AMD64)
    document = serialize(builder.build())

    store.push_index(document)

    method, url, headers, data = fake.requests[-1]
    assert method == "PUT"
    assert url.endswith("/v2/examplecontainer2/manifests/today")
    assert headers["Content-Type"] == image_index_media_type
    assert headers["Content-Length"] == str(len(document))
    assert data == document


def test_get_index_bytes(registry_store):
    store, fake = registry_store
    fake.blobs["today"] = b'{"schemaVersion": 2, "manifests": []}'
    assert store.get_index_bytes() == fake.blobs["today"]
    assert fake.requests[-1][2]["Accept"] == image_index_media_type


def test_write_bytes_to_file(tmp_path):
    path = str(tmp_path / "index.json")
    write_bytes_to_file(b"{}", path)
    with pytest.raises(ValueError):
        write_bytes_to_file(b"{}", path)


@pytest.mark.parametrize(
    "uri, expected",
    [
        ("ghcr.io/homebrew/core/hello", "ghcr.io/homebrew/core/hello@sha256:ff"),
        ("ghcr.io/homebrew/core/hello:2.10", "ghcr.io/homebrew/core/hello@sha256:ff"),
        ("ghcr.io/homebrew/core/hello@sha256:aa", "ghcr.io/homebrew/core/hello@sha256:ff"),
        ("127.0.0.1:18081/example:today", "127.0.0.1:18081/example@sha256:ff"),
    ],
)
def test_get_uri_for_digest(uri, expected):
    assert get_uri_for_digest(uri, "sha256:ff") == expected
