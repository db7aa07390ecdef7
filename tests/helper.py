import hashlib
import json

from mindex.oci.defaults import image_index_media_type, image_manifest_media_type
from mindex.oci.descriptor import Descriptor, Platform


def manifest_bytes(architecture: str, variant: str = "") -> bytes:
    manifest = {
        "schemaVersion": 2,
        "mediaType": image_manifest_media_type,
        "config": {
            "mediaType": "application/vnd.oci.image.config.v1+json",
            "digest": "sha256:" + hashlib.sha256(architecture.encode()).hexdigest(),
            "size": len(architecture),
        },
        "layers": [],
        "annotations": {"architecture": architecture, "variant": variant},
    }
    return json.dumps(manifest).encode("utf-8")


def manifest_descriptor(architecture: str, variant: str = "") -> Descriptor:
    return Descriptor.from_content(manifest_bytes(architecture, variant))


def fake_digest(char: str) -> str:
    return "sha256:" + char * 64


def index_document(manifests, **fields) -> bytes:
    document = {
        "schemaVersion": 2,
        "mediaType": image_index_media_type,
        "manifests": manifests,
    }
    document.update(fields)
    return json.dumps(document, indent=2).encode("utf-8")


def entry(digest: str, os="linux", architecture="amd64", variant=None, size=1234):
    platform = {"os": os, "architecture": architecture}
    if variant:
        platform["variant"] = variant
    return {
        "mediaType": image_manifest_media_type,
        "digest": digest,
        "size": size,
        "platform": platform,
    }


LINUX_AMD64 = Platform("linux", "amd64")
LINUX_ARM64 = Platform("linux", "arm64")
LINUX_ARM_V7 = Platform("linux", "arm", "v7")
