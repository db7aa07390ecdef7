import logging
import os

from mindex.oci.descriptor import Descriptor, split_digest
from mindex.oci.errors import ContentNotFoundError, InvalidDescriptorError

logger = logging.getLogger(__name__)


class LayoutContentStore:
    """
    Reads blobs of an OCI image layout directory.
    For reference see https://github.com/opencontainers/image-spec/blob/main/image-layout.md
    """

    def __init__(self, path: str):
        self.path = path

    def blob_path(self, digest: str) -> str:
        try:
            algorithm, encoded = split_digest(digest)
        except ValueError as e:
            raise InvalidDescriptorError(str(e), digest=digest) from e
        return os.path.join(self.path, "blobs", algorithm, encoded)

    def fetch(self, descriptor: Descriptor) -> bytes:
        blob_path = self.blob_path(descriptor.digest)
        if not os.path.isfile(blob_path):
            raise ContentNotFoundError(descriptor.digest, self.path)
        logger.debug(f"Reading {blob_path}")
        with open(blob_path, "rb") as f:
            return f.read()

    def __call__(self, descriptor: Descriptor) -> bytes:
        return self.fetch(descriptor)

    def index_path(self) -> str:
        return os.path.join(self.path, "index.json")
