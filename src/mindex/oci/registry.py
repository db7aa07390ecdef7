import json
import logging
from typing import Optional

import jsonschema
import requests
from oras.container import Container as OrasContainer
from oras.provider import Registry

from mindex.oci.defaults import image_index_media_type, image_manifest_media_type
from mindex.oci.descriptor import Descriptor
from mindex.oci.errors import ContentNotFoundError
from mindex.oci.schemas import index as indexSchema

logger = logging.getLogger(__name__)


class RegistryContentStore(Registry):
    """
    Fetches manifests from and pushes image indexes to an OCI registry.

    The container name selects repository and tag of the index, e.g.
    ``ghcr.io/example/app:1.0``.
    """

    def __init__(
        self,
        container_name: str,
        token: Optional[str] = None,
        insecure: bool = False,
    ):
        super().__init__(auth_backend="token", insecure=insecure)
        self.container = OrasContainer(container_name)
        self.container_name = container_name
        self.registry_url = self.container.registry
        if not token:
            logger.debug("No Token provided")
        else:
            self.auth.set_token_auth(token)

    def _get_manifest(self, reference: str, allowed_media_type: list) -> requests.Response:
        headers = {"Accept": ", ".join(allowed_media_type)}
        manifest_url = f"{self.prefix}://{self.container.manifest_url(reference)}"
        response = self.do_request(manifest_url, "GET", headers=headers)
        if response.status_code == 404:
            raise ContentNotFoundError(reference, self.container_name)
        self._check_200_response(response)
        return response

    def fetch(self, descriptor: Descriptor) -> bytes:
        response = self._get_manifest(
            descriptor.digest,
            [descriptor.media_type or image_manifest_media_type],
        )
        return response.content

    def __call__(self, descriptor: Descriptor) -> bytes:
        return self.fetch(descriptor)

    def get_index_bytes(self) -> bytes:
        tag = self.container.digest or self.container.tag
        response = self._get_manifest(tag, [image_index_media_type])
        return response.content

    def push_index(self, document: bytes) -> requests.Response:
        """
        Uploads a serialized index under the tag of the container.
        The bytes are sent unchanged so the registry computes the same digest.
        """
        jsonschema.validate(json.loads(document), schema=indexSchema)
        headers = {
            "Content-Type": image_index_media_type,
            "Content-Length": str(len(document)),
        }
        tag = self.container.digest or self.container.tag
        index_url = f"{self.prefix}://{self.container.manifest_url(tag)}"
        response = self.do_request(index_url, "PUT", headers=headers, data=document)
        self._check_200_response(response)
        logger.info(f"Pushed index to {self.container}")
        return response
