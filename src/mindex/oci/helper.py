import os
import re


def write_bytes_to_file(data: bytes, output_path: str):
    if os.path.exists(output_path):
        raise ValueError(f"{output_path} already exists")
    with open(output_path, "wb") as fp:
        fp.write(data)


def read_bytes_from_file(input_path: str) -> bytes:
    with open(input_path, "rb") as fp:
        return fp.read()


def get_uri_for_digest(uri, digest):
    """
    Given a URI for an image, return a URI for the related digest.

    URI may be in any of the following forms:

        ghcr.io/homebrew/core/hello
        ghcr.io/homebrew/core/hello:2.10
        ghcr.io/homebrew/core/hello@sha256:ff81...47a
    """
    base_uri = re.split(r"@", uri, maxsplit=1)[0]
    last = base_uri.rsplit("/", 1)
    if ":" in last[-1]:
        base_uri = base_uri.rsplit(":", 1)[0]
    return f"{base_uri}@{digest}"
