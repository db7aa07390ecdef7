import json
import logging
import os
import sys
from typing import Optional

import click
import requests
import yaml

from mindex.helper.utils import get_insecure
from mindex.oci.content import LayoutContentStore
from mindex.oci.defaults import image_manifest_media_type, registry_token_env
from mindex.oci.descriptor import Descriptor, Platform
from mindex.oci.errors import MindexError
from mindex.oci.helper import (
    get_uri_for_digest,
    read_bytes_from_file,
    write_bytes_to_file,
)
from mindex.oci.index import IndexBuilder, index_descriptor, serialize, to_dict
from mindex.oci.registry import RegistryContentStore
from mindex.oci.validator import parse, validate

logger = logging.getLogger(__name__)


@click.group()
def index():
    """Manage image indexes"""
    pass


def setup_registry(container_name: str) -> RegistryContentStore:
    token = os.getenv(registry_token_env)
    if token is None:
        logger.warning(f"{registry_token_env} is not set, using anonymous access")
    return RegistryContentStore(container_name, token, insecure=get_insecure())


def load_platform(platform) -> Platform:
    if isinstance(platform, str):
        return Platform.parse(platform)
    return Platform.from_dict(platform)


def load_manifests_file(manifests_file: str) -> tuple:
    """
    Read the manifest list of an index from yaml. Every entry either names
    ``digest`` and ``size`` of a pushed manifest, or a ``file`` (relative to
    the yaml file) the descriptor is computed from.
    """
    with open(manifests_file, "r") as f:
        data = yaml.safe_load(f)
        base_path = os.path.dirname(manifests_file)
    if not isinstance(data, dict) or not isinstance(data.get("manifests"), list):
        raise click.ClickException(f"{manifests_file} does not list any manifests")
    return data, base_path


def entry_descriptor(entry: dict, base_path: str) -> Descriptor:
    media_type = entry.get("mediaType", image_manifest_media_type)
    if "file" in entry:
        content = read_bytes_from_file(os.path.join(base_path, entry["file"]))
        return Descriptor.from_content(content, media_type)
    return Descriptor(
        media_type=media_type,
        digest=entry.get("digest", ""),
        size=entry.get("size", 0),
        annotations=dict(entry.get("annotations") or {}),
    )


@index.command()
@click.option(
    "--manifests",
    "manifests_file",
    required=True,
    type=click.Path(exists=True),
    help="yaml file listing the manifests of the index",
)
@click.option(
    "--output", required=True, type=click.Path(), help="Output path for the index"
)
@click.option(
    "--annotation",
    "annotations",
    multiple=True,
    help="index annotation as key=value, may be repeated",
)
@click.option(
    "--private_key",
    required=False,
    type=click.Path(),
    help="Path to private key to use for signing the manifest entries",
)
def create(manifests_file, output, annotations, private_key):
    """Create an image index from a list of per-platform manifests"""
    data, base_path = load_manifests_file(manifests_file)
    builder = IndexBuilder(private_key=private_key)
    try:
        for entry in data["manifests"]:
            if not isinstance(entry, dict):
                raise click.ClickException(
                    f"{manifests_file}: manifest entry {entry!r} is not a mapping"
                )
            builder.add_manifest(
                entry_descriptor(entry, base_path),
                load_platform(entry.get("platform") or {}),
            )
        for key, value in (data.get("annotations") or {}).items():
            builder.set_annotation(str(key), str(value))
        for annotation in annotations:
            key, _, value = annotation.partition("=")
            builder.set_annotation(key, value)
        built = builder.build()
        write_bytes_to_file(serialize(built), output)
    except (ValueError, OSError) as e:
        raise click.ClickException(str(e))
    click.echo(f"Created index {index_descriptor(built).digest} at {output}")


@index.command("validate")
@click.option(
    "--input", "input_path", required=True, type=click.Path(exists=True)
)
@click.option(
    "--layout",
    required=False,
    type=click.Path(exists=True, file_okay=False),
    help="OCI layout directory holding the manifests, enables digest verification",
)
@click.option(
    "--container",
    "container_name",
    required=False,
    help="fetch the manifests from this oci image reference for digest verification",
)
@click.option(
    "--public_key",
    required=False,
    type=click.Path(exists=True),
    help="Path to public key to use for verification of signatures",
)
def validate_index(input_path, layout, container_name, public_key):
    """Validate an image index and report every violation"""
    fetch = None
    if layout:
        fetch = LayoutContentStore(layout)
    elif container_name:
        fetch = setup_registry(container_name)
    try:
        parsed = parse(read_bytes_from_file(input_path))
    except MindexError as e:
        raise click.ClickException(str(e))

    try:
        violations = validate(parsed.index, fetch=fetch, public_key=public_key)
    except (ValueError, requests.RequestException) as e:
        raise click.ClickException(f"can not verify {input_path}: {e}")
    for violation in violations:
        click.echo(str(violation))
    if violations:
        click.echo(f"{input_path}: {len(violations)} violation(s)", err=True)
        sys.exit(1)
    click.echo(f"{input_path} is valid ({parsed.digest})")


@index.command()
@click.option(
    "--input", "input_path", required=True, type=click.Path(exists=True)
)
@click.option(
    "--platform",
    required=False,
    help="only show the entry for os/architecture[/variant]",
)
def inspect(input_path, platform: Optional[str]):
    """inspect an image index"""
    try:
        parsed = parse(read_bytes_from_file(input_path))
        if platform is None:
            click.echo(json.dumps(to_dict(parsed.index), indent=4))
            return
        wanted = Platform.parse(platform)
    except ValueError as e:
        raise click.ClickException(str(e))
    entry = parsed.index.find(wanted.os, wanted.architecture, wanted.variant)
    if entry is None:
        raise click.ClickException(f"no manifest for platform {platform}")
    click.echo(json.dumps(entry.to_dict(), indent=4))


@index.command()
@click.option(
    "--container",
    "container_name",
    required=True,
    help="oci image reference to push to, e.g. ghcr.io/example/app:1.0",
)
@click.option(
    "--input", "input_path", required=True, type=click.Path(exists=True)
)
def push(container_name, input_path):
    """Push an image index after validating it"""
    document = read_bytes_from_file(input_path)
    try:
        parsed = parse(document)
    except MindexError as e:
        raise click.ClickException(str(e))
    violations = validate(parsed.index)
    if violations:
        for violation in violations:
            click.echo(str(violation), err=True)
        raise click.ClickException(f"refusing to push invalid index {input_path}")
    store = setup_registry(container_name)
    try:
        store.push_index(document)
    except (ValueError, requests.RequestException) as e:
        raise click.ClickException(str(e))
    click.echo(f"Pushed {get_uri_for_digest(container_name, parsed.digest)}")
