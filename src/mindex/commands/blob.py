import click

from mindex.oci.crypto import calculate_sha256, verify_digest
from mindex.oci.descriptor import Descriptor
from mindex.oci.errors import MindexError
from mindex.oci.helper import read_bytes_from_file


@click.group()
def blob():
    """Inspect content blobs"""
    pass


@blob.command()
@click.option("--file", "file_path", required=True, type=click.Path(exists=True))
def digest(file_path):
    """Print digest and size of a file"""
    content = read_bytes_from_file(file_path)
    click.echo(f"sha256:{calculate_sha256(file_path)}\t{len(content)}")


@blob.command()
@click.option("--file", "file_path", required=True, type=click.Path(exists=True))
@click.option("--digest", required=True, help="claimed digest, e.g. sha256:...")
@click.option("--size", required=True, type=int, help="claimed size in bytes")
def verify(file_path, digest, size):
    """Verify a file against a claimed digest and size"""
    descriptor = Descriptor(media_type="", digest=digest, size=size)
    try:
        verify_digest(descriptor, read_bytes_from_file(file_path))
    except MindexError as e:
        raise click.ClickException(str(e))
    click.echo(f"{file_path} matches {digest}")
