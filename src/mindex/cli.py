#!/bin/env python3

import logging
import sys

import click

from mindex.commands import blob, index, registry


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose):
    """Build and validate multi-architecture OCI image indexes"""
    logging.basicConfig(
        stream=sys.stderr,
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


cli.add_command(index.index)
cli.add_command(blob.blob)
cli.add_command(registry.registry)


if __name__ == "__main__":
    cli()
