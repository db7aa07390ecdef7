import click

from mindex.helper.utils import get_config, save_config


@click.group()
def registry():
    """Manage registry configurations."""
    pass


@registry.command()
def show():
    """Show the current registry configuration."""
    config = get_config()
    if "insecure" in config["DEFAULT"]:
        click.echo(f"Insecure: {config['DEFAULT'].getboolean('insecure')}")
    else:
        click.echo("No configuration found")


@registry.command()
@click.option(
    "--insecure/--secure",
    default=False,
    help="Talk plain http to the registry",
)
def set(insecure):
    """Set the registry configuration."""
    config = get_config()
    config["DEFAULT"]["insecure"] = str(insecure).lower()
    save_config(config)
    click.echo(f"Setting insecure to {str(insecure).lower()}")
