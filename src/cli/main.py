"""CLI entry point for recall-feedback."""

import sys
from pathlib import Path

import click

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from cli.commands import feedback
from cli.config import load_config_model
from cli.config_models import LoggingConfig
from cli.logging_config import setup_logging_from_config


@click.group()
@click.version_option(version="0.1.0")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.option("--json-logs", is_flag=True, help="Emit logs as JSON lines")
def cli(verbose: bool, json_logs: bool):
    """Recall feedback - learn which recalled facts actually get used."""
    try:
        log_config = load_config_model().logging
    except ValueError:
        # commands report the config error when they load it
        log_config = LoggingConfig()
    if verbose:
        log_config.level = "DEBUG"
    if json_logs:
        log_config.json_mode = True
    setup_logging_from_config(log_config)


cli.add_command(feedback)


if __name__ == "__main__":
    cli()
