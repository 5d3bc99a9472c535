"""Shared CLI utilities."""

import sys
from pathlib import Path
from typing import Optional

import structlog
from rich.console import Console

console = Console()
logger = structlog.get_logger()


def get_components(project_dir: Optional[Path] = None, config_path: Optional[Path] = None) -> dict:
    """Initialize the feedback service and backend client for a project.

    Args:
        project_dir: Project whose sessions and queue to operate on (default: cwd)
        config_path: Explicit config file, else the standard lookup
    """
    from cli.config import load_config_model
    from feedback.service import FeedbackService
    from hindsight import HindsightClient

    project_dir = Path(project_dir or Path.cwd()).resolve()
    try:
        config = load_config_model(config_path, project_dir)
    except ValueError as e:
        console.print(f"[red]Config error:[/] {e}")
        sys.exit(1)

    client = HindsightClient.from_config(config.backend)
    service = FeedbackService.from_app_config(config, project_dir, client=client)

    return {
        "config": config,
        "project_dir": project_dir,
        "client": client,
        "service": service,
    }
