"""fenbank package entrypoints."""

from fenbank.config import Settings, get_settings
from fenbank.pipeline import PipelineResult, run_pipeline


def main() -> int:
    """Run the command line interface."""
    from fenbank.cli import main as cli_main

    return cli_main()


__all__ = [
    "PipelineResult",
    "Settings",
    "get_settings",
    "main",
    "run_pipeline",
]
