"""CLI command handlers."""

from facepass.cli.commands.info import run_info
from facepass.cli.commands.replay import run_replay

__all__ = [
    "run_info",
    "run_replay",
]
