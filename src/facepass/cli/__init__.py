"""Command-line interface for facepass."""

import sys
import argparse
import logging


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="facepass",
        description="facepass - Face verified attendance",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  facepass info                                  # Effective defaults
  facepass info --config facepass.yaml           # Effective config from file
  facepass replay frames.jsonl                   # Liveness replay
  facepass replay frames.jsonl --mode registration
""",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable verbose logging"
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    info_parser = subparsers.add_parser(
        "info",
        help="Show effective thresholds, poses and geofence",
    )
    info_parser.add_argument("--config", type=str, metavar="PATH", help="YAML config file")

    replay_parser = subparsers.add_parser(
        "replay",
        help="Replay recorded detections through a state machine",
        description="Feed a JSONL file (one frame per line) through the liveness "
                    "or registration machine and print the transitions.",
    )
    replay_parser.add_argument("path", help="Path to JSONL detections file")
    replay_parser.add_argument(
        "--mode", choices=["liveness", "registration"], default="liveness",
        help="State machine to drive (default: liveness)",
    )
    replay_parser.add_argument("--config", type=str, metavar="PATH", help="YAML config file")

    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG)
    else:
        logging.basicConfig(level=logging.INFO)

    from facepass.cli import commands

    if args.command == "info":
        return commands.run_info(args)

    elif args.command == "replay":
        return commands.run_replay(args)

    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
