"""
holdtype CLI

Entry point for the holdtype command.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional, TextIO

from holdtype import __version__
from holdtype.config import Config, default_config_path
from holdtype.errors import HoldtypeError
from holdtype.state import StateFile

logger = logging.getLogger(__name__)

# Exit codes
EXIT_SUCCESS = 0
EXIT_ERROR = 1
EXIT_USAGE = 2

STATUS_ICONS = {
    "idle": "🎙️",
    "recording": "🔴",
    "transcribing": "⏳",
    "stopped": "⭘",
}


def setup_logging(verbose: bool = False, stream: TextIO = sys.stdout) -> None:
    """Configure logging"""
    level = logging.DEBUG if verbose else logging.INFO
    format_str = "%(asctime)s %(levelname)s %(name)s: %(message)s"

    logging.basicConfig(
        level=level,
        format=format_str,
        stream=stream,
    )

    # Reduce noise from third-party libraries
    logging.getLogger("faster_whisper").setLevel(logging.WARNING)
    logging.getLogger("ctranslate2").setLevel(logging.WARNING)
    logging.getLogger("pynput").setLevel(logging.WARNING)


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser"""
    parser = argparse.ArgumentParser(
        prog="holdtype",
        description="Push-to-talk voice dictation daemon",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"holdtype {__version__}",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        help="Path to config file (default: ~/.config/holdtype/config.yml)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # daemon command
    daemon_parser = subparsers.add_parser(
        "daemon",
        help="Start the dictation daemon",
    )
    daemon_parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    # transcribe-worker command
    worker_parser = subparsers.add_parser(
        "transcribe-worker",
        help="Transcribe one request from stdin (spawned by the daemon)",
    )
    worker_parser.add_argument(
        "--config",
        dest="worker_config",
        type=Path,
        help="Path to config file",
    )
    worker_parser.add_argument("--model", help="Whisper model name or path")
    worker_parser.add_argument("--language", help="Language code, or 'auto'")
    worker_parser.add_argument(
        "--translate",
        action="store_true",
        help="Translate to English",
    )
    worker_parser.add_argument("--threads", type=int, help="CPU threads for inference")
    worker_parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    # status command
    status_parser = subparsers.add_parser(
        "status",
        help="Print the daemon state from the state file",
    )
    status_parser.add_argument(
        "--format",
        choices=["text", "json"],
        default="text",
        help="Output format (json is Waybar-compatible)",
    )

    return parser


def run_transcribe_worker(parsed: argparse.Namespace) -> int:
    """Run the one-shot worker; only the response line goes to stdout"""
    from holdtype.ipc import WorkerResponse, write_response
    from holdtype.worker import run_worker

    setup_logging(verbose=parsed.verbose, stream=sys.stderr)

    config_path = parsed.worker_config or parsed.config
    try:
        config = Config.load(config_path)
    except SystemExit:
        # Config.load has already logged the reason to stderr
        path = config_path or default_config_path()
        write_response(sys.stdout, WorkerResponse.failure(f"Failed to load config: {path}"))
        return EXIT_SUCCESS

    whisper = config.whisper
    if parsed.model:
        whisper.model = parsed.model
    if parsed.language:
        whisper.language = parsed.language
    if parsed.translate:
        whisper.translate = True
    if parsed.threads is not None:
        whisper.threads = parsed.threads

    return run_worker(whisper, sys.stdin.buffer, sys.stdout)


def print_status(config: Config, output_format: str = "text") -> int:
    """Print the current daemon state"""
    state_path = config.resolve_state_file()
    if state_path is None:
        print("State file is disabled; set state_file in the config", file=sys.stderr)
        return EXIT_ERROR

    state = StateFile(state_path).read() or "stopped"

    if output_format == "json":
        print(json.dumps({
            "text": STATUS_ICONS.get(state, state),
            "class": state,
            "tooltip": f"holdtype: {state}",
            "alt": state,
        }, ensure_ascii=False))
    else:
        print(state)
    return EXIT_SUCCESS


def main(args: Optional[List[str]] = None) -> int:
    """Main entry point"""
    parser = create_parser()
    parsed = parser.parse_args(args)

    if not parsed.command:
        parser.print_help()
        return EXIT_USAGE

    if parsed.command == "transcribe-worker":
        return run_transcribe_worker(parsed)

    if parsed.command == "daemon":
        from holdtype.daemon import run_daemon

        setup_logging(verbose=parsed.verbose)
        config = Config.load(parsed.config)
        try:
            run_daemon(config)
        except HoldtypeError as e:
            logger.error(f"Startup failed: {e}")
            return EXIT_ERROR
        except KeyboardInterrupt:
            logger.info("Interrupted")
        return EXIT_SUCCESS

    elif parsed.command == "status":
        logging.basicConfig(
            level=logging.ERROR,
            format="%(message)s",
            stream=sys.stderr,
        )
        config = Config.load(parsed.config)
        return print_status(config, parsed.format)

    else:
        print(f"Unknown command: {parsed.command}", file=sys.stderr)
        return EXIT_USAGE


if __name__ == "__main__":
    sys.exit(main())
