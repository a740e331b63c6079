"""
Main entry point for raglite_chat.
"""
import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .constants import APP_NAME, APP_VERSION, APP_DESCRIPTION


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description=APP_DESCRIPTION
    )

    parser.add_argument(
        "-v", "--version",
        action="version",
        version=f"{APP_NAME} {APP_VERSION}"
    )

    parser.add_argument(
        "-u", "--url",
        type=str,
        help="Backend base URL (default: http://localhost:8000)"
    )

    parser.add_argument(
        "-d", "--dataset",
        type=str,
        help="Dataset (index name) to query"
    )

    parser.add_argument(
        "-e", "--execute",
        type=str,
        help="Ask a single question and exit"
    )

    parser.add_argument(
        "--replay",
        type=Path,
        metavar="FILE",
        help="Rebuild the answer from a recorded event stream file and exit"
    )

    parser.add_argument(
        "--chunk-size",
        type=int,
        default=64,
        help="Byte chunk size used by --replay"
    )

    parser.add_argument(
        "--show-thinking",
        action="store_true",
        help="Expand the model's thinking text"
    )

    parser.add_argument(
        "--strict-sequencing",
        action="store_true",
        help="Drop tokens whose sequence number repeats the last accepted one"
    )

    parser.add_argument(
        "--config",
        type=Path,
        help="Path to config file"
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging"
    )

    return parser.parse_args(argv)


def setup_logging(debug: bool = False) -> None:
    """Route log records through rich."""
    from rich.logging import RichHandler

    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=debug)],
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if debug else logging.WARNING)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    setup_logging(args.debug)

    from .rich_ui.renderer import ChatRenderer

    if args.replay:
        from .cli import replay_transcript

        renderer = ChatRenderer(show_thinking=args.show_thinking)
        if not args.replay.is_file():
            renderer.print_error(f"No such file: {args.replay}")
            return 1
        asyncio.run(replay_transcript(
            args.replay,
            renderer,
            chunk_size=args.chunk_size,
            strict=args.strict_sequencing,
        ))
        return 0

    from .config import get_config
    from .errors import ConfigError

    try:
        config = get_config(args.config)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    # Command line flags apply to this run only
    if args.url:
        config.update_api(persist=False, base_url=args.url)
    if args.dataset:
        config.update_chat(persist=False, default_dataset=args.dataset)
    if args.strict_sequencing:
        config.update_chat(persist=False, strict_sequencing=True)
    if args.show_thinking:
        config.update_ui(persist=False, show_thinking=True)

    from .cli import ChatCLI
    cli = ChatCLI(config)

    if args.execute:
        async def run_prompt() -> int:
            if not args.dataset:
                await cli.service.refresh_datasets()
            await cli.ask(args.execute)
            return 0

        return asyncio.run(run_prompt())

    try:
        cli.run()
        return 0
    except KeyboardInterrupt:
        print("\nGoodbye!")
        return 0
    except Exception as e:
        logging.getLogger(__name__).debug("Fatal error", exc_info=True)
        print(f"Fatal error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
