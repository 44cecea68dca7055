"""
Entry point of the ``segdl`` command: runs the Typer app and turns uncaught
errors into a panel and an exit status.
"""

import asyncio
import logging
import os
import sys

import typer
from rich.console import Console

from segdl.cli.app import app
from segdl.cli.formatters import format_error_with_suggestions
from segdl.exceptions import SegdlError

EXIT_FAILURE = 1
EXIT_INTERRUPTED = 130


def _utf8_console() -> None:
    if os.name != "nt":
        return
    try:
        sys.stdout.reconfigure(encoding="utf-8")
        sys.stderr.reconfigure(encoding="utf-8")
    except (TypeError, AttributeError):
        pass


def main() -> None:
    _utf8_console()
    console = Console()

    try:
        app()
    except (typer.Exit, typer.Abort):
        pass
    except (KeyboardInterrupt, asyncio.CancelledError):
        console.print(
            "\n[yellow]⚠️  Interrupted. Finished segments are kept; "
            "run the same command again to resume.[/yellow]"
        )
        sys.exit(EXIT_INTERRUPTED)
    except SegdlError as e:
        console.print(f"\n{format_error_with_suggestions(e)}")
        sys.exit(EXIT_FAILURE)
    except Exception as e:
        console.print(f"\n{format_error_with_suggestions(e, {'type': 'Unexpected'})}")
        logging.getLogger("segdl").debug("Full traceback:", exc_info=True)
        sys.exit(EXIT_FAILURE)


if __name__ == "__main__":
    main()
