"""
User-facing output for the updater.

Every message a user may see goes through output(), so that the quiet and
batch modes configured by the command line apply everywhere, including the
library classes and the server console sink.
"""

from __future__ import annotations
import sys
import traceback
from typing import NoReturn, Optional


filterArray = [
    "[Forge", "[ --== Fetching", "[ --== Running", "[ --== Install", "[ --== Update",
    "[ --== Checking", "[ --== Starting", "[ --== Stopping", "[ --== Cleaning",
    "|  ", "*****", "+====", "x====", "x----",
]

_mode = {"quiet": False, "batch": False}


def configure_output(quiet: bool = False, batch: bool = False):
    """
    Select the global output mode once, after the CLI parsed its flags.
    Quiet silences everything, including errors and fatals.
    Batch keeps only meaningful, stripped lines for log files.
    """

    _mode["quiet"] = bool(quiet)

    _mode["batch"] = bool(batch)


def is_quiet() -> bool:

    return _mode["quiet"]


def is_batch() -> bool:

    return _mode["batch"]


def output(text: str):
    """
    Central logging function aware of batch/quiet flags.
    Routes messages through stdout with optional suppression.
    Filters redundant blank lines and banners in batch mode.
    Guarantees consistent user messaging across all modules.
    """

    if _mode["quiet"]:

        return

    if _mode["batch"]:

        if not text.strip():

            return

        for pattern in filterArray:

            if pattern in text:

                return

        print(text.strip())

    else:

        print(text)


def error_report(exc: Optional[BaseException] = None):
    """
    Print the raw traceback of the exception being handled.
    Does nothing in quiet mode.
    """

    if _mode["quiet"]:

        return

    if exc is not None and exc.__traceback__ is not None:

        traceback.print_exception(type(exc), exc, exc.__traceback__)

    else:

        traceback.print_exc()


def fatal(code: int, message: str = "", target: str = None, os_error: int = None) -> NoReturn:
    """
    Emit a standardized fatal error report and terminate immediately.
    Captures exit code, human-readable context, and optional target path.
    Includes raw OS errno details when provided for deep troubleshooting.
    Only the command line calls this; library code returns an Outcome.
    """

    output("\nx=======================================================================================x\n")
    output("             [ !! FATAL ERROR OCCURRED !! ]")
    output("\nx=======================================================================================x\n")

    if message:

        output(f"     Reason    : {message}")

    output("\nx----------------- ERROR CODE DETAILS --------------------------------------------------x\n")

    if target:

        output(f"  - Target / Information  : {target}")

    if os_error is not None:

        output(f"  - Python OS Error Code : {os_error}")

    output("")
    output(f"  - Script Exit Code      : {code}")
    output("\nx=======================================================================================x\n")

    sys.exit(code)


def progress_bar(length: int, stepsize: int, total_steps: int, step: int, prefix: str = "# Downloading:", size: int = 60, prog_char: str = "#", empty_char: str = "."):
    """
    Render an ASCII progress bar showing download completion.
    Scales proportionally to length and step counters supplied.
    Disabled in quiet/batch modes and when the size is unknown.
    """

    if _mode["quiet"] or _mode["batch"] or length <= 0:

        return

    x = min(size, int(size*(step+1)/total_steps))

    sys.stdout.write("{}[{}{}] {}/{}\r".format(prefix, prog_char*x, empty_char*(size-x),
                                                (step*stepsize if step < total_steps - 1 else length), length))
    sys.stdout.flush()

    if step >= total_steps - 1:

        sys.stdout.write("\n")

        sys.stdout.flush()


def human_readable_size(n: int) -> str:
    """
    Convert raw bytes into a formatted human-readable unit string.
    Rounded to 2 decimals for clarity in user-facing output.
    """

    units = ["B", "KiB", "MiB", "GiB", "TiB", "PiB"]

    i = 0

    f = float(n)

    while f >= 1024 and i < len(units)-1:

        f /= 1024.0

        i += 1

    return f"{f:.2f} {units[i]}"
