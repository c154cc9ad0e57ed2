import os
import sys
import traceback
from datetime import datetime
from pathlib import Path

from preview_common.constants import ARG_ACTIVE_FILE_LONG, ARG_CONFIG_LONG, ARG_HISTORY_FILE_LONG, ARG_ROOT_LONG

PATH_ARGS = [ARG_ROOT_LONG, ARG_CONFIG_LONG, ARG_HISTORY_FILE_LONG, ARG_ACTIVE_FILE_LONG]


def LOG(*values: object, sep: str = " ", end: str = "\n", file=None, highlight: bool = False, show_time=True, show_traceback: bool = False, flush: bool = True) -> None:
    # Prepare the message
    message = sep.join(str(value) for value in values)

    if show_time:
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        message = f"[{timestamp}] {message}"

    if show_traceback:
        tb = traceback.format_stack()
        max_frames = 5
        if len(tb) > max_frames:
            tb = tb[-max_frames:]
        message = f"{message}\nBacktrace:\n" + "".join(tb)

    if highlight:
        HIGHLIGHT_COLOR = "\033[92m"  # green
        BOLD = "\033[1m"
        RESET = "\033[0m"
        print(f"{BOLD}{HIGHLIGHT_COLOR}", end="", file=file, flush=flush)
        print(message, end="", file=file, flush=flush)
        print(f"{RESET}", end=end, file=file, flush=flush)
    else:
        print(message, end=end, file=file, flush=flush)


def LOG_EXCEPTION_STR(exception_str: str, msg=None, exit: bool = True):
    # Use the active exception if there is one, else build one for the traceback
    exc_type, exc_value, _ = sys.exc_info()
    if exc_type is not None:
        LOG_EXCEPTION(exc_value, msg or exception_str, exit=exit)
    else:
        try:
            raise Exception(exception_str)
        except Exception as e:
            LOG_EXCEPTION(e, msg, exit=exit)


def LOG_EXCEPTION(exception: BaseException, msg=None, exit: bool = True):
    """Log error with essential info to stderr."""

    LOG(f"{type(exception).__name__}: {exception}", file=sys.stderr, highlight=True)
    if msg:
        LOG(f"- Context: {msg}", file=sys.stderr, highlight=True)

    if isinstance(exception, OSError) and getattr(exception, 'filename', None):
        LOG(f"File: {exception.filename}", file=sys.stderr)

    # Show traceback, marking frames from our own code
    tb = traceback.extract_tb(exception.__traceback__)
    if tb:
        LOG("- Call stack:", file=sys.stderr)
        main_dir = os.path.dirname(os.path.abspath(sys.argv[0]))
        for frame in tb:
            is_local = frame.filename.startswith(main_dir)
            prefix = "  ->" if is_local else "    "
            display_filename = frame.filename
            if is_local:
                display_filename = os.path.relpath(frame.filename, main_dir)
            LOG(f"{prefix} {display_filename}:{frame.lineno} in {frame.name}()",
                file=sys.stderr, highlight=is_local)

    if exit:
        sys.exit(1)


def get_arg_value(args, arg_name: str):
    """Get argument attribute from argparse.Namespace using its CLI name. Path arguments come back resolved."""
    dest_key = arg_name.lstrip('-').replace('-', '_')
    try:
        value = getattr(args, dest_key)
    except AttributeError:
        LOG(f"Available attributes: {dir(args)}", file=sys.stderr)
        raise
    if isinstance(value, (str, Path)) and arg_name in PATH_ARGS:
        return str(Path(value).expanduser().resolve())
    return value
