"""User-facing text for advisories and errors."""

BOLD = "\033[1m"
YELLOW = "\033[33m"
RESET = "\033[0m"


def broken_display_advisory(display: str | None) -> str:
    """Explain that the child is being restarted under a virtual display."""
    shown = display if display else "(not set)"
    return (
        "The program exited because it could not open the display "
        f"DISPLAY={shown}.\n"
        "This usually means DISPLAY points at an X server that is not running "
        "or not reachable.\n"
        "Retrying once under a private virtual display (Xvfb). To avoid this "
        "delay, unset DISPLAY or point it at a working X server."
    )


def format_advisory(text: str, color: bool) -> str:
    if color:
        return f"{BOLD}{YELLOW}warning:{RESET} {text}"
    return f"warning: {text}"


def format_unexpected_error(exc: BaseException) -> str:
    """Describe a failure that was not a plain non-zero exit of the child."""
    detail = str(exc) or exc.__class__.__name__
    return (
        "An unexpected error occurred while launching the program.\n"
        f"{detail}\n"
        "Re-run with --debug for more details."
    )
