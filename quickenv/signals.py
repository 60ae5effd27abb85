"""
Ctrl-C handling shared between quickenv and the processes it launches.

While quickenv itself is in control, SIGINT restores the terminal cursor and
exits with 130. Once control has been passed to a child (the .envrc shell or a
shimmed program) the handler does nothing: the child receives the interrupt
from the terminal and quickenv keeps waiting for its real exit status.
"""

from __future__ import annotations

import signal
import sys
import threading

from rich.console import Console

INTERRUPTED_EXIT_CODE = 130

_child_has_control = threading.Event()


def pass_control_to_child() -> None:
    _child_has_control.set()


def child_has_control() -> bool:
    return _child_has_control.is_set()


def reset_control() -> None:
    _child_has_control.clear()


def handle_interrupt(signum, frame) -> None:
    if child_has_control():
        return
    # confirmation prompts can leave the cursor hidden
    Console().show_cursor(True)
    sys.exit(INTERRUPTED_EXIT_CODE)


def install_interrupt_handler() -> None:
    signal.signal(signal.SIGINT, handle_interrupt)
