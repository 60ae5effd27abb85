"""
Parsing of the before/after environment dumps produced while running .envrc.

The generated script prints the environment between sentinel lines before
and after the .envrc body. Anything printed outside of those blocks is the
.envrc's own output and is handed to a callback untouched.
"""

from __future__ import annotations

from enum import Enum
from typing import Callable, Iterable

from quickenv.core import Env, parse_env_line

BEGIN_BEFORE = b"// BEGIN QUICKENV-BEFORE"
END_BEFORE = b"// END QUICKENV-BEFORE"
BEGIN_AFTER = b"// BEGIN QUICKENV-AFTER"
END_AFTER = b"// END QUICKENV-AFTER"


class ParseState(Enum):
    PRE_BEFORE = "pre_before"
    IN_BEFORE = "in_before"
    PRE_AFTER = "pre_after"
    IN_AFTER = "in_after"
    END = "end"


# (state, sentinel) -> next state
_TRANSITIONS = {
    (ParseState.PRE_BEFORE, BEGIN_BEFORE): ParseState.IN_BEFORE,
    (ParseState.IN_BEFORE, END_BEFORE): ParseState.PRE_AFTER,
    (ParseState.PRE_AFTER, BEGIN_AFTER): ParseState.IN_AFTER,
    (ParseState.IN_AFTER, END_AFTER): ParseState.END,
}


def parse_env_diff(
    lines: Iterable[bytes],
    script_output: Callable[[bytes], None],
) -> tuple[Env, Env]:
    """Split a dump stream into the (before, after) environments.

    Lines are consumed lazily, so ``script_output`` sees the .envrc output
    while the subprocess is still running.
    """
    state = ParseState.PRE_BEFORE
    old_env: Env = {}
    new_env: Env = {}
    prev_var_name: str | None = None

    for raw_line in lines:
        line = raw_line.rstrip(b"\n")

        next_state = _TRANSITIONS.get((state, line))
        if next_state is not None:
            state = next_state
            prev_var_name = None
        elif state is ParseState.IN_BEFORE:
            prev_var_name = parse_env_line(line, old_env, prev_var_name)
        elif state is ParseState.IN_AFTER:
            prev_var_name = parse_env_line(line, new_env, prev_var_name)
        else:
            script_output(line)

    return old_env, new_env


def compute_diff(old_env: Env, new_env: Env) -> Env:
    """Variables that the .envrc added or changed. Removals are not tracked."""
    return {
        key: value
        for key, value in new_env.items()
        if old_env.get(key) != value
    }
