# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/paasdeploy/utils/command.py
from __future__ import annotations

import shlex
from typing import Optional, Tuple

ROOT_UID = "0"

# sudo -S prompt is suppressed with -p '', but some sudo builds still print
# a "[sudo] password for <user>:" banner on stderr.
SUDO_PROMPT_PREFIX = "[sudo]"


def q(value) -> str:
    return shlex.quote(str(value))


def sh(*args) -> str:
    """
    Join arguments into a shell command line, quoting every argument.

        sh("mkdir", "-p", "/opt/my dir")  ->  "mkdir -p '/opt/my dir'"
    """
    return " ".join(q(a) for a in args)


SUDO_S = "sudo -S -p ''"
SUDO_N = "sudo -n"

# shlex punctuation_chars set; a bare token made only of these is a shell operator
_OPERATOR_CHARS = set("();<>|&")


def is_compound(command: str) -> bool:
    """
    True when *command* uses shell operators outside quotes (&&, |, >, ;),
    so sudo alone would elevate only its first part.
    """
    lexer = shlex.shlex(command, posix=False, punctuation_chars=True)
    lexer.whitespace_split = True
    lexer.commenters = ""
    try:
        return any(tok and set(tok) <= _OPERATOR_CHARS for tok in lexer)
    except ValueError:
        return True


def _as_root(prefix: str, command: str) -> str:
    if is_compound(command):
        return f"{prefix} sh -c {q(command)}"
    return f"{prefix} {command}"


def elevate_noninteractive(command: str) -> str:
    """sudo -n form of *command*; never waits for a password prompt."""
    return _as_root(SUDO_N, command)


def elevate(command: str, uid: str, password: Optional[str] = None) -> Tuple[str, Optional[bytes]]:
    """
    Return (command_line, stdin_prefix) for running *command* as root.

    - uid "0"          -> command unchanged, nothing on stdin
    - password given   -> sudo -S, password fed once on stdin
    - no password      -> sudo -n, fails instead of prompting

    Simple commands are passed to sudo verbatim; compound ones run under
    ``sh -c`` so every part is elevated.
    """
    if uid == ROOT_UID:
        return command, None
    if password:
        return _as_root(SUDO_S, command), f"{password}\n".encode("utf-8")
    return elevate_noninteractive(command), None


def strip_sudo_prompt(stderr: str) -> str:
    lines = []
    for line in stderr.splitlines():
        line = line.strip()
        if not line or line.startswith(SUDO_PROMPT_PREFIX):
            continue
        lines.append(line)
    return "\n".join(lines)


def with_env(command: str, **env: str) -> str:
    exports = " ".join(f"{k}={q(v)}" for k, v in env.items())
    return f"{exports} {command}" if exports else command
