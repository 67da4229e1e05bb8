"""
Command line expansion

Turns the single command string received over the bus into an argument
vector using POSIX shell word splitting and quote removal. The daemon never
runs a shell for this, so anything that would need one (pipes, redirects,
command substitution) is rejected with the matching wordexp() error code.
"""

import shlex
from typing import List

from tukitd.models.errors import CommandExpansionError

# Unquoted, these only make sense to a shell
_SHELL_SPECIAL = frozenset("|&;<>(){}\n\x00")


def _check_shell_syntax(text: str) -> str:
    """
    Reject shell-only syntax. Returns `text` with a backslash before `$` or
    a backtick inside double quotes removed, which shlex would keep.
    """
    out = []
    quote = None
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if quote == "'":
            if ch == "'":
                quote = None
        elif ch == "\\":
            if quote == '"' and i + 1 < n and text[i + 1] in "$`":
                ch = text[i + 1]
            elif i + 1 < n:
                out.append(ch)
                ch = text[i + 1]
            i += 1
        elif ch == "`" or (ch == "$" and i + 1 < n and text[i + 1] == "("):
            raise CommandExpansionError(
                CommandExpansionError.WRDE_CMDSUB,
                "Command substitution is not supported",
                position=i
            )
        elif quote == '"':
            if ch == '"':
                quote = None
        elif ch in ("'", '"'):
            quote = ch
        elif ch in _SHELL_SPECIAL:
            raise CommandExpansionError(
                CommandExpansionError.WRDE_BADCHAR,
                f"Illegal unquoted character {ch!r}",
                position=i
            )
        out.append(ch)
        i += 1
    return "".join(out)


def expand_command(text: str) -> List[str]:
    """
    Split `text` into an argument vector.

    Example:
        expand_command("zypper -n in 'vim' \\"a b\\"")
        -> ["zypper", "-n", "in", "vim", "a b"]

    Raises:
        CommandExpansionError: code is one of the WRDE_* constants
    """
    try:
        return shlex.split(_check_shell_syntax(text), comments=False, posix=True)
    except ValueError as ex:
        # shlex: "No closing quotation" / "No escaped character"
        raise CommandExpansionError(CommandExpansionError.WRDE_SYNTAX, str(ex)) from ex
    except MemoryError as ex:
        raise CommandExpansionError(
            CommandExpansionError.WRDE_NOSPACE,
            "Out of memory while expanding command"
        ) from ex
