"""Completion command -- print shell completion scripts.

``tack completion <shell>`` writes the script for *shell* to stdout, so it
can be sourced directly or saved to the shell's completion directory::

    source <(tack completion bash)
    tack completion zsh > "${fpath[1]}/_tack"
    tack completion fish > ~/.config/fish/completions/tack.fish

The scripts call back into ``tack`` with ``_TACK_COMPLETE`` set, which Typer
answers once :func:`typer.completion.completion_init` has registered its
shell handlers (:func:`~tack.app.create_app` does this). Plugin commands
complete too, including the allowed values of enum flags.
"""

from __future__ import annotations

import typer
from typer.completion import get_completion_script

from tack.context import PROG_NAME
from tack.exit_codes import EXIT_INVALID_USAGE
from tack.output import error, print_data

SHELLS = ("bash", "zsh", "fish", "powershell")

COMPLETE_VAR = f"_{PROG_NAME.upper()}_COMPLETE"


def _complete_shell(incomplete: str) -> list[str]:
    return [shell for shell in SHELLS if shell.startswith(incomplete)]


def completion_command(
    shell: str = typer.Argument(
        help=f"Shell to generate the script for ({', '.join(SHELLS)}).",
        autocompletion=_complete_shell,
    ),
) -> None:
    """Generate a shell completion script."""
    if shell not in SHELLS:
        error(f"Unsupported shell: {shell}. Supported: {', '.join(SHELLS)}")
        raise typer.Exit(code=EXIT_INVALID_USAGE)

    print_data(
        get_completion_script(prog_name=PROG_NAME, complete_var=COMPLETE_VAR, shell=shell)
    )
