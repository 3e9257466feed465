"""Rendering of plugin results and CLI diagnostics.

Results (a table, JSON or YAML) are the only thing written to stdout, so
``tack dns resolve ... -o json | jq`` always sees a clean document.
Status lines, warnings, errors and hints go to stderr. Colour is off when
``NO_COLOR`` is set, when ``TERM=dumb`` or with ``--no-color``.

Plugin output is untrusted text, so it is always rendered literally and
never parsed as Rich markup.

:func:`~tack.app.main_callback` builds one :class:`OutputManager` per run
and installs it with :func:`set_output`. Commands then call the
module-level :func:`info`, :func:`error`, :func:`print_table` and friends,
which forward to that manager.
"""

from __future__ import annotations

import json
import os
import sys
from enum import Enum
from typing import Any, Optional

import yaml
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.text import Text

from tack.models import CheckResult


class OutputFormat(str, Enum):
    """Values accepted by ``--output`` and the ``output`` config key."""

    TABLE = "table"
    JSON = "json"
    YAML = "yaml"
    QUIET = "quiet"


class OutputManager:
    """Writes results to stdout and diagnostics to stderr for one run.

    The two Rich consoles are created without an explicit file, so they
    write to whatever ``sys.stdout`` and ``sys.stderr`` are at the time of
    each call.

    Args:
        format: How plugin results are rendered.
        no_color: Disable all colour and Rich markup.
        quiet: Drop info, success and hint lines.
        verbose: Show :meth:`debug` lines.
    """

    def __init__(
        self,
        format: OutputFormat = OutputFormat.TABLE,
        no_color: bool = False,
        quiet: bool = False,
        verbose: bool = False,
    ) -> None:
        self._format = format
        self._no_color = no_color or _should_disable_color()
        self._quiet = quiet
        self._verbose = verbose
        self._stdout = Console(no_color=self._no_color, highlight=False)
        self._stderr = Console(no_color=self._no_color, stderr=True, highlight=False)

    @property
    def format(self) -> OutputFormat:
        """Format used for results."""
        return self._format

    # ------------------------------------------------------------------ #
    # Data output (stdout)
    # ------------------------------------------------------------------ #

    def format_result(
        self, result: CheckResult, output_schema: Optional[dict[str, Any]] = None
    ) -> None:
        """Render a plugin check result to stdout in the active format.

        * **table** -- one row whose columns are the output schema's
          properties (sorted), or the data's keys (sorted) when the schema
          declares none. Non-success results print status, message and
          error instead.
        * **json** / **yaml** -- the result's ``data`` on success, otherwise
          the whole result.
        * **quiet** -- nothing; the exit status carries the outcome.

        Args:
            result: The result returned by the plugin.
            output_schema: The operation's declared output schema.
        """
        if self._format == OutputFormat.QUIET:
            return
        if self._format == OutputFormat.JSON:
            self.print_data(
                json.dumps(_payload(result), indent=2, ensure_ascii=False, default=str)
            )
        elif self._format == OutputFormat.YAML:
            self.print_data(
                yaml.safe_dump(
                    _payload(result), sort_keys=False, default_flow_style=False
                ).rstrip("\n")
            )
        else:
            self._print_result_table(result, output_schema)

    def print_data(self, text: str) -> None:
        """Write *text* and a newline to stdout, bypassing Rich."""
        print(text, file=sys.stdout, flush=True)

    def print_table(
        self,
        headers: list[str],
        rows: list[list[str]],
        title: Optional[str] = None,
    ) -> None:
        """Render *rows* under *headers* on stdout.

        In JSON mode the rows are emitted as an array of objects keyed by
        header; in quiet mode only the first column is printed, one value
        per line; otherwise a Rich :class:`~rich.table.Table` is drawn.

        Args:
            headers: Column names.
            rows: Cell strings, one list per row.
            title: Caption drawn above the Rich table.
        """
        if self._format == OutputFormat.JSON:
            records = [dict(zip(headers, row)) for row in rows]
            self.print_data(json.dumps(records, indent=2, ensure_ascii=False))
        elif self._format == OutputFormat.YAML:
            records = [dict(zip(headers, row)) for row in rows]
            self.print_data(
                yaml.safe_dump(records, sort_keys=False, default_flow_style=False).rstrip("\n")
            )
        elif self._format == OutputFormat.QUIET:
            for row in rows:
                if row:
                    self.print_data(row[0])
        else:
            table = Table(title=title, show_header=True, header_style="bold cyan")
            for h in headers:
                table.add_column(h)
            for row in rows:
                table.add_row(*(Text(cell) for cell in row))
            self._stdout.print(table)

    def print_record(self, record: dict[str, Any], title: Optional[str] = None) -> None:
        """Print a single mapping to stdout.

        JSON and YAML modes dump *record* as-is; table mode draws a
        two-column Field/Value table; quiet mode prints nothing.
        """
        if self._format == OutputFormat.QUIET:
            return
        if self._format == OutputFormat.JSON:
            self.print_data(json.dumps(record, indent=2, ensure_ascii=False, default=str))
        elif self._format == OutputFormat.YAML:
            self.print_data(
                yaml.safe_dump(record, sort_keys=False, default_flow_style=False).rstrip("\n")
            )
        else:
            self.print_table(
                ["Field", "Value"],
                [[key, format_value(value)] for key, value in record.items()],
                title=title,
            )

    def _print_result_table(
        self, result: CheckResult, output_schema: Optional[dict[str, Any]]
    ) -> None:
        if not result.is_success:
            self.print_data(f"Status: {result.status}")
            if result.message:
                self.print_data(f"Message: {result.message}")
            if result.error is not None:
                self.print_data(f"Error: [{result.error.type}] {result.error.message}")
            return

        data = result.data
        if not data:
            self.print_data("(no data)")
            return
        if not isinstance(data, dict):
            self.print_data(json.dumps(data, indent=2, ensure_ascii=False, default=str))
            return

        columns = columns_from_schema(output_schema) or sorted(data)
        self.print_table(
            [snake_to_title(col) for col in columns],
            [[format_value(data.get(col)) for col in columns]],
        )

    # ------------------------------------------------------------------ #
    # Diagnostics (stderr)
    # ------------------------------------------------------------------ #

    def result_error(self, result: CheckResult) -> None:
        """Print a plugin's structured ``error`` result to stderr. Never suppressed."""
        err = result.error
        self.error(err.message if err and err.message else result.message or "plugin reported an error")
        if err is not None:
            if err.type:
                self._plain_stderr(f"  Type: {err.type}")
            if err.code:
                self._plain_stderr(f"  Code: {err.code}")

    def info(self, message: str) -> None:
        """Status line on stderr; dropped in quiet mode."""
        if not self._quiet:
            self._plain_stderr(message)

    def success(self, message: str) -> None:
        """Green confirmation on stderr; dropped in quiet mode."""
        if not self._quiet:
            if self._no_color:
                print(message, file=sys.stderr, flush=True)
            else:
                self._stderr.print(f"[green]{escape(message)}[/green]")

    def warning(self, message: str) -> None:
        """``Warning:`` line on stderr, shown even in quiet mode."""
        if self._no_color:
            print(f"Warning: {message}", file=sys.stderr, flush=True)
        else:
            self._stderr.print(f"[yellow]Warning:[/yellow] {escape(message)}")

    def error(self, message: str) -> None:
        """``Error:`` line on stderr, always shown."""
        if self._no_color:
            print(f"Error: {message}", file=sys.stderr, flush=True)
        else:
            self._stderr.print(f"[bold red]Error:[/bold red] {escape(message)}")

    def suggest(self, message: str) -> None:
        """Dimmed ``→ hint`` on stderr pointing at the next command to run."""
        if not self._quiet:
            formatted = f"→ {message}"
            if self._no_color:
                print(formatted, file=sys.stderr, flush=True)
            else:
                self._stderr.print(f"[dim]{escape(formatted)}[/dim]")

    def debug(self, message: str) -> None:
        """``[debug]`` line on stderr, only with ``--verbose``."""
        if self._verbose:
            if self._no_color:
                print(f"[debug] {message}", file=sys.stderr, flush=True)
            else:
                self._stderr.print(f"[dim]\\[debug] {escape(message)}[/dim]")

    def _plain_stderr(self, message: str) -> None:
        if self._no_color:
            print(message, file=sys.stderr, flush=True)
        else:
            self._stderr.print(Text(message))


# ------------------------------------------------------------------ #
# Result helpers
# ------------------------------------------------------------------ #


def _payload(result: CheckResult) -> Any:
    if result.is_success and result.data is not None:
        return result.data
    return result.model_dump(mode="json", exclude_none=True)


def columns_from_schema(schema: Optional[dict[str, Any]]) -> list[str]:
    """Return the sorted property names of an output schema, or ``[]``."""
    if not isinstance(schema, dict):
        return []
    properties = schema.get("properties")
    if not isinstance(properties, dict):
        return []
    return sorted(properties)


def snake_to_title(name: str) -> str:
    """``"record_type"`` -> ``"Record Type"``."""
    return " ".join(part[:1].upper() + part[1:] for part in name.split("_"))


def format_value(value: Any) -> str:
    """Render one result value as a table cell."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else f"{value:.2f}"
    if isinstance(value, list):
        return ", ".join(format_value(item) for item in value)
    if isinstance(value, dict):
        return json.dumps(value, separators=(",", ":"), default=str)
    return str(value)


# ------------------------------------------------------------------ #
# Environment
# ------------------------------------------------------------------ #


def _should_disable_color() -> bool:
    """True when ``NO_COLOR`` is present (even empty) or ``TERM`` is ``dumb``."""
    if os.environ.get("NO_COLOR") is not None:
        return True
    if os.environ.get("TERM") == "dumb":
        return True
    return False


# ------------------------------------------------------------------ #
# Per-run manager
# ------------------------------------------------------------------ #

_output: Optional[OutputManager] = None


def get_output() -> OutputManager:
    """Return the installed manager, creating a table-mode one if none is set."""
    global _output
    if _output is None:
        _output = OutputManager()
    return _output


def set_output(output: OutputManager) -> None:
    """Make *output* the manager used by the module-level functions."""
    global _output
    _output = output


def reset_output() -> None:
    """Forget the installed manager."""
    global _output
    _output = None


# ------------------------------------------------------------------ #
# Shortcuts for the installed manager
# ------------------------------------------------------------------ #


def format_result(
    result: CheckResult, output_schema: Optional[dict[str, Any]] = None
) -> None:
    """See :meth:`OutputManager.format_result`."""
    get_output().format_result(result, output_schema)


def print_data(text: str) -> None:
    get_output().print_data(text)


def print_table(
    headers: list[str],
    rows: list[list[str]],
    title: Optional[str] = None,
) -> None:
    """See :meth:`OutputManager.print_table`."""
    get_output().print_table(headers, rows, title)


def info(message: str) -> None:
    get_output().info(message)


def error(message: str) -> None:
    get_output().error(message)


def success(message: str) -> None:
    get_output().success(message)


def warning(message: str) -> None:
    get_output().warning(message)


def suggest(message: str) -> None:
    get_output().suggest(message)


def debug(message: str) -> None:
    get_output().debug(message)
