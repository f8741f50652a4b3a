"""Console output formatting utilities for matrixgate."""

from __future__ import annotations

import sys
from typing import Iterable, Optional

from ..model import PhaseOutcome, Severity


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False, quiet: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
            quiet: If True, don't echo per-build log lines
        """
        self.debug = debug
        self.quiet = quiet

    def print_header(self, title: str) -> None:
        """Print a section header."""
        print(f"\n{title}")
        print("-" * len(title))

    def print_run_started(
        self,
        build: str,
        workflow: str,
        pre_job: str,
        post_job: str,
        configurations: int,
    ) -> None:
        """Print run start information."""
        print("\nBUILD STARTED")
        print(f"Build: {build}")
        print(f"Workflow: {workflow}")
        print(f"Pre job: {pre_job or '(none)'}")
        print(f"Post job: {post_job or '(none)'}")
        print(f"Configurations: {configurations}")
        print()

    def print_build_line(self, build: str, line: str) -> None:
        """Echo one line of a build's log."""
        if not self.quiet:
            print(f"[{build}] {line}")

    def print_plan_job(self, phase: str, name: str, detail: str) -> None:
        """Print one gate of a resolved plan."""
        print(f"  {phase}: {name} ({detail})")

    def print_results(
        self,
        outcomes: Iterable[PhaseOutcome],
        overall: Severity,
        cause: Optional[str] = None,
    ) -> None:
        """Print final results summary."""
        print("\n" + "=" * 40)
        print("RESULTS")
        print("=" * 40)
        for outcome in outcomes:
            note = " (informational)" if outcome.informational else ""
            ref = f" [{outcome.run_ref}]" if outcome.run_ref else ""
            print(f"  {outcome.phase}: {outcome.result}{ref}{note}")
        print(f"  overall: {overall}")
        if cause:
            print(f"  cause: {cause.splitlines()[0]}")

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        print(f"\nERROR: {title}", file=sys.stderr)
        print(f"{message}", file=sys.stderr)
        if details:
            for detail in details:
                print(f"  {detail}", file=sys.stderr)
        if suggestion:
            print(f"\n{suggestion}", file=sys.stderr)

    def print_warning(self, message: str) -> None:
        """Print a warning to stderr."""
        print(f"WARNING: {message}", file=sys.stderr)

    def print_exception(self, exc: BaseException) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exception(type(exc), exc, exc.__traceback__)
        else:
            print(f"Error: {exc}", file=sys.stderr)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        print(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            print(f"[DEBUG] {message}", file=sys.stderr)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
