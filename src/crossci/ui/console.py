"""Console output formatting utilities for crossci."""

from __future__ import annotations

import sys
from typing import Optional, Sequence


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
        """
        self.debug = debug

    def print_header(self, title: str) -> None:
        """Print a section header."""
        print(f"\n{title}")
        print("-" * len(title))

    def print_generation_started(
        self,
        pipeline: str,
        source: str,
        job_count: int,
        platforms: Sequence[str],
    ) -> None:
        """Print generation start information."""
        print("\nGENERATING")
        print(f"Pipeline: {pipeline} ({source})")
        print(f"Jobs: {job_count}")
        print(f"Platforms: {', '.join(platforms)}")
        print()

    def print_platform_ok(self, platform: str, path: str, written: bool = True) -> None:
        """Print a successful platform line."""
        action = "wrote" if written else "would write"
        print(f"PLATFORM {platform}: ok ({action} {path})")

    def print_platform_failed(self, platform: str, reason: str) -> None:
        """
        Print a failed platform.

        Args:
            platform: Platform id
            reason: Error text; its first line is the summary, the rest are
                context lines (job, step, action)
        """
        lines = reason.split("\n") if reason else ["Unknown error"]
        print(f"PLATFORM {platform}: FAILED")
        print(f"  {lines[0]}")
        for line in lines[1:]:
            if line.startswith("platform="):
                continue
            print(f"    {line}")

    def print_file(self, path: str, content: str) -> None:
        """Print generated content (dry run)."""
        print(f"\n# ---- {path} ----")
        print(content, end="" if content.endswith("\n") else "\n")

    def print_results(self, results: dict[str, str]) -> None:
        """Print final results summary."""
        print("\n" + "=" * 40)
        print("RESULTS")
        print("=" * 40)
        for platform, status in results.items():
            status_display = status.upper() if status != "ok" else "SUCCESS"
            print(f"  {platform}: {status_display}")

    def print_list(self, items: Sequence[tuple[str, str]]) -> None:
        """Print `id  description` rows."""
        width = max((len(i) for i, _ in items), default=0)
        for ident, description in items:
            print(f"  {ident.ljust(width)}  {description}".rstrip())

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

    def print_exception(self, exc: Exception) -> None:
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
