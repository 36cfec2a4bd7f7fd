"""branchcov CLI - command line interface for the coverage engine."""

from branchcov.cli.commands import EXIT_CODES, EXIT_RELEASE_BLOCKED, cli


def main() -> None:
    """Main entry point for the branchcov CLI."""
    cli()


__all__ = ["EXIT_CODES", "EXIT_RELEASE_BLOCKED", "cli", "main"]
