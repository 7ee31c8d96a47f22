"""src/cli — typer command-line entry point (``video-translation``)."""
