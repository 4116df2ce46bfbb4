"""push command-line interface."""
