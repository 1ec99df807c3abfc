"""Command line interface for restic-runner."""
