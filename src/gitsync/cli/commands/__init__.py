"""gitsync CLI commands."""
