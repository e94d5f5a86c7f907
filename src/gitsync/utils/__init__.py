"""Shared utilities for gitsync."""
