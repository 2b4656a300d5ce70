"""Sync GitHub users' public SSH keys into local authorized_keys files."""

__version__ = "1.0.0"
