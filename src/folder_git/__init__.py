"""Folder Git: independent git repositories inside a single vault.

This package provides the repository registry, the git process wrapper,
auto-commit scheduling, and the command-line interface and background daemon
built on top of them. Each tracked folder is addressed by its vault-relative
path and operated on without affecting its siblings.
"""

from . import (
    cli,
    config,
    constants,
    credentials,
    daemon,
    errors,
    git_wrapper,
    ignore,
    models,
    paths,
    registry,
    scheduler,
    status,
    system,
)

__all__ = [
    "cli",
    "config",
    "constants",
    "credentials",
    "daemon",
    "errors",
    "git_wrapper",
    "ignore",
    "models",
    "paths",
    "registry",
    "scheduler",
    "status",
    "system",
]
