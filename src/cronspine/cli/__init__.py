"""
cronspine CLI: Typer-based command-line interface.

Usage::

    cronspine --help
    cronspine start myapp.jobs:supervisor
    cronspine next "*/5 * * * *" --count 3
    cronspine locks list --name reports
"""

from cronspine.cli.app import app

__all__ = ["app"]
