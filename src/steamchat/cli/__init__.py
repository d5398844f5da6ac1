"""Steam web-chat CLI.

Usage:
    steamchat --help
"""

from steamchat.cli.app import app

__all__ = ["app"]
