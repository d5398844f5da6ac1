"""Entry point for running the CLI as a module.

Usage:
    python -m steamchat.cli
"""

from steamchat.cli.app import app

if __name__ == "__main__":
    app()
