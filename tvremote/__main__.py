"""Entry point for `python -m tvremote`."""

from tvremote.cli.commands import app

if __name__ == "__main__":
    app()
