"""Entry point for running trackcache as a module."""

from .cli import app


def main() -> None:
    """Main entry point for the trackcache CLI application."""
    app()


if __name__ == "__main__":
    main()
