"""CLI entry point for sawell.cli module.

Enables execution via: python -m sawell.cli
"""

from sawell.cli.refresh_credits import main

if __name__ == "__main__":
    main()
