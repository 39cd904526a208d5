"""CLI entry point for dropmint.cli module.

Enables execution via: python -m dropmint.cli
"""

from dropmint.cli.run_minter import main

if __name__ == "__main__":
    raise SystemExit(main())
