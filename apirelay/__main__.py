"""Main entry point when executing apirelay as a package.

This allows running the package using python -m apirelay.
"""

from apirelay.main import cli_entry_point

if __name__ == "__main__":
    cli_entry_point()
