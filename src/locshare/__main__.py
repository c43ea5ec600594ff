"""Entry point for running locshare as a module.

Usage:
    python -m locshare [command] [options]
"""

from locshare.cli import main

if __name__ == "__main__":
    main()
