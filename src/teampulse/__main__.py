"""Entry point for running TeamPulse as a module.

Usage:
    python -m teampulse [command] [options]

Example:
    python -m teampulse analyze activity.json --start 2026-01-01 --end 2026-01-14
    python -m teampulse check
"""

from teampulse.cli import app

if __name__ == "__main__":
    app()
