"""
run_engine.py - Process entry point for the threshold bot

Equivalent to the `threshold-bot` console script. Any arguments are passed
through, e.g. `python run_engine.py liquidate --min-sol 0.001`.
"""

import sys

# Add src to path for imports
sys.path.insert(0, 'src')


def main() -> int:
    from threshold_bot.cli import main as cli_main

    return cli_main()


if __name__ == "__main__":
    raise SystemExit(main())
