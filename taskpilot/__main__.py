"""Allow running taskpilot as a module: python -m taskpilot."""

from taskpilot.cli import main

if __name__ == "__main__":
    main()
