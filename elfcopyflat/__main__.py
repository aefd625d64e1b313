"""
elfcopyflat Module Entry Point
===============================

Allows running the CLI via: python -m elfcopyflat
"""

from elfcopyflat.cli import main

if __name__ == "__main__":
    main()
