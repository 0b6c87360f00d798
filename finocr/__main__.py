"""Entry point for ``python -m finocr``."""

from finocr.cli import main

if __name__ == "__main__":
    main()
