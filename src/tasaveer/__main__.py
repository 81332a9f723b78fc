"""Allow ``python -m tasaveer``."""

from tasaveer.cli import main

if __name__ == "__main__":
    main()
