"""Entry point for ``python -m serverwarden``."""

from serverwarden.main import run

if __name__ == "__main__":
    run()
