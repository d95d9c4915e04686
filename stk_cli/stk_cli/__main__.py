"""Entry point for `python -m stk_cli` and the `stk` console script."""

from __future__ import annotations

from stk_engine.config import load_settings
from stk_engine.telemetry import configure_logging

from stk_cli.app import app


def main() -> None:
    configure_logging(load_settings())
    app()


if __name__ == "__main__":
    main()
