"""Entry point for ``python -m business_spark``."""

import asyncio

from business_spark.engine import main


def run() -> None:
    """Run the terminal game."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
