"""Entry point for running the in-house bot as a module via python -m bots"""

import asyncio

from bots.inhouse import main

if __name__ == "__main__":
    asyncio.run(main())
