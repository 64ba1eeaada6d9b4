import asyncio

from .runner_server import main

asyncio.run(main())
