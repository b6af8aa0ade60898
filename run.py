import asyncio

from trigger_engine.main import main


if __name__ == "__main__":
    asyncio.run(main())
