import asyncio


async def drain_tasks(rounds: int = 5) -> None:
    """Let tasks spawned by scheduler ticks run to completion."""
    for _ in range(rounds):
        await asyncio.sleep(0)
