"""
Async fan-out helpers
"""

import asyncio
from typing import Any, Awaitable, Iterable, List, Tuple


async def gather_settled(awaitables: Iterable[Awaitable[Any]]) -> Tuple[List[Any], List[BaseException]]:
    """
    Wait for every awaitable and split outcomes into successes and failures

    One failure never cancels its siblings. Results keep submission order
    within each list.
    """
    outcomes = await asyncio.gather(*awaitables, return_exceptions=True)
    results = [o for o in outcomes if not isinstance(o, BaseException)]
    failures = [o for o in outcomes if isinstance(o, BaseException)]
    return results, failures
