"""
Bounded polling shared by the retrieval steps that wait on page state.
"""

import logging
import time
from typing import Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


def poll_until(
    predicate: Callable[[], Optional[T]],
    interval_s: float,
    max_attempts: int,
    sleep: Callable[[float], None] = time.sleep,
) -> Optional[T]:
    """
    Call predicate until it returns a truthy value or attempts run out.

    The predicate is evaluated at most max_attempts times, with interval_s
    between consecutive evaluations (no sleep after the last one), so the
    total wait is bounded by (max_attempts - 1) * interval_s plus the time
    spent inside predicate.

    Args:
        predicate: Zero-argument callable; a truthy return ends polling.
            Exceptions propagate to the caller unchanged.
        interval_s: Seconds to sleep between attempts
        max_attempts: Maximum number of evaluations (>= 1)
        sleep: Sleep function (injectable for tests)

    Returns:
        The first truthy value returned by predicate, or None if exhausted

    Raises:
        ValueError: If max_attempts < 1

    Example:
        >>> outcome = poll_until(lambda: page.query_selector('#downloadXmlBtn'), 2.0, 30)
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")

    for attempt in range(1, max_attempts + 1):
        result = predicate()
        if result:
            logger.debug(f"Condition met on attempt {attempt}/{max_attempts}")
            return result
        if attempt < max_attempts:
            sleep(interval_s)

    logger.debug(f"Condition not met after {max_attempts} attempts")
    return None
