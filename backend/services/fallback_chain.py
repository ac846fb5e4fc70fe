"""
Ordered fallback chains.

A chain is a list of named alternatives tried strictly one after another;
the first one that succeeds wins and the rest are never started. Used for
the download-tool chain (yt-dlp, then youtube-dl).
"""
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Sequence

from exceptions import ExternalToolError, FallbackExhausted, ToolUnavailableError

logger = logging.getLogger(__name__)

RECOVERABLE_ERRORS = (ToolUnavailableError, ExternalToolError)


@dataclass
class FallbackStep:
    name: str
    invoke: Callable[[], Awaitable[Any]]


async def run_fallback_chain(
    steps: Sequence[FallbackStep],
    recoverable: tuple = RECOVERABLE_ERRORS,
) -> tuple[str, Any]:
    """
    Run steps in order until one succeeds.

    Args:
        steps: Alternatives in priority order
        recoverable: Exception types that move on to the next step;
            anything else propagates immediately

    Returns:
        (name of the winning step, its result)

    Raises:
        FallbackExhausted: If every step raised a recoverable error
    """
    attempts = []
    for step in steps:
        try:
            result = await step.invoke()
        except recoverable as e:
            logger.warning(f"{step.name} failed ({type(e).__name__}: {e}), trying next option")
            attempts.append((step.name, e))
            continue
        if attempts:
            logger.info(f"{step.name} succeeded after {len(attempts)} failed attempt(s)")
        return step.name, result

    raise FallbackExhausted(attempts)
