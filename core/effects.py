"""
Fire-and-forget side effects.

Audit logging and alias insertion must never fail an import. Every such
effect goes through ``best_effort`` so the non-fatal behaviour lives in one
place and shows up in the logs under one name.
"""

from typing import Any, Awaitable, Callable, Optional
from sqlalchemy.ext.asyncio import AsyncSession
import logging

logger = logging.getLogger(__name__)


async def best_effort(
    effect_name: str,
    effect: Callable[[], Awaitable[Any]],
    session: Optional[AsyncSession] = None
) -> Optional[Any]:
    """
    Run ``effect`` and swallow any exception it raises.

    Args:
        effect_name: Label used in log lines (e.g. "audit_log", "alias_insert")
        effect: Zero-argument coroutine factory
        session: Session to roll back when the effect fails mid-transaction

    Returns:
        The effect's return value, or None when it failed
    """
    try:
        return await effect()
    except Exception as e:
        logger.warning(
            f"Best-effort effect '{effect_name}' failed: {type(e).__name__}: {e}",
            extra={"effect": effect_name}
        )
        if session is not None:
            try:
                await session.rollback()
            except Exception as rollback_error:
                logger.error(f"Rollback after '{effect_name}' failed: {rollback_error}")
        return None
