"""
Base service class.

Session handling, a logger bound to the service name, and the
decorators shared by the retry worker services.
"""

import functools
from collections.abc import Callable
from typing import Any, TypeVar

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from app.utils.datetime_utils import elapsed_ms, monotonic_ms


T = TypeVar("T")


class BaseService:
    """
    Base service class.

    Holds the session the service writes through and a loguru logger
    bound with ``service=<ClassName>``.
    """

    def __init__(self, session: AsyncSession) -> None:
        """
        Initialize base service.

        Args:
            session: Async database session
        """
        self.session = session
        self.logger = logger.bind(service=self.__class__.__name__)

    async def commit(self) -> None:
        """Commit current transaction."""
        await self.session.commit()

    async def rollback(self) -> None:
        """Rollback current transaction."""
        await self.session.rollback()


def transaction(func: Callable[..., T]) -> Callable[..., T]:
    """
    Commit after the wrapped method returns, roll back if it raises.

    Usage:
        @transaction
        async def record_incoming_event(self, ...):
            ...
    """
    @functools.wraps(func)
    async def wrapper(self: BaseService, *args: Any, **kwargs: Any) -> Any:
        try:
            result = await func(self, *args, **kwargs)
            await self.commit()
            return result
        except Exception as e:
            await self.rollback()
            self.logger.error(
                f"Transaction failed in {func.__name__}",
                extra={"error": str(e), "function": func.__name__},
            )
            raise

    return wrapper


def log_operation(func: Callable[..., T]) -> Callable[..., T]:
    """
    Log entry, exit and duration of a service method.

    Failures are logged with traceback and re-raised.
    """
    @functools.wraps(func)
    async def wrapper(self: BaseService, *args: Any, **kwargs: Any) -> Any:
        started = monotonic_ms()
        self.logger.info(f"Starting {func.__name__}", extra={"function": func.__name__})

        try:
            result = await func(self, *args, **kwargs)
        except Exception as e:
            self.logger.opt(exception=True).error(
                f"Failed {func.__name__}",
                extra={
                    "function": func.__name__,
                    "duration_ms": elapsed_ms(started),
                    "error": str(e),
                },
            )
            raise

        self.logger.info(
            f"Completed {func.__name__}",
            extra={"function": func.__name__, "duration_ms": elapsed_ms(started)},
        )
        return result

    return wrapper
