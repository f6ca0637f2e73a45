"""Base class for one-shot request objects."""

from __future__ import annotations

from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class ServiceRequest(Generic[T]):
    """
    A unit of work that runs at most once.

    Validation belongs in ``__init__`` so malformed requests fail before any
    I/O. ``service`` marks the instance as serviced before doing the work;
    calling it again returns ``None`` without side effects, even if the first
    call raised.
    """

    def __init__(self) -> None:
        self._serviced = False

    @property
    def serviced(self) -> bool:
        return self._serviced

    async def service(self) -> Optional[T]:
        if self._serviced:
            return None
        self._serviced = True
        return await self._run()

    async def _run(self) -> Optional[T]:
        raise NotImplementedError


__all__ = ["ServiceRequest"]
