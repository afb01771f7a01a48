"""
Interface contracts for the collaborators a bulk job talks to.

The scheduler and executor only see these protocols; discord.py and SQLite
live behind them so the core can be exercised with fakes.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import Any, Optional, Protocol, runtime_checkable

from .bulk.models import CallResult, RemovalOptions, Restriction


@runtime_checkable
class PresenceStore(Protocol):
    """Which identities have been observed in which groups."""

    @abstractmethod
    async def get_known_targets(self, group_id: int) -> list[int]:
        ...

    @abstractmethod
    async def get_groups_for_identity(self, identity: int) -> list[int]:
        ...

    @abstractmethod
    async def get_group_title(self, group_id: int) -> Optional[str]:
        ...

    @abstractmethod
    async def prune_targets(self, group_id: int, target_ids: list[int]) -> int:
        ...

    @abstractmethod
    async def forget_identity(self, identity: int, group_ids: list[int]) -> int:
        ...


@runtime_checkable
class PlatformActionClient(Protocol):
    """Performs moderation calls and classifies their results."""

    self_id: int

    @abstractmethod
    async def apply_removal(self, group_id: int, target_id: int, opts: RemovalOptions) -> CallResult:
        ...

    @abstractmethod
    async def apply_restriction(self, group_id: int, target_id: int, restriction: Restriction) -> CallResult:
        ...

    @abstractmethod
    async def reverse_removal(self, group_id: int, target_id: int) -> CallResult:
        ...


@runtime_checkable
class AuthorizationService(Protocol):
    @abstractmethod
    async def is_authorized_operator(self, actor_id: int) -> bool:
        ...

    @abstractmethod
    async def list_elevated_members(self, group_id: int) -> set[int]:
        ...


@runtime_checkable
class StatusSink(Protocol):
    """Where a job's single status message lives.

    ``edit`` raises StatusMessageGone when the message was deleted and
    StatusUnchanged when the platform rejects an identical edit.
    """

    @abstractmethod
    async def send(self, text: str) -> Any:
        ...

    @abstractmethod
    async def edit(self, handle: Any, text: str) -> None:
        ...


def validate_platform_client(client: object) -> PlatformActionClient:
    """Validate and return PlatformActionClient interface."""
    if not isinstance(client, PlatformActionClient):
        raise AttributeError(f"Object {client} does not implement PlatformActionClient interface")
    return client
