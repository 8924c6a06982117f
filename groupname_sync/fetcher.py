import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from groupname_sync.config import MAX_UPDATE_DELAY_MS, MIN_UPDATE_DELAY_MS

MAX_FETCH_ATTEMPTS = 3
RETRY_BACKOFF_SECONDS = 1.0

Sleep = Callable[[float], Awaitable[Any]]
ListMembers = Callable[[str], Awaitable[Any]]


@dataclass(frozen=True)
class MemberCountResult:
    count: int
    attempts_used: int
    succeeded: bool


def member_total(listing: Any) -> int:
    """Length of a member listing shaped as {"data": [...]}, an object with .data, or a plain sequence."""
    if listing is None:
        return 0
    if isinstance(listing, dict):
        data = listing.get("data")
    else:
        data = getattr(listing, "data", listing)
    return len(data) if data else 0


class MemberCountFetcher:
    """
    Retries the member listing until it reports a nonzero count.

    A zero count is treated the same as a failed call: right after a membership
    event the platform index can briefly report nothing, and an empty group
    cannot be told apart from that.
    """

    def __init__(
        self,
        list_members: ListMembers,
        max_attempts: int = MAX_FETCH_ATTEMPTS,
        backoff_seconds: float = RETRY_BACKOFF_SECONDS,
        sleep: Sleep = asyncio.sleep,
    ):
        self.list_members = list_members
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self._sleep = sleep

    async def fetch(self, guild_id: str) -> MemberCountResult:
        attempt = 0
        while attempt < self.max_attempts:
            attempt += 1
            try:
                count = member_total(await self.list_members(guild_id))
                if count > 0:
                    return MemberCountResult(count=count, attempts_used=attempt, succeeded=True)
                logging.debug(
                    f"Attempt {attempt} returned no members for guild {guild_id}."
                )
            except Exception as e:
                logging.warning(
                    f"Attempt {attempt} to fetch the member list of guild {guild_id} failed: {e}"
                )

            if attempt < self.max_attempts:
                await self._sleep(self.backoff_seconds)

        return MemberCountResult(count=0, attempts_used=attempt, succeeded=False)


class MembershipDelayGate:
    """Gives the platform time to update its member index after a join or leave."""

    def __init__(self, sleep: Sleep = asyncio.sleep):
        self._sleep = sleep

    async def wait(self, delay_ms: int):
        delay_ms = min(max(int(delay_ms), MIN_UPDATE_DELAY_MS), MAX_UPDATE_DELAY_MS)
        await self._sleep(delay_ms / 1000)
