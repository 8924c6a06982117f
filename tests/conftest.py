"""Shared fakes for the group name sync tests."""

import asyncio
from typing import Any, Dict, List, Optional

import pytest

import groupname_sync.audit
from groupname_sync.binding import GuildInfo
from groupname_sync.config import GuildWatchConfig, WatchListStore


class RecordingSleep:
    """Stands in for asyncio.sleep: records each delay and yields once."""

    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
        await asyncio.sleep(0)


class FakeBinding:
    """Platform binding with scripted member counts and an edit_guild rename."""

    platform = "fake"

    def __init__(
        self,
        name: str = "(021)name",
        counts: Optional[List[Any]] = None,
        guild_info_error: Optional[Exception] = None,
    ) -> None:
        self.name = name
        self.counts = list(counts if counts is not None else [120])
        self.guild_info_error = guild_info_error
        self.calls: List[tuple] = []
        self.renamed_to: List[str] = []

    async def get_guild_info(self, guild_id: str) -> GuildInfo:
        self.calls.append(("get_guild_info", guild_id))
        if self.guild_info_error is not None:
            raise self.guild_info_error
        return GuildInfo(guild_id=guild_id, name=self.name)

    async def list_guild_members(self, guild_id: str) -> Dict[str, list]:
        self.calls.append(("list_guild_members", guild_id))
        value = self.counts.pop(0) if len(self.counts) > 1 else self.counts[0]
        if isinstance(value, Exception):
            raise value
        return {"data": [object()] * value}

    async def edit_guild(self, guild_id: str, patch: Dict[str, Any]) -> None:
        self.calls.append(("edit_guild", guild_id))
        self.renamed_to.append(patch["name"])
        self.name = patch["name"]


@pytest.fixture(autouse=True)
def audit_log_path(tmp_path, monkeypatch):
    path = tmp_path / "audit.log"
    monkeypatch.setattr(groupname_sync.audit, "AUDIT_LOG_PATH", str(path))
    return path


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def store() -> WatchListStore:
    return WatchListStore(
        entries=[GuildWatchConfig(guild_id="g1", name_template="({count})name")],
        update_delay_ms=2000,
    )


@pytest.fixture
def make_binding():
    return FakeBinding
