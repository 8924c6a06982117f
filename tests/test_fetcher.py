"""Tests for the retrying member count fetcher and the delay gate."""

from types import SimpleNamespace

import pytest

from groupname_sync.fetcher import MemberCountFetcher, MembershipDelayGate, member_total


def scripted(*values):
    """List-members capability returning (or raising) each value in turn."""
    remaining = list(values)
    calls = []

    async def list_members(guild_id):
        calls.append(guild_id)
        value = remaining.pop(0)
        if isinstance(value, Exception):
            raise value
        return {"data": list(range(value))}

    list_members.calls = calls
    return list_members


class TestMemberTotal:
    def test_mapping_with_data(self) -> None:
        assert member_total({"data": [1, 2, 3]}) == 3

    def test_object_with_data(self) -> None:
        assert member_total(SimpleNamespace(data=[1, 2])) == 2

    def test_plain_sequence(self) -> None:
        assert member_total([1]) == 1

    def test_missing_data(self) -> None:
        assert member_total(None) == 0
        assert member_total({"data": None}) == 0


class TestMemberCountFetcher:
    @pytest.mark.asyncio
    async def test_fails_twice_then_succeeds(self, recording_sleep) -> None:
        list_members = scripted(RuntimeError("boom"), RuntimeError("boom"), 5)
        fetcher = MemberCountFetcher(list_members, sleep=recording_sleep)

        result = await fetcher.fetch("g1")

        assert result.count == 5
        assert result.attempts_used == 3
        assert result.succeeded is True
        assert recording_sleep.delays == [1.0, 1.0]

    @pytest.mark.asyncio
    async def test_always_zero_fails_after_three_attempts(self, recording_sleep) -> None:
        list_members = scripted(0, 0, 0)
        fetcher = MemberCountFetcher(list_members, sleep=recording_sleep)

        result = await fetcher.fetch("g1")

        assert result.count == 0
        assert result.succeeded is False
        assert result.attempts_used == 3
        assert len(list_members.calls) == 3
        assert recording_sleep.delays == [1.0, 1.0]

    @pytest.mark.asyncio
    async def test_first_nonzero_returns_without_backoff(self, recording_sleep) -> None:
        list_members = scripted(42)
        fetcher = MemberCountFetcher(list_members, sleep=recording_sleep)

        result = await fetcher.fetch("g1")

        assert (result.count, result.attempts_used, result.succeeded) == (42, 1, True)
        assert recording_sleep.delays == []


class TestMembershipDelayGate:
    @pytest.mark.asyncio
    async def test_waits_configured_delay(self, recording_sleep) -> None:
        await MembershipDelayGate(sleep=recording_sleep).wait(2000)
        assert recording_sleep.delays == [2.0]

    @pytest.mark.asyncio
    async def test_delay_is_bounded(self, recording_sleep) -> None:
        gate = MembershipDelayGate(sleep=recording_sleep)
        await gate.wait(10)
        await gate.wait(60000)
        assert recording_sleep.delays == [0.5, 10.0]
