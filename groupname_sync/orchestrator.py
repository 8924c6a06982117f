import asyncio
import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from groupname_sync.adapters import PlatformAdapterChain, list_capabilities
from groupname_sync.audit import audit_log
from groupname_sync.config import WatchListStore
from groupname_sync.errors import (
    AllAdaptersFailed,
    GroupNameSyncError,
    GuildInfoUnavailable,
    MemberCountUnavailable,
    TemplateMissing,
)
from groupname_sync.fetcher import MemberCountFetcher, MembershipDelayGate, Sleep
from groupname_sync.render import render_name, reverse_digits, should_update


class TriggerReason(enum.Enum):
    JOINED = "joined"
    LEFT = "left"
    MANUAL = "manual"


class RunState(enum.Enum):
    IDLE = "idle"
    CHECK_WATCHED = "check_watched"
    FETCH_GUILD_INFO = "fetch_guild_info"
    AWAITING_DELAY = "awaiting_delay"
    FETCHING_COUNT = "fetching_count"
    RENDERING = "rendering"
    CHECK_IDEMPOTENT = "check_idempotent"
    UPDATING_NAME = "updating_name"
    DONE = "done"
    SKIPPED = "skipped"
    FAILED = "failed"


TERMINAL_STATES = frozenset({RunState.DONE, RunState.SKIPPED, RunState.FAILED})


@dataclass(frozen=True)
class ReconciliationRequest:
    guild_id: str
    reason: TriggerReason
    explicit_count: Optional[int] = None


@dataclass
class ReconciliationOutcome:
    guild_id: str
    reason: TriggerReason
    state: RunState = RunState.IDLE
    current_name: Optional[str] = None
    rendered_name: Optional[str] = None
    member_count: Optional[int] = None
    adapter_used: Optional[str] = None
    error: Optional[BaseException] = None
    history: List[RunState] = field(default_factory=list)
    # True when the trigger was folded into a run already in flight
    merged: bool = False

    def enter(self, state: RunState):
        self.state = state
        self.history.append(state)

    @property
    def displayed_count(self) -> Optional[str]:
        if self.member_count is None:
            return None
        return reverse_digits(self.member_count)


def _guild_name(info: Any) -> str:
    if isinstance(info, dict):
        return info.get("name", "")
    return getattr(info, "name", "")


class ReconciliationOrchestrator:
    """
    Runs one trigger through watch check, delay, count fetch, render and rename.

    Runs for the same guild are serialized with a per-guild lock; runs for
    different guilds interleave freely at their sleep points. A member event
    that arrives while a run for its guild is in flight is merged instead of
    queued: if the active run has not fetched the count yet it will see the
    change anyway, otherwise the run repeats once after it finishes.
    """

    def __init__(
        self,
        store: WatchListStore,
        chain: Optional[PlatformAdapterChain] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.store = store
        self.chain = chain or PlatformAdapterChain()
        self._sleep = sleep
        self.delay_gate = MembershipDelayGate(sleep=sleep)

        # Locks exist only while a run for the guild is active or waiting
        self._guild_locks: Dict[str, asyncio.Lock] = {}
        self._active_runs: Dict[str, int] = {}
        # Latest member event merged into the active run, per guild
        self._pending: Dict[str, ReconciliationRequest] = {}

    def is_in_flight(self, guild_id: str) -> bool:
        return guild_id in self._active_runs

    async def reconcile(self, binding: Any, request: ReconciliationRequest) -> ReconciliationOutcome:
        guild_id = request.guild_id
        if request.reason is not TriggerReason.MANUAL and self.is_in_flight(guild_id):
            self._pending[guild_id] = request
            logging.debug(f"Member {request.reason.value} in guild {guild_id} merged into the active run.")
            outcome = ReconciliationOutcome(guild_id=guild_id, reason=request.reason, merged=True)
            outcome.enter(RunState.IDLE)
            outcome.enter(RunState.SKIPPED)
            return outcome

        self._active_runs[guild_id] = self._active_runs.get(guild_id, 0) + 1
        lock = self._guild_locks.setdefault(guild_id, asyncio.Lock())
        try:
            async with lock:
                outcome = await self._reconcile_once(binding, request)
                while guild_id in self._pending:
                    await self._reconcile_once(binding, self._pending.pop(guild_id))
        finally:
            self._active_runs[guild_id] -= 1
            if not self._active_runs[guild_id]:
                del self._active_runs[guild_id]
                del self._guild_locks[guild_id]
                # Left over only when the run was cancelled
                self._pending.pop(guild_id, None)
        return outcome

    async def _reconcile_once(self, binding: Any, request: ReconciliationRequest) -> ReconciliationOutcome:
        outcome = ReconciliationOutcome(guild_id=request.guild_id, reason=request.reason)
        outcome.enter(RunState.IDLE)
        try:
            await self._run(binding, request, outcome)
        except GroupNameSyncError as e:
            self._fail(outcome, e)
        except Exception as e:
            logging.error(
                f"Unexpected error while syncing the name of guild {request.guild_id}: {e}",
                exc_info=True,
            )
            audit_log(f"Group name sync error in guild {request.guild_id}: {e}")
            outcome.error = e
            outcome.enter(RunState.FAILED)
        return outcome

    async def _run(self, binding: Any, request: ReconciliationRequest, outcome: ReconciliationOutcome):
        guild_id = request.guild_id

        outcome.enter(RunState.CHECK_WATCHED)
        if not self.store.is_watched(guild_id):
            outcome.enter(RunState.SKIPPED)
            return

        outcome.enter(RunState.FETCH_GUILD_INFO)
        try:
            info = await binding.get_guild_info(guild_id)
        except Exception as e:
            raise GuildInfoUnavailable(guild_id, e) from e
        outcome.current_name = _guild_name(info)

        if request.explicit_count is not None:
            if request.explicit_count < 0:
                raise ValueError(f"Member count cannot be negative: {request.explicit_count}")
            outcome.member_count = request.explicit_count
        else:
            if request.reason is not TriggerReason.MANUAL:
                outcome.enter(RunState.AWAITING_DELAY)
                logging.debug(
                    f"Member {request.reason.value} guild {guild_id}, waiting for the platform to update its member list..."
                )
                await self.delay_gate.wait(self.store.update_delay_ms)

            outcome.enter(RunState.FETCHING_COUNT)
            # This fetch reflects every event merged so far
            self._pending.pop(guild_id, None)
            fetcher = MemberCountFetcher(binding.list_guild_members, sleep=self._sleep)
            result = await fetcher.fetch(guild_id)
            if not result.succeeded:
                raise MemberCountUnavailable(guild_id, result.attempts_used)
            outcome.member_count = result.count
            logging.debug(f"Guild {guild_id} currently has {result.count} members.")

        outcome.enter(RunState.RENDERING)
        template = self.store.template_for(guild_id)
        if not template:
            raise TemplateMissing(guild_id)
        outcome.rendered_name = render_name(template, outcome.member_count)

        outcome.enter(RunState.CHECK_IDEMPOTENT)
        if not should_update(outcome.current_name, outcome.rendered_name):
            logging.debug(
                f"Guild {guild_id} already has the target name, skipping: {outcome.rendered_name}"
            )
            outcome.enter(RunState.SKIPPED)
            return

        outcome.enter(RunState.UPDATING_NAME)
        applied = await self.chain.apply(binding, guild_id, outcome.rendered_name)
        if not applied.succeeded:
            raise AllAdaptersFailed(
                guild_id,
                platform=getattr(binding, "platform", "unknown"),
                capabilities=list_capabilities(binding),
            )
        outcome.adapter_used = applied.adapter_used
        outcome.enter(RunState.DONE)

        logging.info(
            f"Guild {guild_id} renamed to '{outcome.rendered_name}' via {applied.adapter_used} "
            f"(member {request.reason.value}, real count: {outcome.member_count}, displayed: {outcome.displayed_count})."
        )
        audit_log(
            f"Renamed guild {guild_id} to '{outcome.rendered_name}' (trigger: {request.reason.value}, "
            f"real count: {outcome.member_count}, displayed: {outcome.displayed_count})."
        )

    def _fail(self, outcome: ReconciliationOutcome, error: GroupNameSyncError):
        outcome.error = error
        outcome.enter(RunState.FAILED)
        if isinstance(error, (GuildInfoUnavailable, AllAdaptersFailed)):
            logging.warning(str(error))
        else:
            logging.error(f"{error}, skipping update.")
        audit_log(f"Group name sync failed for guild {outcome.guild_id}: {error}")
