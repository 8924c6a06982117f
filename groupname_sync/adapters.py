import enum
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Sequence


class AdapterStatus(enum.Enum):
    UNAVAILABLE = "unavailable"
    SUCCEEDED = "succeeded"
    FAULTED = "faulted"


@dataclass(frozen=True)
class AdapterOutcome:
    adapter: str
    status: AdapterStatus
    error: Optional[BaseException] = None


@dataclass
class ChainResult:
    succeeded: bool
    adapter_used: Optional[str] = None
    outcomes: List[AdapterOutcome] = field(default_factory=list)


def list_capabilities(binding: Any) -> List[str]:
    """Public callables exposed by a binding, for diagnostics."""
    if binding is None:
        return []
    names = []
    for name in dir(binding):
        if name.startswith("_"):
            continue
        try:
            value = getattr(binding, name)
        except Exception:
            continue
        if callable(value):
            names.append(name)
    return sorted(names)


class RenameStrategy:
    """One way of renaming a guild, backed by a single capability of the binding."""

    name: str = ""
    capability: str = ""

    def is_available(self, binding: Any) -> bool:
        return callable(getattr(binding, self.capability, None))

    def invoke(self, method: Callable, guild_id: str, new_name: str) -> Any:
        return method(guild_id, new_name)

    async def attempt_rename(self, binding: Any, guild_id: str, new_name: str) -> AdapterOutcome:
        if binding is None or not self.is_available(binding):
            return AdapterOutcome(self.name, AdapterStatus.UNAVAILABLE)
        method = getattr(binding, self.capability)
        try:
            result = self.invoke(method, guild_id, new_name)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logging.debug(f"{self.name} failed: {e}")
            return AdapterOutcome(self.name, AdapterStatus.FAULTED, e)
        return AdapterOutcome(self.name, AdapterStatus.SUCCEEDED)


class NamedMethodStrategy(RenameStrategy):
    def __init__(self, capability: str):
        self.name = capability
        self.capability = capability


class EditGuildStrategy(RenameStrategy):
    name = "edit_guild"
    capability = "edit_guild"

    def invoke(self, method: Callable, guild_id: str, new_name: str) -> Any:
        return method(guild_id, {"name": new_name})


class ProtocolCallStrategy(RenameStrategy):
    """Raw OneBot-style action issued through a generic call(action, params)."""

    name = "call (set_group_name)"
    capability = "call"
    action = "set_group_name"

    def invoke(self, method: Callable, guild_id: str, new_name: str) -> Any:
        return method(self.action, {"group_id": guild_id, "group_name": new_name})


# Historical and alternate names for the same "rename group" operation.
PLATFORM_RENAME_METHODS = (
    "set_group_name",
    "setGroupName",
    "modify_group_info",
    "modifyGroupInfo",
)

DEFAULT_STRATEGIES: Sequence[RenameStrategy] = (
    NamedMethodStrategy("set_guild_name"),
    EditGuildStrategy(),
    *(NamedMethodStrategy(method) for method in PLATFORM_RENAME_METHODS),
    ProtocolCallStrategy(),
)


class PlatformAdapterChain:
    def __init__(self, strategies: Optional[Sequence[RenameStrategy]] = None):
        self.strategies = list(DEFAULT_STRATEGIES if strategies is None else strategies)

    def available_adapters(self, binding: Any) -> List[str]:
        return [s.name for s in self.strategies if binding is not None and s.is_available(binding)]

    async def apply(self, binding: Any, guild_id: str, new_name: str) -> ChainResult:
        """Try each strategy in order until one succeeds."""
        result = ChainResult(succeeded=False)
        for strategy in self.strategies:
            outcome = await strategy.attempt_rename(binding, guild_id, new_name)
            result.outcomes.append(outcome)
            if outcome.status is AdapterStatus.SUCCEEDED:
                result.succeeded = True
                result.adapter_used = outcome.adapter
                return result
        return result
