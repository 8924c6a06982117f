from typing import Optional, Sequence


class GroupNameSyncError(Exception):
    """Base class for every failure a reconciliation run can end with."""


class GuildInfoUnavailable(GroupNameSyncError):
    def __init__(self, guild_id: str, cause: Optional[BaseException] = None):
        self.guild_id = guild_id
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"Could not fetch guild info for {guild_id}{detail}")


class MemberCountUnavailable(GroupNameSyncError):
    def __init__(self, guild_id: str, attempts: int):
        self.guild_id = guild_id
        self.attempts = attempts
        super().__init__(
            f"Could not get a member count for guild {guild_id} after {attempts} attempts"
        )


class TemplateMissing(GroupNameSyncError):
    def __init__(self, guild_id: str):
        self.guild_id = guild_id
        super().__init__(f"Guild {guild_id} has no name template configured")


class AllAdaptersFailed(GroupNameSyncError):
    """No rename strategy was available or every available one raised."""

    def __init__(self, guild_id: str, platform: str, capabilities: Sequence[str]):
        self.guild_id = guild_id
        self.platform = platform
        self.capabilities = list(capabilities)
        listed = ", ".join(self.capabilities) or "none"
        super().__init__(
            f"Platform '{platform}' does not support renaming guilds. Available methods: {listed}"
        )


class InvalidTemplate(GroupNameSyncError, ValueError):
    def __init__(self, template: str):
        self.template = template
        super().__init__("Template must contain the {count} placeholder")
