import discord
from dataclasses import dataclass
from discord.ext import commands
from typing import Any, Dict, List


@dataclass(frozen=True)
class GuildInfo:
    guild_id: str
    name: str


class DiscordGuildBinding:
    """
    Exposes a discord.py bot through the capabilities the reconciliation core probes for.

    Discord renames guilds through a single edit call, so only edit_guild is
    offered from the rename family.
    """

    platform = "discord"

    def __init__(self, bot: commands.Bot, reason: str = "Group name member count sync"):
        self.bot = bot
        self.reason = reason

    async def _resolve_guild(self, guild_id: str) -> discord.Guild:
        gid = int(guild_id)
        guild = self.bot.get_guild(gid)
        if guild is None:
            guild = await self.bot.fetch_guild(gid)
        return guild

    async def get_guild_info(self, guild_id: str) -> GuildInfo:
        guild = await self._resolve_guild(guild_id)
        return GuildInfo(guild_id=str(guild.id), name=guild.name)

    async def list_guild_members(self, guild_id: str) -> Dict[str, List[discord.Member]]:
        guild = await self._resolve_guild(guild_id)
        members = [member async for member in guild.fetch_members(limit=None)]
        return {"data": members}

    async def edit_guild(self, guild_id: str, patch: Dict[str, Any]):
        guild = await self._resolve_guild(guild_id)
        await guild.edit(name=patch["name"], reason=self.reason)
