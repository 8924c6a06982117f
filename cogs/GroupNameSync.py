import discord
import logging
import asyncio
from discord.ext import commands
from typing import Optional, Set

from groupname_sync.adapters import list_capabilities
from groupname_sync.audit import audit_log
from groupname_sync.binding import DiscordGuildBinding
from groupname_sync.config import WatchListStore
from groupname_sync.errors import AllAdaptersFailed, InvalidTemplate
from groupname_sync.fetcher import member_total
from groupname_sync.orchestrator import (
    ReconciliationOrchestrator,
    ReconciliationOutcome,
    ReconciliationRequest,
    RunState,
    TriggerReason,
)


def describe_outcome(outcome: ReconciliationOutcome) -> str:
    """User-facing summary of a finished run."""
    if outcome.state is RunState.DONE:
        return (
            f"Group name updated to: {outcome.rendered_name} "
            f"(real count: {outcome.member_count}, displayed: {outcome.displayed_count})"
        )
    if outcome.state is RunState.SKIPPED:
        if outcome.rendered_name is None:
            return "This guild has no template configured."
        return f"Group name is already up to date: {outcome.rendered_name}"
    if isinstance(outcome.error, AllAdaptersFailed):
        return f"This platform does not support renaming groups (platform: {outcome.error.platform})."
    return f"Update failed: {outcome.error}"


class GroupNameSync(commands.Cog):
    """
    Keeps each watched guild's name in step with its member count.
    The count is written reversed into the guild's template, e.g. '({count})name' with 120 members gives '(021)name'.

    Config keys (config.yaml):
      - group_name_templates: list of {guild_id, name_template}
      - group_name_update_delay_ms: int, 500-10000 (default: 2000)
    """

    CONFIG_PATH = "config.yaml"

    def __init__(self, bot: commands.Bot):
        self.bot = bot
        self.store = WatchListStore.from_file(self.CONFIG_PATH)
        self.orchestrator = ReconciliationOrchestrator(self.store)
        self.binding = DiscordGuildBinding(bot)

        # Runs started by member events, kept so they can be cancelled on unload
        self._runs: Set[asyncio.Task] = set()

    # ---------------------------
    # Lifecycle
    # ---------------------------

    @commands.Cog.listener()
    async def on_ready(self):
        logging.info("\033[96mGroupNameSync\033[0m cog synced successfully.")
        audit_log("GroupNameSync cog synced successfully.")

        if not getattr(self.bot, "intents", None) or not self.bot.intents.members:
            msg = (
                "GroupNameSync notice: Server Members Intent is disabled. "
                "Member join and leave events will not fire and member lists will be empty."
            )
            logging.warning(msg)
            audit_log(msg)

    def cog_unload(self):
        for task in list(self._runs):
            task.cancel()

    # ---------------------------
    # Events
    # ---------------------------

    @commands.Cog.listener()
    async def on_member_join(self, member: discord.Member):
        self._schedule(member.guild, TriggerReason.JOINED)

    @commands.Cog.listener()
    async def on_member_remove(self, member: discord.Member):
        self._schedule(member.guild, TriggerReason.LEFT)

    def _schedule(self, guild: discord.Guild, reason: TriggerReason):
        guild_id = str(guild.id)
        if not self.store.is_watched(guild_id):
            return
        task = asyncio.create_task(
            self._run_event(ReconciliationRequest(guild_id=guild_id, reason=reason)),
            name=f"groupname_sync_{guild_id}",
        )
        self._runs.add(task)
        task.add_done_callback(self._runs.discard)

    async def _run_event(self, request: ReconciliationRequest):
        try:
            await self.orchestrator.reconcile(self.binding, request)
        except Exception as e:
            logging.error(
                f"Error handling member {request.reason.value} in guild {request.guild_id}: {e}",
                exc_info=True,
            )
            audit_log(f"Error handling member {request.reason.value} in guild {request.guild_id}: {e}")

    # ---------------------------
    # Commands
    # ---------------------------

    async def _resolve_target(self, ctx: commands.Context, guild_id: Optional[str]) -> Optional[str]:
        """
        Commands only act on the server they are run in, so permission checks
        made against ctx.guild also cover the guild being changed.
        """
        current = str(ctx.guild.id)
        if guild_id is None or str(guild_id).strip() == current:
            return current
        await ctx.reply(
            "You can only manage the group name of the server you run this command in.",
            mention_author=False,
        )
        return None

    @commands.hybrid_command(
        name="updategroupname",
        aliases=["update_group_name"],
        description="Update this server's name from its member count, optionally with a fixed count.",
    )
    @commands.guild_only()
    @commands.has_permissions(manage_guild=True)
    @commands.bot_has_permissions(manage_guild=True)
    async def update_group_name(self, ctx: commands.Context, count: Optional[int] = None):
        target = str(ctx.guild.id)
        if not self.store.is_watched(target):
            await ctx.reply("This guild has no template configured.", mention_author=False)
            return

        if count is not None and count < 0:
            await ctx.reply("The member count cannot be negative.", mention_author=False)
            return

        request = ReconciliationRequest(
            guild_id=target, reason=TriggerReason.MANUAL, explicit_count=count
        )
        outcome = await self.orchestrator.reconcile(self.binding, request)
        await ctx.reply(describe_outcome(outcome), mention_author=False)
        audit_log(
            f"{ctx.author} ({ctx.author.id}) ran updategroupname for guild {target}: {outcome.state.value}."
        )

    @commands.hybrid_command(
        name="groupnameconfig",
        aliases=["group_name_config"],
        description="Show the automatic group name update settings.",
    )
    async def group_name_config(self, ctx: commands.Context):
        entries = self.store.snapshot()
        watched = ", ".join(entry.guild_id for entry in entries) or "none"
        lines = [
            "Group name auto-update settings:",
            f"- Watched guilds: {watched}",
            f"- Update delay: {self.store.update_delay_ms}ms",
        ]
        if entries:
            lines.append("- Templates:")
            lines.extend(f"  * {entry.guild_id}: {entry.name_template}" for entry in entries)
        else:
            lines.append("- Templates: none")
        await ctx.reply("\n".join(lines), mention_author=False)

    @commands.hybrid_command(
        name="setgrouptemplate",
        aliases=["set_group_template"],
        description="Set the name template for this server. Use {count} for the member count.",
    )
    @commands.guild_only()
    @commands.has_permissions(manage_guild=True)
    async def set_group_template(self, ctx: commands.Context, guild_id: str, *, template: str):
        target = await self._resolve_target(ctx, guild_id)
        if target is None:
            return

        try:
            updated = self.store.set_template(target, template)
        except InvalidTemplate:
            await ctx.reply("The template must contain the {count} placeholder.", mention_author=False)
            return

        if updated:
            msg = f"Updated the template of guild {target} to: {template}"
        else:
            msg = f"Set the template of guild {target} to: {template}"
        await ctx.reply(msg, mention_author=False)
        audit_log(f"{ctx.author} ({ctx.author.id}) set group template for {target}: {template}")

    @commands.hybrid_command(
        name="removegrouptemplate",
        aliases=["remove_group_template"],
        description="Remove this server's template and stop watching it.",
    )
    @commands.guild_only()
    @commands.has_permissions(manage_guild=True)
    async def remove_group_template(self, ctx: commands.Context, guild_id: str):
        target = await self._resolve_target(ctx, guild_id)
        if target is None:
            return

        if self.store.remove_template(target):
            await ctx.reply(
                f"Removed the template of guild {target}; it is no longer watched.",
                mention_author=False,
            )
            audit_log(f"{ctx.author} ({ctx.author.id}) removed group template for {target}.")
        else:
            await ctx.reply(f"Guild {target} has no template configured.", mention_author=False)

    @commands.hybrid_command(
        name="testgroupapi",
        aliases=["test_group_api"],
        description="Test the group APIs used for renaming this server.",
    )
    @commands.guild_only()
    async def test_group_api(self, ctx: commands.Context, guild_id: Optional[str] = None):
        target = await self._resolve_target(ctx, guild_id)
        if target is None:
            return

        try:
            info = await self.binding.get_guild_info(target)
            member_count = member_total(await self.binding.list_guild_members(target))
        except Exception as e:
            logging.warning(f"testgroupapi failed for guild {target}: {e}")
            await ctx.reply(f"API test failed: {e}", mention_author=False)
            return

        template = self.store.template_for(target)
        adapters = self.orchestrator.chain.available_adapters(self.binding)
        lines = [
            "Group API test results:",
            f"- Guild ID: {target}",
            f"- Current name: {info.name}",
            f"- Member count: {member_count}",
            f"- Template: {template or 'not configured'}",
            f"- Watched: {'yes' if template else 'no'}",
            f"- Platform: {self.binding.platform}",
            f"- Rename methods: {', '.join(adapters) or 'none'}",
            f"- All methods: {', '.join(list_capabilities(self.binding))}",
        ]
        await ctx.reply("\n".join(lines), mention_author=False)

    @commands.hybrid_command(
        name="debugplatform",
        aliases=["debug_platform"],
        description="Show information about the current platform binding.",
    )
    async def debug_platform(self, ctx: commands.Context):
        methods = list_capabilities(self.binding)
        attributes = sorted(
            name
            for name in vars(self.binding)
            if not name.startswith("_") and name not in methods
        )
        lines = [
            "Platform debug info:",
            f"- Platform: {self.binding.platform}",
            f"- Bot user ID: {self.bot.user.id if self.bot.user else 'unknown'}",
            f"- Methods: {', '.join(methods)}",
            f"- Attributes: {', '.join(attributes)}",
        ]
        await ctx.reply("\n".join(lines), mention_author=False)

    @update_group_name.error
    async def update_group_name_error(self, ctx: commands.Context, error: commands.CommandError):
        if isinstance(error, commands.BadArgument):
            await ctx.reply("The member count must be a whole number.", mention_author=False)
        else:
            await self._command_error(ctx, error)

    @set_group_template.error
    async def set_group_template_error(self, ctx: commands.Context, error: commands.CommandError):
        if isinstance(error, commands.MissingRequiredArgument):
            await ctx.reply("Please provide a guild ID and a template.", mention_author=False)
        else:
            await self._command_error(ctx, error)

    @remove_group_template.error
    async def remove_group_template_error(self, ctx: commands.Context, error: commands.CommandError):
        if isinstance(error, commands.MissingRequiredArgument):
            await ctx.reply("Please provide a guild ID.", mention_author=False)
        else:
            await self._command_error(ctx, error)

    async def _command_error(self, ctx: commands.Context, error: commands.CommandError):
        if isinstance(error, commands.MissingPermissions):
            await ctx.reply(
                "You need the Manage Server permission to run this.",
                mention_author=False,
            )
        elif isinstance(error, commands.BotMissingPermissions):
            await ctx.reply(
                "I need the Manage Server permission to do that.",
                mention_author=False,
            )
        elif isinstance(error, commands.NoPrivateMessage):
            await ctx.reply(
                "This command must be used in a server.", mention_author=False
            )
        else:
            logging.error(f"GroupNameSync command error: {error}", exc_info=True)
            await ctx.reply(
                "I could not run that command right now. Please try again later.",
                mention_author=False,
            )


async def setup(bot: commands.Bot):
    await bot.add_cog(GroupNameSync(bot))
