import discord
from discord.ext import commands
import os
import asyncio
import logging
from dotenv import load_dotenv

from groupname_sync.audit import audit_log
from groupname_sync.config import load_config

# Load environment variables from .env file
load_dotenv()


# Define ANSI escape sequences for colours
class ColourFormatter(logging.Formatter):
    LEVEL_COLOURS = {
        logging.DEBUG: "\033[0;36m",  # Cyan
        logging.INFO: "\033[0;32m",  # Green
        logging.WARNING: "\033[0;33m",  # Yellow
        logging.ERROR: "\033[0;31m",  # Red
        logging.CRITICAL: "\033[1;41m",  # Red background w/ bold text
    }
    RESET_COLOUR = "\033[0m"

    def format(self, record):
        record.levelname = (
            self.LEVEL_COLOURS.get(record.levelno, self.RESET_COLOUR)
            + record.levelname
            + self.RESET_COLOUR
        )
        return super().format(record)


config = load_config()

# Configure logging; set log_level: DEBUG in config.yaml to see every retry and adapter attempt
handler = logging.StreamHandler()
handler.setFormatter(
    ColourFormatter("%(asctime)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s")
)
logging.basicConfig(
    level=str(config.get("log_level", "INFO")).upper(), handlers=[handler]
)

# Retrieve the bot token from the .env file
BOT_TOKEN = os.environ.get("TOKEN")
if BOT_TOKEN is None:
    logging.error("Bot token not found in .env file. Please set TOKEN!")
    exit(1)

intents = discord.Intents.all()
intents.guilds = True
intents.members = True

bot = commands.Bot(command_prefix=">", intents=intents)


@bot.event
async def on_ready():
    logging.info(f"Successfully logged in as \033[96m{bot.user}\033[0m")
    audit_log(f"Bot logged in as {bot.user} (ID: {bot.user.id}).")
    try:
        synced_commands = await bot.tree.sync()
        logging.info(f"Successfully synced {len(synced_commands)} commands.")
        audit_log(f"Successfully synced {len(synced_commands)} slash commands.")
    except Exception as e:
        logging.error(f"Error syncing application commands: {e}")
        audit_log(f"Error syncing slash commands: {e}")


async def load_cogs():
    """Loads all .py files in the 'cogs' folder as extensions."""
    for filename in os.listdir("./cogs"):
        if filename.endswith(".py") and not filename.startswith("_"):
            await bot.load_extension(f"cogs.{filename[:-3]}")
            audit_log(f"Loaded cog: {filename[:-3]}")


async def main():
    async with bot:
        await load_cogs()
        await bot.start(BOT_TOKEN)


if __name__ == "__main__":
    asyncio.run(main())
