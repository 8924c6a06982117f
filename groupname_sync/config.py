import logging
import yaml
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from groupname_sync.audit import audit_log
from groupname_sync.errors import InvalidTemplate
from groupname_sync.render import has_placeholder

CONFIG_PATH = "config.yaml"

DEFAULT_UPDATE_DELAY_MS = 2000
MIN_UPDATE_DELAY_MS = 500
MAX_UPDATE_DELAY_MS = 10000


@dataclass(frozen=True)
class GuildWatchConfig:
    guild_id: str
    name_template: str


def clamp_delay_ms(value: Any) -> int:
    """Coerce a configured delay into the supported 500-10000 ms window."""
    try:
        delay = int(value)
    except (TypeError, ValueError):
        logging.warning(
            f"group_name_update_delay_ms '{value}' is not a number. Using {DEFAULT_UPDATE_DELAY_MS}ms."
        )
        return DEFAULT_UPDATE_DELAY_MS
    if delay < MIN_UPDATE_DELAY_MS or delay > MAX_UPDATE_DELAY_MS:
        clamped = min(max(delay, MIN_UPDATE_DELAY_MS), MAX_UPDATE_DELAY_MS)
        logging.warning(
            f"group_name_update_delay_ms {delay} is outside {MIN_UPDATE_DELAY_MS}-{MAX_UPDATE_DELAY_MS}. Using {clamped}ms."
        )
        return clamped
    return delay


def load_config(path: str = CONFIG_PATH) -> Dict[str, Any]:
    """Load YAML config. Never writes or creates the file."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            cfg = yaml.safe_load(f) or {}
            if not isinstance(cfg, dict):
                logging.warning("Config did not parse to a dict. Using empty defaults.")
                return {}
            return cfg
    except FileNotFoundError:
        logging.error(f"{path} not found. Proceeding with defaults in memory.")
        audit_log(f"{path} not found. Proceeding with defaults in memory.")
        return {}
    except Exception as e:
        logging.error(f"Error loading {path}: {e}", exc_info=True)
        audit_log(f"Error loading {path}: {e}")
        return {}


def _parse_watch_list(raw: Any) -> List[GuildWatchConfig]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        logging.warning("group_name_templates is not a list. No guilds will be watched.")
        return []

    entries: List[GuildWatchConfig] = []
    for item in raw:
        if not isinstance(item, dict):
            logging.warning(f"Skipping group_name_templates entry that is not a mapping: {item!r}")
            continue
        guild_id = item.get("guild_id")
        template = item.get("name_template")
        if guild_id is None or template is None:
            logging.warning(
                f"Skipping group_name_templates entry without guild_id or name_template: {item!r}"
            )
            continue
        template = str(template)
        if not has_placeholder(template):
            # Kept as configured; the rendered name will simply never change.
            logging.warning(
                f"Template for guild {guild_id} has no {{count}} placeholder: '{template}'"
            )
        entries.append(GuildWatchConfig(guild_id=str(guild_id), name_template=template))
    return entries


class WatchListStore:
    """
    Owns the watched guild list and update delay for the lifetime of the process.

    Readers always get a fresh immutable snapshot, because the command surface
    can change the list between two reads. Changes stay in memory and are never
    written back to config.yaml.
    """

    def __init__(
        self,
        entries: Optional[List[GuildWatchConfig]] = None,
        update_delay_ms: int = DEFAULT_UPDATE_DELAY_MS,
    ):
        self._entries: List[GuildWatchConfig] = list(entries or [])
        self._update_delay_ms: int = clamp_delay_ms(update_delay_ms)

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "WatchListStore":
        return cls(
            entries=_parse_watch_list(config.get("group_name_templates")),
            update_delay_ms=config.get("group_name_update_delay_ms", DEFAULT_UPDATE_DELAY_MS),
        )

    @classmethod
    def from_file(cls, path: str = CONFIG_PATH) -> "WatchListStore":
        return cls.from_config(load_config(path))

    # ---------------------------
    # Reads
    # ---------------------------

    def snapshot(self) -> Tuple[GuildWatchConfig, ...]:
        return tuple(self._entries)

    @property
    def update_delay_ms(self) -> int:
        return self._update_delay_ms

    def watched_guild_ids(self) -> List[str]:
        return [entry.guild_id for entry in self._entries]

    def is_watched(self, guild_id: str) -> bool:
        return self._find_index(guild_id) is not None

    def template_for(self, guild_id: str) -> Optional[str]:
        index = self._find_index(guild_id)
        return None if index is None else self._entries[index].name_template

    # ---------------------------
    # Writes
    # ---------------------------

    def set_template(self, guild_id: str, template: str) -> bool:
        """Add or replace a guild's template. Returns True when an entry was updated."""
        if not has_placeholder(template):
            raise InvalidTemplate(template)
        guild_id = str(guild_id)
        entry = GuildWatchConfig(guild_id=guild_id, name_template=template)
        index = self._find_index(guild_id)
        if index is None:
            self._entries.append(entry)
            return False
        self._entries[index] = entry
        return True

    def remove_template(self, guild_id: str) -> bool:
        index = self._find_index(str(guild_id))
        if index is None:
            return False
        del self._entries[index]
        return True

    def _find_index(self, guild_id: str) -> Optional[int]:
        guild_id = str(guild_id)
        for i, entry in enumerate(self._entries):
            if entry.guild_id == guild_id:
                return i
        return None
