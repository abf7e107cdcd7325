from __future__ import annotations
from pathlib import Path
import fcntl
import os
from typing import Any, Dict
import yaml

from modwarden.util.logger import get_logger

logger = get_logger("app_configuration")


CONFIG_PATH = Path("./config/app_config.yml").resolve()

DEFAULT_MUTE_ROLE_NAME = "Muted"
DEFAULT_RATE_LIMIT_MAX_ACTIONS = 3
DEFAULT_RATE_LIMIT_WINDOW_SECONDS = 3600.0
DEFAULT_SETTLE_DELAY_SECONDS = 7.0
DEFAULT_INVITE_REFRESH_SECONDS = 600.0
DEFAULT_VOICE_DWELL_SECONDS = 30.0
DEFAULT_DATABASE_PATH = "data/punishments.db"


def _optional_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning("[APP CONFIGURATION] Ignoring non-integer ID value %r", value)
        return None


class AppConfig:
    """File-lock based accessor around the YAML-based application configuration.

    The class caches contents of ``./config/app_config.yml`` and exposes typed
    properties for every setting modwarden reads. A few values may be
    overridden through environment variables (``LOG_CHANNEL_ID``,
    ``MUTE_ROLE_NAME``) so that deployments driven purely by ``.env`` keep working.
    """

    def __init__(self, config_path: Path) -> None:
        self.config_path = config_path
        self._data: Dict[str, Any] = {}
        self.reload()

    # --------------------------
    # Private helpers
    # --------------------------
    def load_from_disk(self) -> Dict[str, Any]:
        try:
            with self.config_path.open("r", encoding="utf-8") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                try:
                    data = yaml.safe_load(f)
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)
                if data is None:
                    return {}
                if not isinstance(data, dict):
                    logger.error("[APP CONFIGURATION] Config %s is not a mapping; ignoring it.", self.config_path)
                    return {}
                return data
        except FileNotFoundError:
            logger.warning("[APP CONFIGURATION] Config file %s not found; using defaults.", self.config_path)
        except Exception as exc:
            logger.error("[APP CONFIGURATION] Failed to load config %s: %s", self.config_path, exc)
        return {}

    def section(self, key: str) -> Dict[str, Any]:
        value = self._data.get(key, {})
        return value if isinstance(value, dict) else {}

    # --------------------------
    # Public API
    # --------------------------
    def reload(self) -> Dict[str, Any]:
        """Reload configuration from disk and return the loaded mapping.

        Returns the raw mapping that was loaded (an empty dict on error).
        """
        self._data = self.load_from_disk()
        return self._data

    @property
    def data(self) -> Dict[str, Any]:
        """Return the current cached configuration mapping.

        The returned dict is the internal cache. Callers should not mutate it.
        """
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        """Safe lookup for top-level configuration keys."""
        return self._data.get(key, default)

    # --------------------------
    # High-level shortcuts
    # --------------------------
    @property
    def log_channel_id(self) -> int | None:
        """Channel that receives audit embeds, or ``None`` when auditing is disabled."""
        return _optional_int(os.getenv("LOG_CHANNEL_ID") or self._data.get("log_channel_id"))

    @property
    def mute_role_name(self) -> str:
        """Name of the role applied by the mute command."""
        value = os.getenv("MUTE_ROLE_NAME") or self._data.get("mute_role_name")
        return str(value or DEFAULT_MUTE_ROLE_NAME)

    @property
    def lock_role_id(self) -> int | None:
        """Role whose Send Messages permission is toggled by lock/unlock."""
        return _optional_int(self._data.get("lock_role_id"))

    @property
    def rate_limit_max_actions(self) -> int:
        """Punitive actions a moderator may take inside one window."""
        return int(self.section("rate_limit").get("max_actions", DEFAULT_RATE_LIMIT_MAX_ACTIONS))

    @property
    def rate_limit_window_seconds(self) -> float:
        """Length of the trailing rate-limit window in seconds."""
        return float(self.section("rate_limit").get("window_seconds", DEFAULT_RATE_LIMIT_WINDOW_SECONDS))

    @property
    def invite_settle_delay(self) -> float:
        """Seconds to wait after a join before re-fetching invites."""
        return float(self.section("invites").get("settle_delay_seconds", DEFAULT_SETTLE_DELAY_SECONDS))

    @property
    def invite_refresh_interval(self) -> float:
        """Interval of the periodic invite snapshot refresh, in seconds."""
        return float(self.section("invites").get("refresh_interval_seconds", DEFAULT_INVITE_REFRESH_SECONDS))

    @property
    def voice_watch_channel_id(self) -> int | None:
        return _optional_int(self.section("voice_watch").get("channel_id"))

    @property
    def voice_notification_channel_id(self) -> int | None:
        return _optional_int(self.section("voice_watch").get("notification_channel_id"))

    @property
    def voice_ping_role_id(self) -> int | None:
        return _optional_int(self.section("voice_watch").get("ping_role_id"))

    @property
    def voice_dwell_seconds(self) -> float:
        return float(self.section("voice_watch").get("dwell_seconds", DEFAULT_VOICE_DWELL_SECONDS))

    @property
    def database_path(self) -> Path:
        """Location of the punishment history database file."""
        raw = self.section("database").get("path") or DEFAULT_DATABASE_PATH
        return Path(str(raw)).resolve()

    @property
    def presence_activity(self) -> str:
        return str(self.section("presence").get("activity") or "over the server")


# Shared application-wide configuration instance
app_config = AppConfig(CONFIG_PATH)
