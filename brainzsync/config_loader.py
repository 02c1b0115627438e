"""
Configuration Loader - Manages YAML configuration and environment variables
"""
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List

import yaml

from .jobs.job_model import DEFAULT_FALLBACK, MAX_FALLBACK, MIN_FALLBACK, Source
from .listenbrainz_client import DEFAULT_BASE_URL
from .models import ALL_RATINGS, RatingFilter, parse_ratings

logger = logging.getLogger(__name__)

ENV_PREFIX = "BRAINZSYNC"


class ConfigError(ValueError):
    """Invalid or incomplete configuration."""


def _env_key(kind: str, username: str) -> str:
    return f"{ENV_PREFIX}_{kind}_{re.sub(r'[^A-Za-z0-9]', '_', username).upper()}"


@dataclass(frozen=True)
class PlaylistImport:
    """An external ListenBrainz playlist imported by id."""
    name: str
    lbz_id: str
    one_time: bool = False

    @staticmethod
    def from_dict(payload: Dict[str, Any]) -> "PlaylistImport":
        return PlaylistImport(
            name=str(payload.get("name", "")),
            lbz_id=str(payload.get("lbz_id", payload.get("lbzId", ""))),
            one_time=bool(payload.get("one_time", payload.get("oneTime", False))),
        )


@dataclass(frozen=True)
class UserConfig:
    """Synchronization settings for one library user."""
    username: str
    lbz_username: str
    password: str = field(default="", repr=False)
    lbz_token: str = field(default="", repr=False)
    ratings: RatingFilter = ALL_RATINGS
    sources: List[Source] = field(default_factory=list)
    generate_playlist: bool = False
    generated_playlist: str = ""
    generated_playlist_track_age: int = 0
    generated_playlist_artist_limit: int = 0
    playlists: List[PlaylistImport] = field(default_factory=list)

    @property
    def generates(self) -> bool:
        """True when a generated playlist is enabled and named."""
        return self.generate_playlist and bool(self.generated_playlist)

    def playlist_names(self) -> List[str]:
        """Every destination playlist name, in configuration order."""
        names = [s.playlist_name for s in self.sources]
        if self.generates:
            names.append(self.generated_playlist)
        names.extend(p.name for p in self.playlists)
        return names

    @staticmethod
    def from_dict(payload: Dict[str, Any]) -> "UserConfig":
        username = str(payload.get("username") or "")
        return UserConfig(
            username=username,
            lbz_username=str(payload.get("lbz_username") or ""),
            password=os.getenv(_env_key("PASSWORD", username)) or str(payload.get("password") or ""),
            lbz_token=os.getenv(_env_key("LBZ_TOKEN", username)) or str(payload.get("lbz_token") or ""),
            ratings=parse_ratings(payload.get("ratings")),
            sources=[Source.from_dict(s) for s in payload.get("sources") or []],
            generate_playlist=bool(payload.get("generate_playlist", False)),
            generated_playlist=str(payload.get("generated_playlist") or ""),
            generated_playlist_track_age=int(payload.get("generated_playlist_track_age") or 0),
            generated_playlist_artist_limit=int(payload.get("generated_playlist_artist_limit") or 0),
            playlists=[PlaylistImport.from_dict(p) for p in payload.get("playlists") or []],
        )


def parse_fallback(raw: Any) -> int:
    """Validate the title-search breadth."""
    if raw is None:
        return DEFAULT_FALLBACK
    if isinstance(raw, bool):
        raise ConfigError("fallbackCount is not a valid number")
    try:
        value = int(str(raw).strip())
    except ValueError:
        raise ConfigError("fallbackCount is not a valid number")
    if value < MIN_FALLBACK or value > MAX_FALLBACK:
        raise ConfigError(f"fallbackCount must be between {MIN_FALLBACK} and {MAX_FALLBACK} (inclusive)")
    return value


def parse_users(raw: Any) -> List[UserConfig]:
    """
    Build and validate the user list

    Raises:
        ConfigError: missing users, missing usernames or duplicate playlist
            names within one user
    """
    if not raw:
        raise ConfigError("missing required 'users' configuration")
    if not isinstance(raw, list) or not all(isinstance(u, dict) for u in raw):
        raise ConfigError(
            f"Invalid user mapping: {raw!r}. Should be a list of Navidrome users mapped to ListenBrainz usernames"
        )

    users = []
    for entry in raw:
        try:
            user = UserConfig.from_dict(entry)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid user entry: {e}") from e

        if not user.username or not user.lbz_username:
            raise ConfigError("user must have a Navidrome username and ListenBrainz username")

        seen = set()
        for name in user.playlist_names():
            if name in seen:
                raise ConfigError(f"duplicate playlist name found: {name}")
            seen.add(name)

        users.append(user)
    return users


class Config:
    """Configuration manager for the playlist synchronizer"""

    def __init__(self, config_path: str = "config.yaml"):
        self.config_path = config_path
        self.config = self._load_config()
        self._validate_config()

    @classmethod
    def from_dict(cls, data: Dict[str, Any], config_path: str = "<memory>") -> "Config":
        """Build a Config from an already-parsed mapping."""
        instance = cls.__new__(cls)
        instance.config_path = config_path
        instance.config = data or {}
        instance._validate_config()
        return instance

    def _load_config(self) -> dict:
        """Load configuration from YAML file"""
        if not os.path.exists(self.config_path):
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

        with open(self.config_path, 'r', encoding='utf-8') as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {self.config_path}: {e}") from e
        return data or {}

    def _validate_config(self):
        """Validate required configuration fields"""
        if not isinstance(self.config, dict):
            raise ConfigError(f"Configuration root must be a mapping: {self.config_path}")

        if not self.get('subsonic', 'url'):
            raise ConfigError(f"Please set subsonic.url in {self.config_path}")

        self._users = parse_users(self.config.get('users'))
        self._fallback = parse_fallback(self.config.get('fallback_count'))

        if self.schedule_hours <= 0:
            raise ConfigError("schedule_hours must be a positive number")

        logger.debug(f"Loaded configuration for {len(self._users)} user(s) from {self.config_path}")

    def get(self, section: str, key: str, default: Any = None) -> Any:
        """
        Get configuration value

        Args:
            section: Configuration section
            key: Configuration key
            default: Default value if not found

        Returns:
            Configuration value or default
        """
        values = self.config.get(section)
        if not isinstance(values, dict):
            return default
        return values.get(key, default)

    @property
    def users(self) -> List[UserConfig]:
        return list(self._users)

    @property
    def fallback_count(self) -> int:
        """Title-search breadth used by the track resolver"""
        return self._fallback

    @property
    def listenbrainz_base_url(self) -> str:
        return self.get('listenbrainz', 'base_url', DEFAULT_BASE_URL)

    @property
    def rate_limit_threshold(self) -> int:
        """Remaining-request count at or below which we wait for the window reset"""
        return int(self.get('listenbrainz', 'rate_limit_threshold', 5))

    @property
    def subsonic_url(self) -> str:
        return self.get('subsonic', 'url')

    @property
    def subsonic_client_name(self) -> str:
        return self.get('subsonic', 'client_name', 'brainzsync')

    @property
    def subsonic_verify_ssl(self) -> bool:
        return bool(self.get('subsonic', 'verify_ssl', True))

    @property
    def check_on_startup(self) -> bool:
        """Run the missing/stale playlist check before the first sweep"""
        return bool(self.config.get('check_on_startup', True))

    @property
    def schedule_hours(self) -> float:
        """Hours between periodic sweeps"""
        try:
            return float(self.config.get('schedule_hours', 24))
        except (TypeError, ValueError):
            raise ConfigError("schedule_hours must be a positive number")

    @property
    def job_history_enabled(self) -> bool:
        return bool(self.config.get('job_history', True))

    def credentials(self) -> Dict[str, str]:
        """Library password per username"""
        return {user.username: user.password for user in self._users}
