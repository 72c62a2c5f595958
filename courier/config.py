"""Configuration schema and loader."""

import os
from dataclasses import dataclass
from pathlib import Path

import yaml
from loguru import logger
from pydantic import BaseModel, Field, PrivateAttr, field_validator

from courier.utils.ids import string_to_uuid

DEFAULT_POST_INTERVAL = (90, 180)
DEFAULT_TAG_INTERVAL = (120, 240)

DEFAULT_DENYLIST = [
    "Oh, darling",
    "Let's create",
    "digital mayhem",
    "\U0001F6A8",
    "\U0001F5BC",
    "✨",
]


def _split_usernames(value) -> list[str]:
    if isinstance(value, str):
        value = value.split(",")
    names = [str(v).strip().lstrip("@") for v in (value or [])]
    return [n for n in names if n]


@dataclass(frozen=True)
class ScheduleWindow:
    """Resolved [min, max] minute window for one scheduled action."""
    min_minutes: int
    max_minutes: int

    @classmethod
    def resolve(cls, *layers: tuple[int | None, int | None], default: tuple[int, int]) -> "ScheduleWindow":
        """First layer with a usable value wins for each bound, then the default."""
        lo = next((lo for lo, _ in layers if lo is not None and lo > 0), default[0])
        hi = next((hi for _, hi in layers if hi is not None and hi > 0), default[1])
        if lo > hi:
            lo, hi = hi, lo
        return cls(min_minutes=lo, max_minutes=hi)


class TierModelsConfig(BaseModel):
    light: str = ""
    medium: str = ""
    heavy: str = ""


class AgentConfig(BaseModel):
    """Character and model settings for the agent."""
    name: str = "courier"
    handle: str = ""
    bio: list[str] = Field(default_factory=list)
    lore: list[str] = Field(default_factory=list)
    topics: list[str] = Field(default_factory=list)
    adjectives: list[str] = Field(default_factory=list)
    knowledge: list[str] = Field(default_factory=list)
    post_examples: list[str] = Field(default_factory=list)
    post_directions: list[str] = Field(default_factory=list)
    model: str = "openai/gpt-4o-mini"
    tiers: TierModelsConfig = Field(default_factory=TierModelsConfig)
    fallback_models: list[str] = Field(default_factory=list)
    fallback_max_attempts: int = Field(default=2, ge=1, le=5)
    temperature: float = 0.7
    max_tokens: int = 1024
    # Agent-level schedule defaults, used when the feed section leaves a bound unset.
    post_interval_min: int | None = None
    post_interval_max: int | None = None
    tag_interval_min: int | None = None
    tag_interval_max: int | None = None
    # Template overrides keyed by template name (e.g. "telegram_should_respond").
    templates: dict[str, str] = Field(default_factory=dict)

    @property
    def agent_id(self) -> str:
        return string_to_uuid(self.name)

    def model_for_tier(self, tier: str) -> str:
        """Tier model if configured, else medium, else the agent default."""
        configured = (getattr(self.tiers, tier, "") or "").strip()
        if configured:
            return configured
        medium = (self.tiers.medium or "").strip()
        return medium or self.model

    def resolve_template(self, *names: str, default: str) -> str:
        """Return the first configured override among ``names``, else ``default``."""
        for name in names:
            value = self.templates.get(name)
            if value:
                return value
        return default


class ProviderConfig(BaseModel):
    api_key: str = ""
    api_base: str | None = None


class ProvidersConfig(BaseModel):
    anthropic: ProviderConfig = Field(default_factory=ProviderConfig)
    openai: ProviderConfig = Field(default_factory=ProviderConfig)
    openrouter: ProviderConfig = Field(default_factory=ProviderConfig)
    deepseek: ProviderConfig = Field(default_factory=ProviderConfig)
    gemini: ProviderConfig = Field(default_factory=ProviderConfig)


class TelegramConfig(BaseModel):
    enabled: bool = False
    token: str = ""
    proxy: str | None = None
    allow_from: list[str] = Field(default_factory=list)
    ignore_bot_messages: bool = False
    ignore_direct_messages: bool = False
    describe_images: bool = False


class FeedConfig(BaseModel):
    """Public feed posting. Interval bounds are minutes."""
    enabled: bool = False
    platform: str = "twitter"
    username: str = ""
    api_base: str = "https://api.twitter.com/2"
    bearer_token: str = ""
    post_interval_min: int | None = None
    post_interval_max: int | None = None
    tag_interval_min: int | None = None
    tag_interval_max: int | None = None
    dry_run: bool = False
    post_immediately: bool = False
    tag_usernames: list[str] = Field(default_factory=list)

    @field_validator("tag_usernames", mode="before")
    @classmethod
    def split_usernames(cls, value):
        return _split_usernames(value)

    def post_window(self, agent: AgentConfig | None = None) -> ScheduleWindow:
        """Feed setting, then agent default, then system default."""
        layers = [(self.post_interval_min, self.post_interval_max)]
        if agent is not None:
            layers.append((agent.post_interval_min, agent.post_interval_max))
        return ScheduleWindow.resolve(*layers, default=DEFAULT_POST_INTERVAL)

    def tag_window(self, agent: AgentConfig | None = None) -> ScheduleWindow:
        layers = [(self.tag_interval_min, self.tag_interval_max)]
        if agent is not None:
            layers.append((agent.tag_interval_min, agent.tag_interval_max))
        return ScheduleWindow.resolve(*layers, default=DEFAULT_TAG_INTERVAL)


class SanitizerConfig(BaseModel):
    denylist: list[str] = Field(default_factory=lambda: list(DEFAULT_DENYLIST))
    max_pattern_matches: int = Field(default=2, ge=0)
    duplicate_window: int = Field(default=3, ge=0)


class Config(BaseModel):
    """Root configuration."""
    agent: AgentConfig = Field(default_factory=AgentConfig)
    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)
    telegram: TelegramConfig = Field(default_factory=TelegramConfig)
    feed: FeedConfig = Field(default_factory=FeedConfig)
    sanitizer: SanitizerConfig = Field(default_factory=SanitizerConfig)
    workspace: str = "courier-workspace"
    log_level: str = "INFO"
    log_file: str | None = None
    _config_dir: Path = PrivateAttr(default_factory=lambda: Path.cwd())

    def workspace_path(self) -> Path:
        workspace = Path(self.workspace).expanduser()
        if not workspace.is_absolute():
            workspace = self._config_dir / workspace
        return workspace.resolve()

    def get_provider(self, model: str | None = None) -> tuple[ProviderConfig | None, str | None]:
        """Find the right provider config for a model string."""
        from courier.providers.registry import PROVIDERS, normalize_model_name
        model_lower = normalize_model_name(model or self.agent.model).lower()

        for spec in PROVIDERS:
            p = getattr(self.providers, spec.name, None)
            if p and p.api_key and any(kw in model_lower for kw in spec.keywords):
                return p, spec.name

        # Fallback: first provider with a key
        for spec in PROVIDERS:
            p = getattr(self.providers, spec.name, None)
            if p and p.api_key:
                return p, spec.name
        return None, None


_ENV_INT_OVERRIDES = {
    "POST_INTERVAL_MIN": "post_interval_min",
    "POST_INTERVAL_MAX": "post_interval_max",
    "TAG_INTERVAL_MIN": "tag_interval_min",
    "TAG_INTERVAL_MAX": "tag_interval_max",
}
_ENV_BOOL_OVERRIDES = {
    "FEED_DRY_RUN": "dry_run",
    "POST_IMMEDIATELY": "post_immediately",
}


def _parse_bool(value: str) -> bool | None:
    lowered = value.strip().lower()
    if lowered in {"1", "true", "yes", "y", "on", "enable", "enabled"}:
        return True
    if lowered in {"0", "false", "no", "n", "off", "disable", "disabled"}:
        return False
    return None


def apply_env_overrides(config: Config, environ: dict[str, str] | None = None) -> None:
    """Overlay feed settings from environment variables (mutates in place)."""
    env = os.environ if environ is None else environ
    feed = config.feed

    for key, attr in _ENV_INT_OVERRIDES.items():
        raw = (env.get(key) or "").strip()
        if not raw:
            continue
        try:
            setattr(feed, attr, int(raw))
        except ValueError:
            logger.warning(f"Ignoring {key}={raw!r}: not an integer")

    for key, attr in _ENV_BOOL_OVERRIDES.items():
        raw = env.get(key)
        if not raw:
            continue
        parsed = _parse_bool(raw)
        if parsed is None:
            logger.warning(f"Ignoring {key}={raw!r}: not a boolean")
            continue
        setattr(feed, attr, parsed)

    usernames = env.get("TAG_USERNAMES")
    if usernames:
        feed.tag_usernames = _split_usernames(usernames)


def load_config(path: str | Path = "config.yaml", environ: dict[str, str] | None = None) -> Config:
    """Load config from YAML file, then apply environment overrides."""
    p = Path(path).expanduser()
    resolved_path = p.resolve()
    if p.exists():
        with open(resolved_path) as f:
            data = yaml.safe_load(f) or {}
        config = Config(**data)
    else:
        logger.debug(f"Config file {resolved_path} not found, using defaults")
        config = Config()
    config._config_dir = resolved_path.parent

    apply_env_overrides(config, environ)
    return config
