import json
import logging
import os
from enum import Enum
from pathlib import Path
from functools import lru_cache
from typing import Any, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict, field_validator
from pydantic.fields import FieldInfo
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

logger = logging.getLogger(__name__)

# Hierarchical configuration keys, as they appear in a user secrets file,
# mapped onto the flat setting names that environment variables use.
CONFIG_KEYS: Dict[str, str] = {
    "Maps:SubscriptionKey": "MAPS_SUBSCRIPTION_KEY",
    "Maps:ClientId": "MAPS_CLIENT_ID",
    "Maps:ManagedIdentityClientId": "MAPS_MANAGED_IDENTITY_CLIENT_ID",
    "Identity:Instance": "IDENTITY_INSTANCE",
    "Identity:Domain": "IDENTITY_DOMAIN",
    "Identity:TenantId": "IDENTITY_TENANT_ID",
    "Identity:ClientId": "IDENTITY_CLIENT_ID",
    "Identity:ClientSecret": "IDENTITY_CLIENT_SECRET",
    "Identity:CallbackPath": "IDENTITY_CALLBACK_PATH",
}
SETTING_TO_CONFIG_KEY = {field: key for key, field in CONFIG_KEYS.items()}

USER_SECRETS_ROOT = Path.home() / ".microsoft" / "usersecrets"

# Levels understood by both logging and uvicorn.
LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


class AuthTier(str, Enum):
    """How the browser map control authenticates against Azure Maps."""
    KEY = "key"
    ANONYMOUS = "anonymous"
    ENTERPRISE = "enterprise"


class MapsConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    subscription_key: str = ""
    client_id: str = ""
    managed_identity_client_id: str = ""


class AadConfig(BaseModel):
    """Microsoft Entra ID app registration used for interactive sign-in."""
    model_config = ConfigDict(frozen=True)

    instance: str = "https://login.microsoftonline.com/"
    domain: str = ""
    tenant_id: str = ""
    client_id: str = ""
    client_secret: str = ""
    callback_path: str = "/signin-oidc"

    @property
    def authority(self) -> str:
        return f"{self.instance.rstrip('/')}/{self.tenant_id or 'common'}"


def resolve_user_secrets_file() -> Optional[Path]:
    """Locate the user-level secrets file, if one is configured."""
    explicit = os.environ.get("MAPS_USER_SECRETS_FILE")
    if explicit:
        return Path(explicit).expanduser()
    secrets_id = os.environ.get("MAPS_USER_SECRETS_ID")
    if secrets_id:
        return USER_SECRETS_ROOT / secrets_id / "secrets.json"
    return None


def load_user_secrets(path: Optional[Path]) -> Dict[str, str]:
    """
    Reads a user secrets JSON file and returns its values keyed by setting name.

    Both the hierarchical form (``"Maps:ClientId"``) and nested objects
    (``{"Maps": {"ClientId": ...}}``) are accepted. A missing or unreadable
    file yields an empty mapping.
    """
    if path is None:
        return {}
    if not path.is_file():
        logger.warning(f"User secrets file {path} not found; ignoring it.")
        return {}
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning(f"Could not read user secrets file {path}: {e}")
        return {}
    if not isinstance(raw, dict):
        logger.warning(f"User secrets file {path} is not a JSON object; ignoring it.")
        return {}

    flat: Dict[str, Any] = {}
    for key, value in raw.items():
        if isinstance(value, dict):
            for child_key, child_value in value.items():
                flat[f"{key}:{child_key}"] = child_value
        else:
            flat[key] = value

    values: Dict[str, str] = {}
    for key, value in flat.items():
        field_name = CONFIG_KEYS.get(key, key)
        if value is not None:
            values[field_name] = str(value)
    return values


class UserSecretsSettingsSource(PydanticBaseSettingsSource):
    """Settings source backed by a per-user secrets JSON file."""

    def __init__(self, settings_cls: Type[BaseSettings], secrets_file: Optional[Path] = None):
        super().__init__(settings_cls)
        self._values = load_user_secrets(secrets_file)

    def get_field_value(self, field: FieldInfo, field_name: str) -> Tuple[Any, str, bool]:
        return self._values.get(field_name), field_name, False

    def __call__(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        for field_name, field in self.settings_cls.model_fields.items():
            value, key, _ = self.get_field_value(field, field_name)
            if value is not None:
                data[key] = value
        return data


class Settings(BaseSettings):
    MAPS_AUTH_TIER: AuthTier = AuthTier.ANONYMOUS

    MAPS_SUBSCRIPTION_KEY: str = ""
    MAPS_CLIENT_ID: str = ""
    MAPS_MANAGED_IDENTITY_CLIENT_ID: str = ""

    IDENTITY_INSTANCE: str = "https://login.microsoftonline.com/"
    IDENTITY_DOMAIN: str = ""
    IDENTITY_TENANT_ID: str = ""
    IDENTITY_CLIENT_ID: str = ""
    IDENTITY_CLIENT_SECRET: str = ""
    IDENTITY_CALLBACK_PATH: str = "/signin-oidc"

    SESSION_SECRET_KEY: str = ""
    # Set to false only for local development over plain http.
    SESSION_HTTPS_ONLY: bool = True
    LOG_LEVEL: str = "INFO"

    # Load from .env file
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", frozen=True
    )

    @field_validator("MAPS_AUTH_TIER", mode="before")
    @classmethod
    def _normalize_tier(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.strip().lower()
            if not value:
                logger.warning(f"MAPS_AUTH_TIER is empty; using '{AuthTier.ANONYMOUS.value}'.")
                return AuthTier.ANONYMOUS
        return value

    @field_validator("SESSION_HTTPS_ONLY", mode="before")
    @classmethod
    def _default_https_only(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return True
        return value

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: Any) -> Any:
        level = str(value or "").strip().upper()
        if level not in LOG_LEVELS:
            if level:
                logger.warning(f"Unknown LOG_LEVEL '{value}'; using INFO.")
            return "INFO"
        return level

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        # Earlier sources win: environment overrides .env, which overrides user secrets.
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            UserSecretsSettingsSource(settings_cls, resolve_user_secrets_file()),
            file_secret_settings,
        )

    @property
    def maps(self) -> MapsConfig:
        return MapsConfig(
            subscription_key=self.MAPS_SUBSCRIPTION_KEY,
            client_id=self.MAPS_CLIENT_ID,
            managed_identity_client_id=self.MAPS_MANAGED_IDENTITY_CLIENT_ID,
        )

    @property
    def identity(self) -> AadConfig:
        return AadConfig(
            instance=self.IDENTITY_INSTANCE,
            domain=self.IDENTITY_DOMAIN,
            tenant_id=self.IDENTITY_TENANT_ID,
            client_id=self.IDENTITY_CLIENT_ID,
            client_secret=self.IDENTITY_CLIENT_SECRET,
            callback_path=self.IDENTITY_CALLBACK_PATH,
        )

    def missing_options(self) -> List[str]:
        """Configuration keys the selected tier needs but that are empty."""
        if self.MAPS_AUTH_TIER is AuthTier.KEY:
            required = ["MAPS_SUBSCRIPTION_KEY"]
        elif self.MAPS_AUTH_TIER is AuthTier.ANONYMOUS:
            required = ["MAPS_CLIENT_ID"]
        else:
            required = ["MAPS_CLIENT_ID", "IDENTITY_TENANT_ID", "IDENTITY_CLIENT_ID"]
        return [SETTING_TO_CONFIG_KEY[name] for name in required if not getattr(self, name)]


@lru_cache()
def get_settings() -> Settings:
    return Settings()
