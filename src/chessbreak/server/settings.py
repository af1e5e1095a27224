"""Page bridge configuration via environment variables."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from shared.validators import OriginListEnvSettingsSource, parse_origin_list

if TYPE_CHECKING:
    from pydantic_settings.sources.base import PydanticBaseSettingsSource


class BridgeSettings(BaseSettings):
    model_config = {"env_prefix": "CHESSBREAK_"}

    data_dir: str = Field(default="data", min_length=1)
    log_dir: str = Field(default="logs", min_length=1)
    cors_origins: list[str] = ["https://www.chess.com"]
    max_pages: int = Field(default=16, ge=1)

    @field_validator("cors_origins", mode="before")
    @classmethod
    def validate_cors_origins(cls, v: str | list[str]) -> list[str]:
        return parse_origin_list(v)

    @property
    def options_path(self) -> Path:
        """Options storage area (the "sync" area)."""
        return Path(self.data_dir) / "options.json"

    @property
    def session_path(self) -> Path:
        """Session storage area (the "local" area)."""
        return Path(self.data_dir) / "session.json"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return init_settings, OriginListEnvSettingsSource(settings_cls), dotenv_settings, file_secret_settings
