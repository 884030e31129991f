import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)

_CONFIG_PATH = os.getenv("LAMUSFS_CONFIG", "config.toml")
_ENV_PATH = os.getenv("LAMUSFS_ENV", ".env")


class DeviceApiSettings(BaseModel):
    base_url: str = "http://localhost:3000/api"
    device_token: Optional[str] = None
    timeout: float = 30.0


class DropboxSettings(BaseModel):
    api_base_url: str = "https://api.dropboxapi.com/2/"
    content_base_url: str = "https://content.dropboxapi.com/2/"
    token_expiry_buffer: int = 300  # seconds
    timeout: float = 60.0


class WebDAVSettings(BaseModel):
    root_folder: str = "/Lamus"
    convention_path: str = "remote.php/dav/files/{user}/"
    timeout: float = 30.0


class PrivateStorageSettings(BaseModel):
    root: Path = Field(default=Path("private_storage"))


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="LAMUSFS_",
        env_nested_delimiter="__",
        toml_file=_CONFIG_PATH,
        env_file=_ENV_PATH,
    )

    device_api: DeviceApiSettings = Field(default_factory=DeviceApiSettings)
    dropbox: DropboxSettings = Field(default_factory=DropboxSettings)
    webdav: WebDAVSettings = Field(default_factory=WebDAVSettings)
    private_storage: PrivateStorageSettings = Field(
        default_factory=PrivateStorageSettings
    )

    chunk_size: int = 64 * 1024
    log_level: str = "INFO"
    logs_dir: Optional[Path] = None

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Source order: init args > OS env > .env > config.toml > secrets
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            TomlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )


settings = Settings()
