"""Configuration schema using Pydantic."""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings

from tvremote.utils.helpers import get_data_path


class TVConfig(BaseModel):
    """Device session and pairing settings."""

    secure_port: int = 3001  # wss:// endpoint, self-signed certificate
    insecure_port: int = 3000  # ws:// endpoint
    transport_mode: str = "auto"  # auto | secure | insecure
    connect_timeout_seconds: float = 10.0
    request_timeout_seconds: float = 10.0
    pairing_timeout_seconds: float = 60.0
    reauth_timeout_seconds: float = 10.0
    pointer_connect_timeout_seconds: float = 5.0


class StorageConfig(BaseModel):
    """Credential store settings."""

    backend: str = "sqlite"  # sqlite | memory
    sqlite_path: str = ""  # empty: <data dir>/data/tv-credentials.db
    busy_timeout_ms: int = 5000

    @property
    def sqlite_file(self) -> Path:
        if self.sqlite_path.strip():
            return Path(self.sqlite_path).expanduser()
        return get_data_path() / "data" / "tv-credentials.db"


class DiscoveryConfig(BaseModel):
    """SSDP discovery settings."""

    timeout_seconds: float = 5.0
    multicast_host: str = "239.255.255.250"
    multicast_port: int = 1900
    search_target: str = "urn:schemas-upnp-org:device:MediaRenderer:1"
    mx_seconds: int = 3
    vendor_keyword: str = "lg"
    verify_timeout_seconds: float = 2.0


class Config(BaseSettings):
    """Root configuration for tvremote."""

    tv: TVConfig = Field(default_factory=TVConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    discovery: DiscoveryConfig = Field(default_factory=DiscoveryConfig)

    model_config = ConfigDict(
        env_prefix="TVREMOTE_",
        env_nested_delimiter="__"
    )
