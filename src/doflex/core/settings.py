"""Application settings."""

import os
import tempfile

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Host block-device naming scheme for DigitalOcean volumes.
DEVICE_PREFIX = "/dev/disk/by-id/scsi-0DO_Volume_"


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(env_prefix="DOFLEX_")

    log_level: str = Field(default="INFO", description="Logging level")
    log_path: str = Field(
        default_factory=lambda: os.path.join(tempfile.gettempdir(), "doflex.log"),
        description="Driver log file path",
    )
    log_to_stderr: bool = Field(
        default=False,
        description="Also log to stderr (kubelet reads stdout and stderr combined)",
    )
    api_url: str = Field(
        default="https://api.digitalocean.com/v2", description="DigitalOcean API base URL"
    )
    metadata_url: str = Field(
        default="http://169.254.169.254/metadata/v1/region",
        description="Droplet metadata endpoint returning the region slug",
    )
    http_timeout: float = Field(default=30.0, description="Per-request timeout in seconds")
    page_size: int = Field(default=200, description="Items requested per list page")
    attach_timeout: float = Field(
        default=200.0, description="Seconds to wait for an attach or detach action"
    )
    poll_interval: float = Field(default=1.0, description="Seconds between action polls")
    manage_mounts: bool = Field(
        default=False, description="Handle mount-device and unmount-device locally"
    )
    default_fs_type: str = Field(default="ext4", description="Filesystem used when none given")


settings = Settings()
