"""Configuration for fotos-sync."""

import os
from dataclasses import dataclass, field
from typing import Dict, Optional

from dotenv import load_dotenv

from fotos_sync.database.models import Collection

DEFAULT_SERVER_URL = "https://backend-google-three.vercel.app"
DEFAULT_DATA_ROOT = os.path.join(os.path.expanduser("~"), ".fotos")


@dataclass
class AppConfig:
    """Application settings.

    Paths are derived from ``data_root``; everything else has the defaults
    the desktop application shipped with.
    """
    data_root: str = DEFAULT_DATA_ROOT
    server_url: str = DEFAULT_SERVER_URL
    ftp_port: int = 2121
    ftp_bind_address: str = "0.0.0.0"
    ftp_passive_ports: Optional[range] = field(default_factory=lambda: range(8000, 9001))
    ftp_port_attempts: int = 100
    default_ftp_password: str = "xy12z"
    cloudinary: Dict[str, Optional[str]] = field(default_factory=dict)
    cloud_url_prefix: str = "https://res.cloudinary.com"
    cloud_folder: str = "albums"
    debounce_seconds: float = 1.0
    stability_window: float = 2.0
    stability_poll_interval: float = 0.2
    pending_timeout: float = 30.0
    dedup_retention: float = 60.0
    retry_attempts: int = 3
    retry_base_delay: float = 1.0
    request_timeout: float = 30.0

    @property
    def data_dir(self) -> str:
        return os.path.join(self.data_root, "data")

    @property
    def image_dir(self) -> str:
        return os.path.join(self.data_dir, "images")

    @property
    def log_dir(self) -> str:
        return os.path.join(self.data_root, "logs")

    @property
    def password_file(self) -> str:
        return os.path.join(self.data_root, "ftpPassword.json")

    def collection_path(self, collection: Collection) -> str:
        """Get the JSON file backing a collection."""
        return os.path.join(self.data_dir, collection.value)

    @classmethod
    def from_env(cls, data_root: Optional[str] = None, dotenv_path: Optional[str] = None) -> "AppConfig":
        """Build settings from the environment, loading a .env file first."""
        load_dotenv(dotenv_path)

        passive = os.environ.get("FOTOS_FTP_PASV_RANGE", "8000-9000")
        low, _, high = passive.partition("-")

        return cls(
            data_root=data_root or os.environ.get("FOTOS_DATA_DIR", DEFAULT_DATA_ROOT),
            server_url=os.environ.get("FOTOS_SERVER_URL", DEFAULT_SERVER_URL),
            ftp_port=int(os.environ.get("FOTOS_FTP_PORT", "2121")),
            ftp_passive_ports=range(int(low), int(high or low) + 1),
            cloudinary={
                "cloud_name": os.environ.get("CLOUDINARY_CLOUD_NAME"),
                "api_key": os.environ.get("CLOUDINARY_API_KEY"),
                "api_secret": os.environ.get("CLOUDINARY_API_SECRET"),
            },
        )
