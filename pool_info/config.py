"""
Configuration for pool-info.

Reads from environment variables with sensible defaults.
"""

import os
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # vCenter connection
    vcenter_host: str = os.getenv("VCENTER_HOST", "vcenter.example.com")
    vcenter_user: str = os.getenv("VCENTER_USER", "administrator@vsphere.local")
    vcenter_password: str = os.getenv("VCENTER_PASSWORD", "")
    vcenter_port: int = int(os.getenv("VCENTER_PORT", "443"))

    # SSL verification
    verify_ssl: bool = False

    # Inventory scope used when no datacenter is given on the command line
    datacenter: Optional[str] = None

    # Number of name patterns resolved concurrently
    resolve_workers: int = 1

    # PropertyCollector page size (RetrieveOptions.maxObjects)
    page_size: int = 1000

    # Logging
    log_level: str = os.getenv("LOG_LEVEL", "WARNING")

    class Config:
        env_prefix = "POOL_INFO_"


settings = Settings()
