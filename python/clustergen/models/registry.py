"""
clustergen/models/registry.py

Connection settings for the extension registry client.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class RegistrySettings(BaseModel):
    """
    Attributes:
        timeout_seconds: Total deadline for one registry GET. None means no deadline.
        verify_ssl: Verify TLS certificates of the registry host.
    """

    timeout_seconds: Optional[float] = Field(default=None, gt=0)
    verify_ssl: bool = True
