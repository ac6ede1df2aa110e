"""
Shared fixtures: a representative cluster specification and a helper that
writes template assets into a temporary asset root.
"""

from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict

import pytest

from clustergen.engine.assets import AssetStore
from clustergen.models.cluster import (
    AgentPoolProfile,
    AvailabilityProfile,
    ClusterSpecification,
    LinuxProfile,
    MasterProfile,
    PublicKey,
    ServicePrincipalProfile,
)

SSH_KEY = "ssh-rsa AAAAB3NzaC1yc2EAAAADAQABAAABAQC azureuser@example"


@pytest.fixture
def spec() -> ClusterSpecification:
    return ClusterSpecification(
        location="westus2",
        master_profile=MasterProfile(count=3, dns_prefix="mycluster"),
        agent_pool_profiles=[
            AgentPoolProfile(
                name="agentpool1",
                count=2,
                subnet="10.240.0.0/16",
                ports=[80, 443, 8080],
                disk_sizes_gb=[128, 256],
            ),
            AgentPoolProfile(
                name="agentpool2",
                count=3,
                subnet="10.240.0.0/16",
                availability_profile=AvailabilityProfile.VIRTUAL_MACHINE_SCALE_SETS,
            ),
        ],
        linux_profile=LinuxProfile(
            admin_username="azureuser", ssh_public_keys=[PublicKey(key_data=SSH_KEY)]
        ),
        service_principal_profile=ServicePrincipalProfile(
            client_id="00000000-0000-0000-0000-000000000001", secret="client-secret"
        ),
    )


@pytest.fixture
def write_assets(tmp_path: Path) -> Callable[[Dict[str, str]], AssetStore]:
    """Return a function writing {asset name: text} below tmp_path."""

    def _write(files: Dict[str, str]) -> AssetStore:
        for name, text in files.items():
            path = tmp_path.joinpath(*name.split("/"))
            path.parent.mkdir(parents=True, exist_ok=True)
            # bytes keep CRLF line endings intact
            path.write_bytes(text.encode("utf-8"))
        return AssetStore(str(tmp_path))

    return _write
