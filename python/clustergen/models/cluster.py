"""
clustergen/models/cluster.py

Pydantic models describing a cluster specification:
 - ClusterSpecification: the immutable root handed to every generator
 - MasterProfile / AgentPoolProfile: topology units
 - ExtensionProfile / Extension: pre-provision extensions and references to them
 - KubernetesAddon / KubernetesConfig: optional cluster components
 - LinuxProfile / WindowsProfile / ServicePrincipalProfile / CustomCloudProfile

All models are frozen; generators only ever read them.
"""

from __future__ import annotations

import zlib
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from clustergen.engine.capabilities import get_cloud_target_env


class OrchestratorType(str, Enum):
    KUBERNETES = "Kubernetes"
    DCOS = "DCOS"
    SWARM = "Swarm"
    SWARM_MODE = "SwarmMode"


class OSType(str, Enum):
    LINUX = "Linux"
    WINDOWS = "Windows"


class Distro(str, Enum):
    UBUNTU = "ubuntu"
    RHEL = "rhel"
    COREOS = "coreos"


class StorageProfile(str, Enum):
    """Backing storage for OS and data disks."""

    STORAGE_ACCOUNT = "StorageAccount"
    MANAGED_DISKS = "ManagedDisks"


class AvailabilityProfile(str, Enum):
    AVAILABILITY_SET = "AvailabilitySet"
    VIRTUAL_MACHINE_SCALE_SETS = "VirtualMachineScaleSets"


class FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True)


class Extension(FrozenModel):
    """A reference from a master or agent pool to an ExtensionProfile.

    Attributes:
        name: Name of the ExtensionProfile (matched case-insensitively).
        single_or_all: "single" installs on one VM only; anything else means all VMs.
    """

    name: str
    single_or_all: str = ""


class ExtensionProfile(FrozenModel):
    """Where to fetch an extension from and how to invoke it.

    Attributes:
        name: Extension name, also used for the ARM parameter '<name>Parameters'.
        version: Extension version directory in the registry.
        root_url: Registry root; 'extensions/<name>/<version>/' is appended to it.
        script: Script file name run by the custom script extension.
        url_query: Optional query string appended to every registry URL.
        extension_parameters: Value of the '<name>Parameters' ARM parameter.
    """

    name: str
    version: str
    root_url: str = "https://raw.githubusercontent.com/Azure/aks-engine/master/"
    script: str = ""
    url_query: str = ""
    extension_parameters: str = ""


class MasterProfile(FrozenModel):
    count: int = 1
    dns_prefix: str
    vm_size: str = "Standard_D2_v2"
    subnet: str = "10.240.255.0/24"
    distro: Distro = Distro.UBUNTU
    storage_profile: StorageProfile = StorageProfile.MANAGED_DISKS
    first_consecutive_static_ip: str = "10.240.255.5"
    vnet_subnet_id: str = ""
    vnet_cidr: str = ""
    preprovision_extension: Optional[Extension] = None
    extensions: List[Extension] = Field(default_factory=list)

    def is_custom_vnet(self) -> bool:
        """True when the master is deployed into a pre-existing subnet."""
        return len(self.vnet_subnet_id) > 0


class AgentPoolProfile(FrozenModel):
    """A group of identically configured agent VMs.

    Attributes:
        name: Pool name; used as the prefix of every ARM variable of the pool.
        count: Number of VMs.
        vm_size: Azure VM SKU.
        os_type: Linux or Windows.
        subnet: Subnet CIDR; pools may share a subnet.
        storage_profile: StorageAccount (VHD blobs) or ManagedDisks.
        availability_profile: AvailabilitySet or VirtualMachineScaleSets.
        disk_sizes_gb: Data disk sizes, one disk per entry, in LUN order.
        ports: Public ports exposed through the pool's load balancer.
        preprovision_extension: Extension run by the CSE before provisioning.
        extensions: Extensions rolled out through linked templates.
    """

    name: str
    count: int = 1
    vm_size: str = "Standard_D2_v2"
    os_type: OSType = OSType.LINUX
    subnet: str = ""
    distro: Distro = Distro.UBUNTU
    storage_profile: StorageProfile = StorageProfile.MANAGED_DISKS
    availability_profile: AvailabilityProfile = AvailabilityProfile.AVAILABILITY_SET
    disk_sizes_gb: List[int] = Field(default_factory=list)
    ports: List[int] = Field(default_factory=list)
    preprovision_extension: Optional[Extension] = None
    extensions: List[Extension] = Field(default_factory=list)

    def has_disks(self) -> bool:
        return len(self.disk_sizes_gb) > 0

    def is_windows(self) -> bool:
        return self.os_type == OSType.WINDOWS

    def is_availability_sets(self) -> bool:
        return self.availability_profile == AvailabilityProfile.AVAILABILITY_SET

    def is_virtual_machine_scale_sets(self) -> bool:
        return (
            self.availability_profile == AvailabilityProfile.VIRTUAL_MACHINE_SCALE_SETS
        )


class AddonContainer(FrozenModel):
    name: str
    image: str = ""
    cpu_requests: str = ""
    cpu_limits: str = ""
    memory_requests: str = ""
    memory_limits: str = ""


class AddonPool(FrozenModel):
    """Per agent pool addon configuration (e.g. autoscaler min/max nodes)."""

    name: str
    config: Dict[str, str] = Field(default_factory=dict)


class KubernetesAddon(FrozenModel):
    """An optional cluster component rendered into the addon manifest set.

    Attributes:
        name: Addon name, the key into the addon settings table.
        enabled: Whether the addon is deployed.
        mode: Optional addon mode (e.g. 'Reconcile' or 'EnsureExists').
        containers: Per-container image and resource settings.
        config: Free-form configuration map.
        data: Optional base64 manifest used verbatim instead of the template.
        pools: Per agent pool configuration.
    """

    name: str
    enabled: bool = False
    mode: str = ""
    containers: List[AddonContainer] = Field(default_factory=list)
    config: Dict[str, str] = Field(default_factory=dict)
    data: str = ""
    pools: List[AddonPool] = Field(default_factory=list)

    def get_container_by_name(self, name: str) -> Optional[AddonContainer]:
        return next((c for c in self.containers if c.name == name), None)


class KubernetesConfig(FrozenModel):
    addons: List[KubernetesAddon] = Field(default_factory=list)
    use_managed_identity: bool = False

    def get_addon_by_name(self, name: str) -> Optional[KubernetesAddon]:
        return next((a for a in self.addons if a.name == name), None)

    def is_addon_enabled(self, name: str) -> bool:
        addon = self.get_addon_by_name(name)
        return addon is not None and addon.enabled


class OrchestratorProfile(FrozenModel):
    orchestrator_type: OrchestratorType = OrchestratorType.KUBERNETES
    orchestrator_version: str = "1.15.7"
    kubernetes_config: KubernetesConfig = Field(default_factory=KubernetesConfig)


class PublicKey(FrozenModel):
    key_data: str


class LinuxProfile(FrozenModel):
    admin_username: str = "azureuser"
    ssh_public_keys: List[PublicKey] = Field(default_factory=list)


class WindowsProfile(FrozenModel):
    admin_username: str = "azureuser"
    admin_password: str = ""


class ServicePrincipalProfile(FrozenModel):
    """Client id plus secret; the secret may be a KeyVault secret path."""

    client_id: str
    secret: str = ""


class CustomCloudProfile(FrozenModel):
    """Presence of this profile marks the target as an Azure Stack cloud."""

    name: str = "AzureStackCloud"


class ClusterSpecification(FrozenModel):
    """The immutable root every generator reads from.

    Attributes:
        location: Azure region of the deployment.
        orchestrator_profile: Orchestrator type/version plus Kubernetes config.
        master_profile: The master (control plane) profile.
        agent_pool_profiles: Agent pools in deployment order.
        extension_profiles: Definitions for every extension referenced by a profile.
        linux_profile: Linux admin user and SSH keys.
        windows_profile: Optional Windows admin credentials.
        service_principal_profile: Optional cluster service principal.
        custom_cloud_profile: Set only for Azure Stack targets.
        cluster_id: Optional explicit cluster id; derived from the DNS prefix if empty.
    """

    location: str = "eastus"
    orchestrator_profile: OrchestratorProfile = Field(
        default_factory=OrchestratorProfile
    )
    master_profile: MasterProfile
    agent_pool_profiles: List[AgentPoolProfile] = Field(default_factory=list)
    extension_profiles: List[ExtensionProfile] = Field(default_factory=list)
    linux_profile: LinuxProfile = Field(default_factory=LinuxProfile)
    windows_profile: Optional[WindowsProfile] = None
    service_principal_profile: Optional[ServicePrincipalProfile] = None
    custom_cloud_profile: Optional[CustomCloudProfile] = None
    cluster_id: str = ""

    @property
    def kubernetes_config(self) -> KubernetesConfig:
        return self.orchestrator_profile.kubernetes_config

    def is_azure_stack_cloud(self) -> bool:
        return self.custom_cloud_profile is not None

    def any_agent_uses_vmss(self) -> bool:
        return any(p.is_virtual_machine_scale_sets() for p in self.agent_pool_profiles)

    def cloud_name(self) -> str:
        """Name of the target cloud environment (e.g. 'AzurePublicCloud')."""
        if self.custom_cloud_profile is not None:
            return self.custom_cloud_profile.name
        return get_cloud_target_env(self.location)

    def get_cluster_id(self) -> str:
        """An 8 digit id, stable for a given master DNS prefix."""
        if self.cluster_id:
            return self.cluster_id
        checksum = zlib.crc32(self.master_profile.dns_prefix.encode("utf-8"))
        return f"{checksum:010d}"[-8:]
