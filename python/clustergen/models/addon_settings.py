"""
clustergen/models/addon_settings.py

The addon settings table: which template asset renders each addon and where
the resulting manifest is written on the master. The default table is built
once at import and is read-only afterwards.
"""

from __future__ import annotations

from enum import Enum
from types import MappingProxyType
from typing import Mapping

from pydantic import BaseModel, ConfigDict


class AddonKind(str, Enum):
    """Selects the template function set an addon is rendered with."""

    STANDARD = "standard"
    CLUSTER_AUTOSCALER = "cluster-autoscaler"


class AddonSetting(BaseModel):
    """
    Attributes:
        source_file: Template asset name, looked up under a major.minor directory first.
        destination_file: Manifest file name under the addons directory.
        base64_data: Optional default manifest used verbatim instead of the template.
        kind: Template function set used to render the asset.
    """

    model_config = ConfigDict(frozen=True)

    source_file: str
    destination_file: str
    base64_data: str = ""
    kind: AddonKind = AddonKind.STANDARD


CLUSTER_AUTOSCALER_ADDON_NAME = "cluster-autoscaler"

DEFAULT_ADDON_SETTINGS: Mapping[str, AddonSetting] = MappingProxyType(
    {
        "heapster": AddonSetting(
            source_file="kubernetesmasteraddons-heapster-deployment.yaml",
            destination_file="kube-heapster-deployment.yaml",
        ),
        "metrics-server": AddonSetting(
            source_file="kubernetesmasteraddons-metrics-server-deployment.yaml",
            destination_file="kube-metrics-server-deployment.yaml",
        ),
        "tiller": AddonSetting(
            source_file="kubernetesmasteraddons-tiller-deployment.yaml",
            destination_file="kube-tiller-deployment.yaml",
        ),
        "kubernetes-dashboard": AddonSetting(
            source_file="kubernetesmasteraddons-kubernetes-dashboard-deployment.yaml",
            destination_file="kubernetes-dashboard-deployment.yaml",
        ),
        CLUSTER_AUTOSCALER_ADDON_NAME: AddonSetting(
            source_file="kubernetesmasteraddons-cluster-autoscaler-deployment.yaml",
            destination_file="cluster-autoscaler-deployment.yaml",
            kind=AddonKind.CLUSTER_AUTOSCALER,
        ),
    }
)
