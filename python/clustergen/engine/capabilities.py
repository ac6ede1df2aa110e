"""
clustergen/engine/capabilities.py

Pure lookups with no dependencies on the rest of the engine:
 - VM SKU -> GPU / SGX driver support
 - region -> sovereign cloud name
 - Kubernetes version comparison
"""

from semver import Version

# If a new GPU sku becomes available, add it here only once there is a
# confirmed agreement with NVIDIA for that specific GPU.
NVIDIA_ENABLED_SKUS = frozenset(
    {
        # K80
        "Standard_NC6",
        "Standard_NC12",
        "Standard_NC24",
        "Standard_NC24r",
        # M60
        "Standard_NV6",
        "Standard_NV12",
        "Standard_NV24",
        "Standard_NV24r",
        # P40
        "Standard_ND6s",
        "Standard_ND12s",
        "Standard_ND24s",
        "Standard_ND24rs",
        # P100
        "Standard_NC6s_v2",
        "Standard_NC12s_v2",
        "Standard_NC24s_v2",
        "Standard_NC24rs_v2",
        # V100
        "Standard_NC6s_v3",
        "Standard_NC12s_v3",
        "Standard_NC24s_v3",
        "Standard_NC24rs_v3",
        "Standard_ND40s_v3",
        "Standard_ND40rs_v2",
    }
)

SGX_ENABLED_SKUS = frozenset({"Standard_DC2s", "Standard_DC4s"})

PROMO_SUFFIX = "_Promo"


def is_nvidia_enabled_sku(vm_size: str) -> bool:
    """Determine whether a VM SKU has NVIDIA driver support.

    Args:
        vm_size: The VM SKU, optionally carrying the '_Promo' suffix.

    Returns:
        True if the (suffix-stripped) SKU is a supported GPU SKU.
    """
    if vm_size.endswith(PROMO_SUFFIX):
        vm_size = vm_size[: -len(PROMO_SUFFIX)]
    return vm_size in NVIDIA_ENABLED_SKUS


def is_sgx_enabled_sku(vm_size: str) -> bool:
    """Determine whether a VM SKU has SGX driver support."""
    return vm_size in SGX_ENABLED_SKUS


def get_cloud_target_env(location: str) -> str:
    """Return the cloud environment a region belongs to.

    Sovereign clouds (China, Germany, US Government) have their own data
    compliance rules; everything else is the public cloud.

    Args:
        location: Region name; whitespace and case are ignored.

    Returns:
        One of 'AzureChinaCloud', 'AzureGermanCloud', 'AzureUSGovernmentCloud'
        or 'AzurePublicCloud'.
    """
    loc = "".join(location.split()).lower()
    if loc in ("chinaeast", "chinanorth", "chinaeast2", "chinanorth2"):
        return "AzureChinaCloud"
    if loc in ("germanynortheast", "germanycentral"):
        return "AzureGermanCloud"
    if loc.startswith("usgov") or loc.startswith("usdod"):
        return "AzureUSGovernmentCloud"
    return "AzurePublicCloud"


def _parse_version(value: str) -> Version:
    # unparsable versions compare as the zero version
    try:
        return Version.parse(value)
    except ValueError:
        return Version(0, 0, 0)


def is_kubernetes_version_ge(actual_version: str, version: str) -> bool:
    """True if actual_version is greater than or equal to version.

    Semantic versioning precedence: build metadata is ignored.
    """
    return _parse_version(actual_version) >= _parse_version(version)
