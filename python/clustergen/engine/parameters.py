"""
clustergen/engine/parameters.py

Builds the ARM ParameterMap of a cluster. Secrets (service principal secret,
Windows admin password) go through the secret resolver, so KeyVault secret
paths become references instead of literal values.
"""

from __future__ import annotations

from clustergen.engine.capabilities import get_cloud_target_env
from clustergen.engine.secrets import add_secret, add_value
from clustergen.models.cluster import ClusterSpecification
from clustergen.models.parameters import ParameterMap


def build_parameters(spec: ClusterSpecification) -> ParameterMap:
    """Return the ARM parameters of a cluster, in a stable order."""
    params: ParameterMap = {}
    add_value(params, "location", spec.location)
    add_value(params, "targetEnvironment", get_cloud_target_env(spec.location))
    add_value(params, "orchestratorVersion", spec.orchestrator_profile.orchestrator_version)

    master = spec.master_profile
    add_value(params, "masterDNSPrefix", master.dns_prefix)
    add_value(params, "masterVMSize", master.vm_size)
    add_value(params, "masterCount", master.count)
    add_value(params, "firstConsecutiveStaticIP", master.first_consecutive_static_ip)
    if master.is_custom_vnet():
        add_value(params, "masterVnetSubnetID", master.vnet_subnet_id)
        add_value(params, "vnetCidr", master.vnet_cidr)
    else:
        add_value(params, "masterSubnet", master.subnet)

    for pool in spec.agent_pool_profiles:
        add_value(params, f"{pool.name}Count", pool.count)
        add_value(params, f"{pool.name}VMSize", pool.vm_size)
        add_value(params, f"{pool.name}Subnet", pool.subnet)

    linux = spec.linux_profile
    add_value(params, "linuxAdminUsername", linux.admin_username)
    if linux.ssh_public_keys:
        add_value(params, "sshRSAPublicKey", linux.ssh_public_keys[0].key_data)

    principal = spec.service_principal_profile
    if principal is not None:
        add_value(params, "servicePrincipalClientId", principal.client_id)
        add_secret(params, "servicePrincipalClientSecret", principal.secret, False)

    windows = spec.windows_profile
    if windows is not None:
        add_value(params, "windowsAdminUsername", windows.admin_username)
        add_secret(params, "windowsAdminPassword", windows.admin_password, False)

    for extension in spec.extension_profiles:
        add_value(params, f"{extension.name}Parameters", extension.extension_parameters)

    return params
