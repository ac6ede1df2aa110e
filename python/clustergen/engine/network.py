"""
clustergen/engine/network.py

Builds the network fragments spliced into the ARM template:
  - consecutive static IP lists
  - VNET address prefixes, subnets and subnet dependencies
  - load balancer rules and probes, NSG security rules
  - data disk descriptors
  - per Windows node pod CIDR subnets

Each fragment is a literal piece of a JSON document; key names, indentation
and ARM expressions are part of the output contract.
"""

from __future__ import annotations

import ipaddress
from typing import List, Sequence, Set

from clustergen.engine.errors import InvalidAddressError
from clustergen.models.cluster import (
    AgentPoolProfile,
    ClusterSpecification,
    StorageProfile,
)

# Inbound security rules are numbered from here, in port order.
BASE_LB_PRIORITY = 200

_FRAGMENT_SEPARATOR = ",\n"


def generate_consecutive_ips_list(count: int, first_addr: str) -> List[str]:
    """Return `count` consecutive IPv4 addresses starting at `first_addr`.

    Only the fourth octet is incremented.

    Raises:
        InvalidAddressError: If `first_addr` is not an IPv4 address, or if
            `last_octet + count` reaches 255.
    """
    try:
        octets = ipaddress.IPv4Address(first_addr).packed
    except ValueError as exc:
        raise InvalidAddressError(
            f"IPAddr '{first_addr}' is an invalid IP address", first_addr
        ) from exc

    if octets[3] + count >= 255:
        raise InvalidAddressError(
            f"IPAddr '{first_addr}' + {count} will overflow the fourth octet",
            first_addr,
        )
    return [
        f"{octets[0]}.{octets[1]}.{octets[2]}.{octets[3] + i}" for i in range(count)
    ]


def get_vnet_address_prefixes(spec: ClusterSpecification) -> str:
    """Address prefix list: master subnet first, then each new agent subnet once."""
    visited: Set[str] = {spec.master_profile.subnet}
    entries = ["\"[variables('masterSubnet')]\""]
    for profile in spec.agent_pool_profiles:
        if profile.subnet in visited:
            continue
        visited.add(profile.subnet)
        entries.append(f"\"[variables('{profile.name}Subnet')]\"")
    return ",\n            ".join(entries)


def get_vnet_subnet_dependencies(spec: ClusterSpecification) -> str:
    agent_string = (
        "        \"[concat('Microsoft.Network/networkSecurityGroups/', "
        "variables('{name}NSGName'))]\""
    )
    return _FRAGMENT_SEPARATOR.join(
        agent_string.format(name=profile.name) for profile in spec.agent_pool_profiles
    )


_MASTER_SUBNET = """{
            "name": "[variables('masterSubnetName')]",
            "properties": {
              "addressPrefix": "[variables('masterSubnet')]"
            }
          }"""

_AGENT_SUBNET = """          {{
            "name": "[variables('{name}SubnetName')]",
            "properties": {{
              "addressPrefix": "[variables('{name}Subnet')]"
            }}
          }}"""

_AGENT_SUBNET_NSG = """          {{
            "name": "[variables('{name}SubnetName')]",
            "properties": {{
              "addressPrefix": "[variables('{name}Subnet')]",
              "networkSecurityGroup": {{
                "id": "[resourceId('Microsoft.Network/networkSecurityGroups', variables('{name}NSGName'))]"
              }}
            }}
          }}"""


def get_vnet_subnets(spec: ClusterSpecification, add_nsg: bool) -> str:
    """Subnet resources: the master subnet, then one per agent pool in order.

    Args:
        spec: The cluster specification.
        add_nsg: Attach each pool's NSG to its subnet (applies to every pool).
    """
    agent_template = _AGENT_SUBNET_NSG if add_nsg else _AGENT_SUBNET
    blocks = [_MASTER_SUBNET] + [
        agent_template.format(name=profile.name) for profile in spec.agent_pool_profiles
    ]
    return _FRAGMENT_SEPARATOR.join(blocks)


_LB_RULE = """\t          {{
            "name": "LBRule{port}",
            "properties": {{
              "backendAddressPool": {{
                "id": "[concat(variables('{name}LbID'), '/backendAddressPools/', variables('{name}LbBackendPoolName'))]"
              }},
              "backendPort": {port},
              "enableFloatingIP": false,
              "frontendIPConfiguration": {{
                "id": "[variables('{name}LbIPConfigID')]"
              }},
              "frontendPort": {port},
              "idleTimeoutInMinutes": 5,
              "loadDistribution": "Default",
              "probe": {{
                "id": "[concat(variables('{name}LbID'),'/probes/tcp{port}Probe')]"
              }},
              "protocol": "Tcp"
            }}
          }}"""

_PROBE = """          {{
            "name": "tcp{port}Probe",
            "properties": {{
              "intervalInSeconds": 5,
              "numberOfProbes": 2,
              "port": {port},
              "protocol": "Tcp"
            }}
          }}"""

_SECURITY_RULE = """          {{
            "name": "Allow_{port}",
            "properties": {{
              "access": "Allow",
              "description": "Allow traffic from the Internet to port {port}",
              "destinationAddressPrefix": "*",
              "destinationPortRange": "{port}",
              "direction": "Inbound",
              "priority": {priority},
              "protocol": "*",
              "sourceAddressPrefix": "Internet",
              "sourcePortRange": "*"
            }}
          }}"""


def get_lb_rule(name: str, port: int) -> str:
    return _LB_RULE.format(name=name, port=port)


def get_lb_rules(name: str, ports: Sequence[int]) -> str:
    return _FRAGMENT_SEPARATOR.join(get_lb_rule(name, port) for port in ports)


def get_probe(port: int) -> str:
    return _PROBE.format(port=port)


def get_probes(ports: Sequence[int]) -> str:
    return _FRAGMENT_SEPARATOR.join(get_probe(port) for port in ports)


def get_security_rule(port: int, port_index: int) -> str:
    return _SECURITY_RULE.format(port=port, priority=BASE_LB_PRIORITY + port_index)


def get_security_rules(ports: Sequence[int]) -> str:
    """Inbound allow rules; the position of a port in `ports` sets its priority."""
    return _FRAGMENT_SEPARATOR.join(
        get_security_rule(port, index) for index, port in enumerate(ports)
    )


# The VHD uri shards data disks over storage accounts: VM copyIndex() lands in
# account div(copyIndex(), maxVMsPerStorageAccount) shifted by the pool offset.
_STORAGE_ACCOUNT_DATA_DISK = """            {{
              "createOption": "Empty",
              "diskSizeGB": "{size}",
              "lun": {lun},
              "caching": "ReadOnly",
              "name": "[concat(variables('{name}VMNamePrefix'), copyIndex(),'-datadisk{lun}')]",
              "vhd": {{
                "uri": "[concat('http://',variables('storageAccountPrefixes')[mod(add(add(div(copyIndex(),variables('maxVMsPerStorageAccount')),variables('{name}StorageAccountOffset')),variables('dataStorageAccountPrefixSeed')),variables('storageAccountPrefixesCount'))],variables('storageAccountPrefixes')[div(add(add(div(copyIndex(),variables('maxVMsPerStorageAccount')),variables('{name}StorageAccountOffset')),variables('dataStorageAccountPrefixSeed')),variables('storageAccountPrefixesCount'))],variables('{name}DataAccountName'),'.blob.core.windows.net/vhds/',variables('{name}VMNamePrefix'),copyIndex(), '--datadisk{lun}.vhd')]"
              }}
            }}"""

_MANAGED_DATA_DISK = """            {{
              "diskSizeGB": "{size}",
              "lun": {lun},
              "caching": "ReadOnly",
              "createOption": "Empty"
            }}"""


def get_data_disks(profile: AgentPoolProfile) -> str:
    """The 'dataDisks' member of a VM storage profile, or "" without disks.

    The fragment ends with a trailing comma so it can precede the remaining
    storage profile members.
    """
    if not profile.has_disks():
        return ""

    disk_template = (
        _STORAGE_ACCOUNT_DATA_DISK
        if profile.storage_profile == StorageProfile.STORAGE_ACCOUNT
        else _MANAGED_DATA_DISK
    )
    disks = _FRAGMENT_SEPARATOR.join(
        disk_template.format(size=size, lun=lun, name=profile.name)
        for lun, size in enumerate(profile.disk_sizes_gb)
    )
    return "\"dataDisks\": [\n" + disks + "\n          ],"


_POD_CIDR_SUBNET = """{{
            "name": "podCIDR{index}",
            "properties": {{
              "addressPrefix": "10.244.{index}.0/24",
              "networkSecurityGroup": {{
                "id": "[variables('nsgID')]"
              }},
              "routeTable": {{
                "id": "[variables('routeTableID')]"
              }}
            }}
          }}"""


def get_kubernetes_pod_start_index(spec: ClusterSpecification) -> int:
    """First pod CIDR index left free by the master and Linux agent nodes."""
    node_count = spec.master_profile.count + sum(
        profile.count
        for profile in spec.agent_pool_profiles
        if not profile.is_windows()
    )
    return node_count + 1


def get_kubernetes_subnets(spec: ClusterSpecification) -> str:
    """One pod CIDR subnet per Windows agent VM, each preceded by ',\\n'."""
    start = get_kubernetes_pod_start_index(spec)
    windows_nodes = sum(
        profile.count for profile in spec.agent_pool_profiles if profile.is_windows()
    )
    return "".join(
        _FRAGMENT_SEPARATOR + _POD_CIDR_SUBNET.format(index=index)
        for index in range(start, start + windows_nodes)
    )
