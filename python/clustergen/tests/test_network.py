import json

import pytest

from clustergen.engine.errors import InvalidAddressError
from clustergen.engine.network import (
    BASE_LB_PRIORITY,
    generate_consecutive_ips_list,
    get_data_disks,
    get_kubernetes_pod_start_index,
    get_kubernetes_subnets,
    get_lb_rules,
    get_probes,
    get_security_rules,
    get_vnet_address_prefixes,
    get_vnet_subnet_dependencies,
    get_vnet_subnets,
)
from clustergen.models.cluster import (
    AgentPoolProfile,
    ClusterSpecification,
    MasterProfile,
    OSType,
    StorageProfile,
)


def _json_list(fragment: str) -> list:
    return json.loads("[" + fragment + "]")


def test_consecutive_ips() -> None:
    assert generate_consecutive_ips_list(3, "10.240.255.5") == [
        "10.240.255.5",
        "10.240.255.6",
        "10.240.255.7",
    ]


def test_consecutive_ips_last_usable_octet() -> None:
    assert generate_consecutive_ips_list(4, "10.0.0.250") == [
        "10.0.0.250",
        "10.0.0.251",
        "10.0.0.252",
        "10.0.0.253",
    ]


@pytest.mark.parametrize("first_addr", ["10.0.0.251", "10.0.0.252", "10.0.0.255"])
def test_consecutive_ips_overflow(first_addr: str) -> None:
    with pytest.raises(InvalidAddressError) as exc_info:
        generate_consecutive_ips_list(4, first_addr)
    assert exc_info.value.address == first_addr


@pytest.mark.parametrize("first_addr", ["not-an-ip", "10.0.0", "fe80::1", ""])
def test_consecutive_ips_invalid_address(first_addr: str) -> None:
    with pytest.raises(InvalidAddressError, match="invalid IP address"):
        generate_consecutive_ips_list(1, first_addr)


def test_security_rule_priorities_follow_port_order() -> None:
    rules = _json_list(get_security_rules([443, 80, 8080]))

    assert [rule["properties"]["priority"] for rule in rules] == [
        BASE_LB_PRIORITY,
        BASE_LB_PRIORITY + 1,
        BASE_LB_PRIORITY + 2,
    ]
    assert [rule["properties"]["destinationPortRange"] for rule in rules] == [
        "443",
        "80",
        "8080",
    ]
    assert rules[0]["name"] == "Allow_443"


def test_security_rules_empty() -> None:
    assert get_security_rules([]) == ""


def test_lb_rules_and_probes() -> None:
    rules = _json_list(get_lb_rules("agentpool1", [80, 443]))
    probes = _json_list(get_probes([80, 443]))

    assert [rule["name"] for rule in rules] == ["LBRule80", "LBRule443"]
    assert rules[1]["properties"]["frontendPort"] == 443
    assert rules[1]["properties"]["probe"]["id"] == (
        "[concat(variables('agentpool1LbID'),'/probes/tcp443Probe')]"
    )
    assert [probe["name"] for probe in probes] == ["tcp80Probe", "tcp443Probe"]
    assert probes[0]["properties"]["port"] == 80


def test_vnet_address_prefixes_skip_duplicate_subnets() -> None:
    spec = ClusterSpecification(
        master_profile=MasterProfile(dns_prefix="dedup", subnet="10.240.255.0/24"),
        agent_pool_profiles=[
            AgentPoolProfile(name="pool1", subnet="10.240.255.0/24"),
            AgentPoolProfile(name="pool2", subnet="10.240.0.0/16"),
            AgentPoolProfile(name="pool3", subnet="10.240.0.0/16"),
        ],
    )
    prefixes = _json_list(get_vnet_address_prefixes(spec))
    assert prefixes == [
        "[variables('masterSubnet')]",
        "[variables('pool2Subnet')]",
    ]


def test_vnet_subnets(spec: ClusterSpecification) -> None:
    with_nsg = _json_list(get_vnet_subnets(spec, True))
    without_nsg = _json_list(get_vnet_subnets(spec, False))

    assert [s["name"] for s in with_nsg] == [
        "[variables('masterSubnetName')]",
        "[variables('agentpool1SubnetName')]",
        "[variables('agentpool2SubnetName')]",
    ]
    assert "networkSecurityGroup" not in with_nsg[0]["properties"]
    assert with_nsg[1]["properties"]["networkSecurityGroup"]["id"] == (
        "[resourceId('Microsoft.Network/networkSecurityGroups', "
        "variables('agentpool1NSGName'))]"
    )
    assert all("networkSecurityGroup" not in s["properties"] for s in without_nsg)


def test_vnet_subnet_dependencies(spec: ClusterSpecification) -> None:
    dependencies = _json_list(get_vnet_subnet_dependencies(spec))
    assert dependencies == [
        "[concat('Microsoft.Network/networkSecurityGroups/', variables('agentpool1NSGName'))]",
        "[concat('Microsoft.Network/networkSecurityGroups/', variables('agentpool2NSGName'))]",
    ]

    no_pools = spec.model_copy(update={"agent_pool_profiles": []})
    assert get_vnet_subnet_dependencies(no_pools) == ""


def test_data_disks_absent() -> None:
    assert get_data_disks(AgentPoolProfile(name="nodisks")) == ""


def test_managed_data_disks() -> None:
    profile = AgentPoolProfile(name="pool1", disk_sizes_gb=[128, 256])
    fragment = get_data_disks(profile)

    assert fragment.endswith(",")
    storage_profile = json.loads("{" + fragment + ' "osDisk": {}}')
    assert storage_profile["dataDisks"] == [
        {"diskSizeGB": "128", "lun": 0, "caching": "ReadOnly", "createOption": "Empty"},
        {"diskSizeGB": "256", "lun": 1, "caching": "ReadOnly", "createOption": "Empty"},
    ]


def test_storage_account_data_disks() -> None:
    profile = AgentPoolProfile(
        name="pool1",
        disk_sizes_gb=[64, 128],
        storage_profile=StorageProfile.STORAGE_ACCOUNT,
    )
    storage_profile = json.loads("{" + get_data_disks(profile) + ' "osDisk": {}}')
    disks = storage_profile["dataDisks"]

    account_index = (
        "add(add(div(copyIndex(),variables('maxVMsPerStorageAccount')),"
        "variables('pool1StorageAccountOffset')),"
        "variables('dataStorageAccountPrefixSeed'))"
    )
    for lun, size in enumerate([64, 128]):
        disk = disks[lun]
        assert disk["diskSizeGB"] == str(size)
        assert disk["lun"] == lun
        assert disk["name"] == (
            f"[concat(variables('pool1VMNamePrefix'), copyIndex(),'-datadisk{lun}')]"
        )
        assert disk["vhd"]["uri"] == (
            "[concat('http://',"
            f"variables('storageAccountPrefixes')[mod({account_index},"
            "variables('storageAccountPrefixesCount'))],"
            f"variables('storageAccountPrefixes')[div({account_index},"
            "variables('storageAccountPrefixesCount'))],"
            "variables('pool1DataAccountName'),'.blob.core.windows.net/vhds/',"
            "variables('pool1VMNamePrefix'),copyIndex(), "
            f"'--datadisk{lun}.vhd')]"
        )


def test_kubernetes_subnets_for_windows_nodes() -> None:
    spec = ClusterSpecification(
        master_profile=MasterProfile(dns_prefix="win", count=3),
        agent_pool_profiles=[
            AgentPoolProfile(name="linuxpool", count=2),
            AgentPoolProfile(name="winpool", count=2, os_type=OSType.WINDOWS),
        ],
    )
    assert get_kubernetes_pod_start_index(spec) == 6

    fragment = get_kubernetes_subnets(spec)
    assert fragment.startswith(",\n")
    subnets = json.loads("[{}" + fragment + "]")[1:]
    assert [s["name"] for s in subnets] == ["podCIDR6", "podCIDR7"]
    assert subnets[1]["properties"]["addressPrefix"] == "10.244.7.0/24"


def test_kubernetes_subnets_without_windows_nodes(spec: ClusterSpecification) -> None:
    assert get_kubernetes_subnets(spec) == ""
