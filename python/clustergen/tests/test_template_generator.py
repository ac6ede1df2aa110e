import asyncio
import base64
import json
import logging
from typing import Callable, Dict, List

import pytest

from clustergen.engine.assets import AssetStore
from clustergen.engine.errors import InvalidAddressError, TemplateAssetError
from clustergen.engine.template_generator import (
    KUBERNETES_AGENT_CUSTOM_DATA,
    KUBERNETES_MASTER_CUSTOM_DATA,
    TemplateGenerator,
    get_ssh_public_keys_powershell,
    get_windows_master_subnet_arm_param,
    wrap_as_variable_object,
)
from clustergen.models.cluster import (
    AgentPoolProfile,
    ClusterSpecification,
    Distro,
    Extension,
    ExtensionProfile,
    KubernetesAddon,
    KubernetesConfig,
    LinuxProfile,
    MasterProfile,
    OrchestratorProfile,
    OrchestratorType,
    OSType,
    PublicKey,
    WindowsProfile,
)
from clustergen.models.parameters import dump_parameters

WriteAssets = Callable[[Dict[str, str]], AssetStore]

LINKED_TEMPLATE = (
    '{"name": "[concat(EXTENSION_TARGET_VM_NAME_PREFIX, \'ext\')]", '
    '"type": "Microsoft.Resources/deployments", '
    '"copy": {"count": "EXTENSION_LOOP_COUNT", "name": "extLoop"}}'
)


class FakeRegistryClient:
    def __init__(self) -> None:
        self.calls = 0

    async def get_linked_template_text_for_url(
        self, root_url: str, orchestrator: str, extension_name: str, version: str, query: str = ""
    ) -> str:
        self.calls += 1
        return LINKED_TEMPLATE


def test_helpers() -> None:
    assert wrap_as_variable_object("config", "name") == "',variables('config').name,'"
    assert get_ssh_public_keys_powershell(
        LinuxProfile(ssh_public_keys=[PublicKey(key_data=" ssh-rsa A \n"), PublicKey(key_data="ssh-rsa B")])
    ) == '"ssh-rsa A", "ssh-rsa B"'
    assert get_windows_master_subnet_arm_param(MasterProfile(dns_prefix="x")) == (
        "',parameters('masterSubnet'),'"
    )
    assert get_windows_master_subnet_arm_param(
        MasterProfile(dns_prefix="x", vnet_subnet_id="/subscriptions/s/subnets/master")
    ) == "',parameters('vnetCidr'),'"


def test_get_single_line_renders_profile(
    spec: ClusterSpecification, write_assets: WriteAssets
) -> None:
    assets = write_assets(
        {"pool.txt": '{{ profile.name }} "{{ GetClusterID() }}"\n{{ cs.location }}\n'}
    )
    generator = TemplateGenerator(spec, assets=assets)
    pool = spec.agent_pool_profiles[0]

    assert generator.get_single_line("pool.txt", pool) == (
        f'agentpool1 "{spec.get_cluster_id()}"\nwestus2\n'
    )
    assert generator.get_single_line_for_template("pool.txt", pool) == (
        f'agentpool1 \\"{spec.get_cluster_id()}\\"\\nwestus2\\n'
    )


def test_template_functions(spec: ClusterSpecification, write_assets: WriteAssets) -> None:
    assets = write_assets(
        {
            "functions.txt": (
                "{{ IsKubernetesVersionGe('1.15.0') }} "
                "{{ IsKubernetesVersionGe('1.16.0') }} "
                "{{ IsNvidiaEnabledSKU('Standard_NC6') }} "
                "{{ GetMasterStaticIPs() | join(',') }} "
                "{{ GetKubernetesPodStartIndex() }} "
                "{{ Base64('hello') }}"
            )
        }
    )
    generator = TemplateGenerator(spec, assets=assets)

    assert generator.get_single_line("functions.txt", spec) == (
        "True False True 10.240.255.5,10.240.255.6,10.240.255.7 9 aGVsbG8="
    )


def test_missing_asset(spec: ClusterSpecification, write_assets: WriteAssets) -> None:
    generator = TemplateGenerator(spec, assets=write_assets({}))
    with pytest.raises(TemplateAssetError) as exc_info:
        generator.get_single_line("absent.yml", spec)
    assert exc_info.value.file_name == "absent.yml"


@pytest.mark.parametrize(
    "source, message",
    [
        ("{% if %}", "error parsing file broken.yml"),
        ("{{ NoSuchFunction() }}", "error executing template for file broken.yml"),
        ("{{ cs.no_such_field }}", "error executing template for file broken.yml"),
    ],
)
def test_broken_asset(
    source: str, message: str, spec: ClusterSpecification, write_assets: WriteAssets
) -> None:
    generator = TemplateGenerator(spec, assets=write_assets({"broken.yml": source}))
    with pytest.raises(TemplateAssetError, match=message) as exc_info:
        generator.get_single_line("broken.yml", spec)
    assert exc_info.value.file_name == "broken.yml"


def test_configuration_fault_propagates(
    spec: ClusterSpecification, write_assets: WriteAssets
) -> None:
    master = spec.master_profile.model_copy(update={"first_consecutive_static_ip": "10.0.0.253"})
    generator = TemplateGenerator(
        spec.model_copy(update={"master_profile": master}),
        assets=write_assets({"ips.txt": "{{ GetMasterStaticIPs() }}"}),
    )
    with pytest.raises(InvalidAddressError):
        generator.get_single_line("ips.txt", spec)


def test_master_custom_data_embeds_addons(spec: ClusterSpecification) -> None:
    addon = KubernetesAddon(
        name="tiller",
        enabled=True,
        data=base64.b64encode(b"kind: List\n").decode("ascii"),
    )
    spec = spec.model_copy(
        update={
            "orchestrator_profile": OrchestratorProfile(
                kubernetes_config=KubernetesConfig(addons=[addon])
            )
        }
    )
    generator = TemplateGenerator(spec)

    custom_data = generator.get_kubernetes_master_custom_data()

    assert "MASTER_CONTAINER_ADDONS_PLACEHOLDER" not in custom_data
    assert "\n" not in custom_data
    assert "- path: /etc/kubernetes/addons/kube-tiller-deployment.yaml\\n" in custom_data
    assert custom_data.startswith("#cloud-config\\n\\nwrite_files:\\n")


def test_agent_custom_data(spec: ClusterSpecification) -> None:
    generator = TemplateGenerator(spec)
    text = generator.get_single_line(KUBERNETES_AGENT_CUSTOM_DATA, spec.agent_pool_profiles[1])

    assert text.startswith("#cloud-config\n")
    assert "- /opt/azure/containers/provision.sh agent agentpool2\n" in text


def test_windows_agent_custom_data() -> None:
    spec = ClusterSpecification(
        master_profile=MasterProfile(dns_prefix="win"),
        agent_pool_profiles=[
            AgentPoolProfile(
                name="winpool",
                os_type=OSType.WINDOWS,
                preprovision_extension=Extension(name="hello"),
            )
        ],
        extension_profiles=[ExtensionProfile(name="hello", version="v1", script="hello.ps1")],
        windows_profile=WindowsProfile(admin_password="P@ssw0rd"),
    )
    generator = TemplateGenerator(spec)
    text = generator.get_single_line(KUBERNETES_AGENT_CUSTOM_DATA, spec.agent_pool_profiles[0])

    assert text.startswith("<powershell>\n")
    assert "Invoke-WebRequest" in text


def test_get_parameters_order(spec: ClusterSpecification) -> None:
    params = TemplateGenerator(spec).get_parameters()

    assert list(params) == [
        "location",
        "targetEnvironment",
        "orchestratorVersion",
        "masterDNSPrefix",
        "masterVMSize",
        "masterCount",
        "firstConsecutiveStaticIP",
        "masterSubnet",
        "agentpool1Count",
        "agentpool1VMSize",
        "agentpool1Subnet",
        "agentpool2Count",
        "agentpool2VMSize",
        "agentpool2Subnet",
        "linuxAdminUsername",
        "sshRSAPublicKey",
        "servicePrincipalClientId",
        "servicePrincipalClientSecret",
    ]
    assert params["masterCount"] == {"value": 3}
    assert params["targetEnvironment"] == {"value": "AzurePublicCloud"}
    assert params["servicePrincipalClientSecret"] == {"value": "client-secret"}


def test_get_parameters_custom_vnet_and_windows(spec: ClusterSpecification) -> None:
    master = spec.master_profile.model_copy(
        update={"vnet_subnet_id": "/subscriptions/s/subnets/master", "vnet_cidr": "10.0.0.0/8"}
    )
    spec = spec.model_copy(
        update={
            "master_profile": master,
            "windows_profile": WindowsProfile(admin_username="winadmin", admin_password="pw"),
            "extension_profiles": [
                ExtensionProfile(name="hello", version="v1", extension_parameters="a b")
            ],
        }
    )

    params = dump_parameters(TemplateGenerator(spec).get_parameters())

    assert "masterSubnet" not in params
    assert params["masterVnetSubnetID"] == {"value": "/subscriptions/s/subnets/master"}
    assert params["vnetCidr"] == {"value": "10.0.0.0/8"}
    assert params["windowsAdminUsername"] == {"value": "winadmin"}
    assert params["windowsAdminPassword"] == {"value": "pw"}
    assert list(params)[-1] == "helloParameters"
    assert params["helloParameters"] == {"value": "a b"}


@pytest.mark.parametrize(
    "orchestrator_type, master_distro, agent_distro, expected",
    [
        (OrchestratorType.KUBERNETES, Distro.UBUNTU, Distro.UBUNTU, True),
        (OrchestratorType.KUBERNETES, Distro.RHEL, Distro.UBUNTU, False),
        (OrchestratorType.DCOS, Distro.UBUNTU, Distro.RHEL, False),
        (OrchestratorType.SWARM_MODE, Distro.RHEL, Distro.RHEL, True),
    ],
)
def test_validate_distro(
    orchestrator_type: OrchestratorType,
    master_distro: Distro,
    agent_distro: Distro,
    expected: bool,
    caplog: pytest.LogCaptureFixture,
) -> None:
    spec = ClusterSpecification(
        orchestrator_profile=OrchestratorProfile(orchestrator_type=orchestrator_type),
        master_profile=MasterProfile(dns_prefix="distro", distro=master_distro),
        agent_pool_profiles=[AgentPoolProfile(name="pool", distro=agent_distro)],
    )
    with caplog.at_level(logging.INFO, logger="clustergen.engine.template_generator"):
        assert TemplateGenerator(spec).validate_distro() is expected
    if not expected:
        assert f"Orchestrator type {orchestrator_type.value} not supported on RHEL" in caplog.text


def _resource_types(template: Dict) -> List[str]:
    return [resource["type"] for resource in template["resources"]]


def test_generate_template(spec: ClusterSpecification) -> None:
    client = FakeRegistryClient()
    text = asyncio.run(TemplateGenerator(spec).generate_template(client))

    template = json.loads(text)

    assert client.calls == 0
    parameters = TemplateGenerator(spec).get_parameters()
    assert set(parameters) <= set(template["parameters"])
    assert _resource_types(template).count("Microsoft.Network/loadBalancers") == 1
    assert _resource_types(template).count("Microsoft.Compute/virtualMachineScaleSets") == 1
    vnet = next(
        r for r in template["resources"] if r["type"] == "Microsoft.Network/virtualNetworks"
    )
    assert [s["name"] for s in vnet["properties"]["subnets"]] == [
        "[variables('masterSubnetName')]",
        "[variables('agentpool1SubnetName')]",
        "[variables('agentpool2SubnetName')]",
    ]
    agent_vm = template["resources"][-2]
    assert len(agent_vm["properties"]["storageProfile"]["dataDisks"]) == 2
    assert template["variables"]["masterPrivateIPs"] == [
        "10.240.255.5",
        "10.240.255.6",
        "10.240.255.7",
    ]


def test_generate_template_with_extensions_and_windows() -> None:
    spec = ClusterSpecification(
        master_profile=MasterProfile(
            dns_prefix="extcluster", extensions=[Extension(name="ext", single_or_all="single")]
        ),
        agent_pool_profiles=[
            AgentPoolProfile(name="linuxpool", count=2, subnet="10.240.0.0/16"),
            AgentPoolProfile(
                name="winpool",
                count=2,
                subnet="10.240.0.0/16",
                os_type=OSType.WINDOWS,
                extensions=[Extension(name="ext")],
            ),
        ],
        extension_profiles=[ExtensionProfile(name="ext", version="v1", extension_parameters="x")],
        windows_profile=WindowsProfile(admin_password="P@ssw0rd"),
    )
    client = FakeRegistryClient()

    template = json.loads(asyncio.run(TemplateGenerator(spec).generate_template(client)))

    assert client.calls == 2
    linked = [
        r for r in template["resources"] if r["type"] == "Microsoft.Resources/deployments"
    ]
    assert [r["copy"]["count"] for r in linked] == [
        1,
        "[sub(variables('winpoolCount'), variables('winpoolOffset'))]",
    ]
    vnet = next(
        r for r in template["resources"] if r["type"] == "Microsoft.Network/virtualNetworks"
    )
    assert [s["name"] for s in vnet["properties"]["subnets"]][-2:] == ["podCIDR4", "podCIDR5"]
    assert "windowsAdminPassword" in template["parameters"]
    assert "extParameters" in template["parameters"]


def test_raw_master_custom_data_keeps_addon_placeholder(spec: ClusterSpecification) -> None:
    text = TemplateGenerator(spec).get_single_line(
        KUBERNETES_MASTER_CUSTOM_DATA, spec.master_profile
    )
    assert "\nMASTER_CONTAINER_ADDONS_PLACEHOLDER\nruncmd:\n" in text
