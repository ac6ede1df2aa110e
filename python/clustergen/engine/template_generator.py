"""
clustergen/engine/template_generator.py

TemplateGenerator is the facade over the generators. It owns the template
function namespace (GetVNETSubnets, GetLBRules, GetMasterExtensionScriptCommands,
GetContainerAddonsString, ...) through which ARM and cloud-init assets pull in
the fragments built by the other engine modules, and renders those assets:

  - get_single_line: the rendered text as-is
  - get_single_line_for_template: escaped to sit inside an ARM JSON string
  - generate_template: the top-level ARM template, with linked extension
    templates fetched from the registry beforehand
"""

from __future__ import annotations

import base64
import logging
from typing import Any, Callable, Dict, Mapping, Optional

from jinja2 import TemplateError, TemplateSyntaxError

from clustergen.engine.addons import get_container_addons_string
from clustergen.engine.assets import AssetStore, compile_template
from clustergen.engine.capabilities import (
    get_cloud_target_env,
    is_kubernetes_version_ge,
    is_nvidia_enabled_sku,
    is_sgx_enabled_sku,
)
from clustergen.engine.customdata import (
    build_yaml_file_with_write_files,
    escape_single_line,
    get_base64_encoded_gzipped_custom_script,
)
from clustergen.engine.errors import TemplateAssetError
from clustergen.engine.extensions import (
    get_linked_templates_for_extensions,
    make_agent_extension_script_commands,
    make_master_extension_script_commands,
)
from clustergen.engine.network import (
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
from clustergen.engine.parameters import build_parameters
from clustergen.engine.registry import ExtensionRegistryClient
from clustergen.models.addon_settings import DEFAULT_ADDON_SETTINGS, AddonSetting
from clustergen.models.cluster import (
    ClusterSpecification,
    Distro,
    LinuxProfile,
    MasterProfile,
    OrchestratorType,
)
from clustergen.models.parameters import ParameterMap

logger = logging.getLogger(__name__)

KUBERNETES_BASE_TEMPLATE = "k8s/kubernetesbase.t"
KUBERNETES_MASTER_CUSTOM_DATA = "k8s/kubernetesmastercustomdata.yml"
KUBERNETES_AGENT_CUSTOM_DATA = "k8s/kubernetesagentcustomdata.yml"

# The addon block is already escaped, so it is spliced in after escaping.
MASTER_CONTAINER_ADDONS_PLACEHOLDER = "MASTER_CONTAINER_ADDONS_PLACEHOLDER"

TemplateFunctions = Dict[str, Callable[..., Any]]


def wrap_as_variable_object(obj: str, value: str) -> str:
    """Splice variables('<obj>').<value> into a concat() string argument."""
    return f"',variables('{obj}').{value},'"


def get_ssh_public_keys_powershell(linux_profile: Optional[LinuxProfile]) -> str:
    """Comma separated, double quoted SSH public keys for a PowerShell array."""
    if linux_profile is None:
        return ""
    return ", ".join(
        '"' + key.key_data.strip() + '"' for key in linux_profile.ssh_public_keys
    )


def get_windows_master_subnet_arm_param(master_profile: Optional[MasterProfile]) -> str:
    if master_profile is not None and master_profile.is_custom_vnet():
        return "',parameters('vnetCidr'),'"
    return "',parameters('masterSubnet'),'"


def validate_distro(spec: ClusterSpecification) -> bool:
    """RHEL masters and agents are only supported by the SwarmMode orchestrator."""
    orchestrator_type = spec.orchestrator_profile.orchestrator_type
    if orchestrator_type == OrchestratorType.SWARM_MODE:
        return True
    if spec.master_profile.distro == Distro.RHEL:
        logger.info(
            "Orchestrator type %s not supported on RHEL Master", orchestrator_type.value
        )
        return False
    if any(pool.distro == Distro.RHEL for pool in spec.agent_pool_profiles):
        logger.info(
            "Orchestrator type %s not supported on RHEL Agent", orchestrator_type.value
        )
        return False
    return True


class TemplateGenerator:
    """Renders template assets of one cluster specification.

    Args:
        spec: The cluster specification; only ever read.
        assets: Where template assets are read from. Defaults to the bundled ones.
        addon_settings: The addon settings table. Defaults to DEFAULT_ADDON_SETTINGS.
    """

    def __init__(
        self,
        spec: ClusterSpecification,
        assets: Optional[AssetStore] = None,
        addon_settings: Mapping[str, AddonSetting] = DEFAULT_ADDON_SETTINGS,
    ) -> None:
        self.spec = spec
        self.assets = assets or AssetStore()
        self.addon_settings = addon_settings

    def get_template_func_map(self) -> TemplateFunctions:
        """The functions visible to every asset rendered by this generator."""
        spec = self.spec
        master = spec.master_profile

        def _custom_script(filename: str) -> str:
            return get_base64_encoded_gzipped_custom_script(
                filename, spec, self.get_template_func_map(), self.assets
            )

        def _write_files(*filenames: str) -> str:
            return build_yaml_file_with_write_files(
                filenames, spec, self.get_template_func_map(), self.assets
            )

        return {
            "IsAzureStackCloud": spec.is_azure_stack_cloud,
            "IsNvidiaEnabledSKU": is_nvidia_enabled_sku,
            "IsSgxEnabledSKU": is_sgx_enabled_sku,
            "GetCloudTargetEnv": get_cloud_target_env,
            "IsKubernetesVersionGe": lambda version: is_kubernetes_version_ge(
                spec.orchestrator_profile.orchestrator_version, version
            ),
            "GetClusterID": spec.get_cluster_id,
            "GetVNETAddressPrefixes": lambda: get_vnet_address_prefixes(spec),
            "GetVNETSubnets": lambda add_nsg: get_vnet_subnets(spec, add_nsg),
            "GetVNETSubnetDependencies": lambda: get_vnet_subnet_dependencies(spec),
            "GetLBRules": get_lb_rules,
            "GetProbes": get_probes,
            "GetSecurityRules": get_security_rules,
            "GetDataDisks": get_data_disks,
            "GetKubernetesSubnets": lambda: get_kubernetes_subnets(spec),
            "GetKubernetesPodStartIndex": lambda: get_kubernetes_pod_start_index(spec),
            "GetMasterStaticIPs": lambda: generate_consecutive_ips_list(
                master.count, master.first_consecutive_static_ip
            ),
            "GetMasterExtensionScriptCommands": lambda: make_master_extension_script_commands(
                spec
            ),
            "GetAgentExtensionScriptCommands": lambda profile: make_agent_extension_script_commands(
                spec, profile
            ),
            "GetContainerAddonsString": lambda: get_container_addons_string(
                spec, settings=self.addon_settings, assets=self.assets
            ),
            "GetBase64EncodedGzippedCustomScript": _custom_script,
            "BuildYamlFileWithWriteFiles": _write_files,
            "GetKubernetesMasterCustomData": self.get_kubernetes_master_custom_data,
            "GetKubernetesAgentCustomData": lambda profile: self.get_single_line_for_template(
                KUBERNETES_AGENT_CUSTOM_DATA, profile
            ),
            "WrapAsVariableObject": wrap_as_variable_object,
            "GetSSHPublicKeysPowerShell": lambda: get_ssh_public_keys_powershell(
                spec.linux_profile
            ),
            "GetWindowsMasterSubnetARMParam": lambda: get_windows_master_subnet_arm_param(
                master
            ),
            "Base64": lambda text: base64.b64encode(text.encode("utf-8")).decode("ascii"),
            # replaced by the prefetched text in generate_template
            "GetLinkedTemplatesForExtensions": lambda: "",
        }

    def _render(self, text_filename: str, functions: TemplateFunctions, profile: Any) -> str:
        source = self.assets.read(text_filename)
        try:
            template = compile_template(source, functions)
        except TemplateSyntaxError as exc:
            raise TemplateAssetError(
                f"error parsing file {text_filename}: {exc}", text_filename
            ) from exc
        try:
            rendered = template.render(profile=profile, cs=self.spec)
        except TemplateError as exc:
            raise TemplateAssetError(
                f"error executing template for file {text_filename}: {exc}", text_filename
            ) from exc
        logger.debug("Rendered %s (%d bytes)", text_filename, len(rendered))
        return rendered

    def get_single_line(self, text_filename: str, profile: Any) -> str:
        """Render an asset against `profile` with the full function namespace.

        Raises:
            TemplateAssetError: If the asset is missing, or fails to parse or render.
            ConfigurationFault: If a template function finds the specification inconsistent.
        """
        return self._render(text_filename, self.get_template_func_map(), profile)

    def get_single_line_for_template(self, text_filename: str, profile: Any) -> str:
        """Like get_single_line, escaped as a one-line JSON string body."""
        return escape_single_line(self.get_single_line(text_filename, profile))

    def get_kubernetes_master_custom_data(self) -> str:
        """Master cloud-init, escaped, with the addon write_files entries spliced in."""
        custom_data = self.get_single_line_for_template(
            KUBERNETES_MASTER_CUSTOM_DATA, self.spec.master_profile
        )
        return custom_data.replace(
            MASTER_CONTAINER_ADDONS_PLACEHOLDER,
            get_container_addons_string(
                self.spec, settings=self.addon_settings, assets=self.assets
            ),
        )

    def get_parameters(self) -> ParameterMap:
        return build_parameters(self.spec)

    def validate_distro(self) -> bool:
        return validate_distro(self.spec)

    async def generate_template(
        self,
        client: ExtensionRegistryClient,
        text_filename: str = KUBERNETES_BASE_TEMPLATE,
    ) -> str:
        """Render the top-level ARM template.

        Linked extension templates are fetched first, so nothing is rendered
        when the registry cannot be read.

        Raises:
            ExtensionRegistryError: If a linked template cannot be fetched.
            TemplateAssetError: If the asset is missing, or fails to parse or render.
        """
        linked_templates = await get_linked_templates_for_extensions(self.spec, client)
        functions = self.get_template_func_map()
        functions["GetLinkedTemplatesForExtensions"] = lambda: linked_templates
        return self._render(text_filename, functions, self.spec)
