"""
clustergen/engine/addons.py

Renders every enabled addon into one text block of cloud-init write_files
entries. Addons are emitted in lexicographic name order whatever their order
in the specification, so the same cluster always yields the same block.

Each addon template is rendered with the functions of its template context.
The context class is selected by the addon's AddonKind:

  AddonKind.STANDARD            -> AddonTemplateContext
  AddonKind.CLUSTER_AUTOSCALER  -> ClusterAutoscalerTemplateContext
"""

from __future__ import annotations

import base64
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Type

from jinja2 import TemplateError

from clustergen.engine.assets import AssetStore, compile_template
from clustergen.engine.customdata import (
    get_base64_encoded_gzipped_custom_script_from_str,
    get_string_from_base64,
)
from clustergen.engine.errors import (
    AddonContainerNotFoundError,
    InvalidAddonDataError,
    TemplateAssetError,
)
from clustergen.models.addon_settings import (
    DEFAULT_ADDON_SETTINGS,
    AddonKind,
    AddonSetting,
)
from clustergen.models.cluster import (
    AddonContainer,
    ClusterSpecification,
    KubernetesAddon,
)

logger = logging.getLogger(__name__)

ADDONS_SOURCE_PATH = "k8s/addons"
ADDONS_DESTINATION_PATH = "/etc/kubernetes/addons"

TemplateFunctions = Dict[str, Callable[..., Any]]


class AddonTemplateContext:
    """Per-container lookups available to every addon template."""

    def __init__(self, addon: KubernetesAddon, spec: ClusterSpecification) -> None:
        self.addon = addon
        self.spec = spec

    def container(self, name: str) -> AddonContainer:
        """Return the named container.

        Raises:
            AddonContainerNotFoundError: If the addon defines no such container.
        """
        found = self.addon.get_container_by_name(name)
        if found is None:
            raise AddonContainerNotFoundError(self.addon.name, name)
        return found

    def container_image(self, name: str) -> str:
        return self.container(name).image

    def container_cpu_requests(self, name: str) -> str:
        return self.container(name).cpu_requests

    def container_cpu_limits(self, name: str) -> str:
        return self.container(name).cpu_limits

    def container_memory_requests(self, name: str) -> str:
        return self.container(name).memory_requests

    def container_memory_limits(self, name: str) -> str:
        return self.container(name).memory_limits

    def container_config(self, key: str) -> str:
        return self.addon.config.get(key, "")

    def template_functions(self) -> TemplateFunctions:
        return {
            "ContainerImage": self.container_image,
            "ContainerCPUReqs": self.container_cpu_requests,
            "ContainerCPULimits": self.container_cpu_limits,
            "ContainerMemReqs": self.container_memory_requests,
            "ContainerMemLimits": self.container_memory_limits,
            "ContainerConfig": self.container_config,
        }


class ClusterAutoscalerTemplateContext(AddonTemplateContext):
    """Adds node group, cloud and managed identity settings for the autoscaler."""

    def mode(self) -> str:
        return self.addon.mode

    def nodes_config(self) -> str:
        """One '--nodes=min:max:vm-group' argument line per autoscaled pool.

        Pools listed in the addon's own pool config are used when present,
        otherwise every scale set pool with the addon level min/max nodes.
        """
        cluster_id = self.spec.get_cluster_id()
        pools = {pool.name: pool for pool in self.spec.agent_pool_profiles}
        if self.addon.pools:
            targets = [
                (pool.name, pool.config) for pool in self.addon.pools if pool.name in pools
            ]
        else:
            targets = [
                (pool.name, self.addon.config)
                for pool in self.spec.agent_pool_profiles
                if pool.is_virtual_machine_scale_sets()
            ]

        def _line(pool_name: str, config: Mapping[str, str]) -> str:
            suffix = "-vmss" if pools[pool_name].is_virtual_machine_scale_sets() else ""
            return (
                f"        - --nodes={config.get('min-nodes', '1')}:"
                f"{config.get('max-nodes', '5')}:k8s-{pool_name}-{cluster_id}{suffix}"
            )

        return "\n".join(_line(name, config) for name, config in targets)

    def vm_type(self) -> str:
        vm_type = "vmss" if self.spec.any_agent_uses_vmss() else "standard"
        return base64.b64encode(vm_type.encode("utf-8")).decode("ascii")

    def _uses_managed_identity(self) -> bool:
        return self.spec.kubernetes_config.use_managed_identity

    def volume_mounts(self) -> str:
        if self._uses_managed_identity():
            return (
                "\n        - mountPath: /var/lib/waagent/"
                "\n          name: waagent"
                "\n          readOnly: true"
            )
        return ""

    def volumes(self) -> str:
        if self._uses_managed_identity():
            return "\n      - hostPath:\n          path: /var/lib/waagent/\n        name: waagent"
        return ""

    def host_network(self) -> str:
        if self._uses_managed_identity():
            return "\n      hostNetwork: true"
        return ""

    def cloud(self) -> str:
        return self.spec.cloud_name()

    def use_managed_identity(self) -> str:
        return "true" if self._uses_managed_identity() else "false"

    def template_functions(self) -> TemplateFunctions:
        functions = super().template_functions()
        functions.update(
            {
                "GetMode": self.mode,
                "GetClusterAutoscalerNodesConfig": self.nodes_config,
                "GetVMType": self.vm_type,
                "GetVolumeMounts": self.volume_mounts,
                "GetVolumes": self.volumes,
                "GetHostNetwork": self.host_network,
                "GetCloud": self.cloud,
                "UseManagedIdentity": self.use_managed_identity,
            }
        )
        return functions


ADDON_CONTEXTS: Mapping[AddonKind, Type[AddonTemplateContext]] = {
    AddonKind.STANDARD: AddonTemplateContext,
    AddonKind.CLUSTER_AUTOSCALER: ClusterAutoscalerTemplateContext,
}


def get_custom_data_file_path(source_file: str, source_path: str, version: str) -> str:
    return f"{source_path}/{version}/{source_file}"


def _addon_asset_name(
    assets: AssetStore, source_file: str, source_path: str, version: str
) -> str:
    # version specific assets win over the shared ones
    versioned = get_custom_data_file_path(source_file, source_path, version)
    if assets.exists(versioned):
        return versioned
    return f"{source_path}/{source_file}"


def _major_minor(orchestrator_version: str) -> str:
    parts = orchestrator_version.split(".")
    return ".".join(parts[:2])


def build_config_string(content: str, destination_file: str, destination_path: str) -> str:
    """One write_files entry, already escaped for embedding in an ARM string."""
    contents = [
        f"- path: {destination_path}/{destination_file}",
        '  permissions: \\"0644\\"',
        "  encoding: gzip",
        '  owner: \\"root\\"',
        "  content: !!binary |",
        f"    {content}\\n\\n",
    ]
    return "\\n".join(contents)


def get_addon_string(text: str, destination_path: str, destination_file: str) -> str:
    return build_config_string(
        get_base64_encoded_gzipped_custom_script_from_str(text),
        destination_file,
        destination_path,
    )


def render_addon(
    addon: KubernetesAddon,
    setting: AddonSetting,
    spec: ClusterSpecification,
    source_path: str,
    assets: AssetStore,
) -> str:
    """Return the manifest text of one enabled addon.

    Raises:
        InvalidAddonDataError: If the inline payload is not valid base64.
        TemplateAssetError: If the template asset is missing or fails to render.
        AddonContainerNotFoundError: If the template asks for an unknown container.
    """
    addon_name = addon.name
    inline_data = addon.data or setting.base64_data
    if inline_data:
        try:
            return get_string_from_base64(inline_data)
        except ValueError as exc:
            raise InvalidAddonDataError(addon_name, str(exc)) from exc

    version = _major_minor(spec.orchestrator_profile.orchestrator_version)
    asset_name = _addon_asset_name(assets, setting.source_file, source_path, version)
    context = ADDON_CONTEXTS[setting.kind](addon, spec)
    source = assets.read(asset_name)
    try:
        template = compile_template(source, context.template_functions())
        return template.render(addon=addon)
    except TemplateError as exc:
        raise TemplateAssetError(
            f"error rendering addon {addon_name} from {asset_name}: {exc}", asset_name
        ) from exc


def get_container_addons_string(
    spec: ClusterSpecification,
    source_path: str = ADDONS_SOURCE_PATH,
    settings: Mapping[str, AddonSetting] = DEFAULT_ADDON_SETTINGS,
    assets: Optional[AssetStore] = None,
) -> str:
    """Concatenated write_files entries for every enabled addon, sorted by name.

    Addons enabled in the specification but absent from `settings` are skipped.
    """
    assets = assets or AssetStore()
    kubernetes_config = spec.kubernetes_config
    rendered: List[str] = []
    for addon_name in sorted(settings):
        addon = kubernetes_config.get_addon_by_name(addon_name)
        if addon is None or not addon.enabled:
            continue
        logger.debug("Rendering addon %s", addon_name)
        text = render_addon(addon, settings[addon_name], spec, source_path, assets)
        rendered.append(
            get_addon_string(text, ADDONS_DESTINATION_PATH, settings[addon_name].destination_file)
        )
    return "".join(rendered)
