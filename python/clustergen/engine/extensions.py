"""
clustergen/engine/extensions.py

Builds what a VM needs to install a pre-provision extension:
  - Linux: cloud-init runcmd lines that download, chmod and run the script
  - Windows: a PowerShell one-liner doing the same
  - Linked ARM templates rolling an extension out over a pool of VMs

Linked templates are fetched from the extension registry and filled in by plain
text substitution of the tokens listed in LINKED_TEMPLATE_TOKENS.
"""

from __future__ import annotations

import logging
from typing import Dict, NamedTuple, Optional, Sequence, Tuple

from clustergen.engine.errors import ExtensionNotFoundError
from clustergen.engine.registry import ExtensionRegistryClient, get_extension_url
from clustergen.models.cluster import (
    AgentPoolProfile,
    ClusterSpecification,
    Extension,
    ExtensionProfile,
    OrchestratorType,
)

logger = logging.getLogger(__name__)

AZURE_STACK_CA_CERT_LOCATION = "/etc/ssl/certs/ca-certificates.crt"
LINUX_EXTENSIONS_DIR = "/opt/azure/containers/extensions"
WINDOWS_EXTENSIONS_DIR = "$env:SystemDrive:/AzureData/extensions"


class LinkedTemplateToken(NamedTuple):
    """One placeholder of a template-link.json document."""

    token: str
    meaning: str
    rule: str


# Substitution happens in this order. The quoted loop count token is listed
# before the bare one so that an integer loop count replaces the JSON string
# "EXTENSION_LOOP_COUNT" with a JSON number.
LINKED_TEMPLATE_TOKENS: Tuple[LinkedTemplateToken, ...] = (
    LinkedTemplateToken(
        "EXTENSION_TARGET_VM_TYPE",
        "kind of VM the extension targets",
        "'master' when the VM name prefix refers to the master, else 'agent'",
    ),
    LinkedTemplateToken(
        "EXTENSION_PARAMETERS_REPLACE",
        "the extension's ARM parameter block",
        "[parameters('<extension>Parameters')]",
    ),
    LinkedTemplateToken(
        "EXTENSION_URL_REPLACE",
        "registry root URL of the extension",
        "the extension profile's root_url",
    ),
    LinkedTemplateToken(
        "EXTENSION_TARGET_VM_NAME_PREFIX",
        "ARM expression for the target VM name prefix",
        "variables('masterVMNamePrefix') or variables('<pool>VMNamePrefix')",
    ),
    LinkedTemplateToken(
        '"EXTENSION_LOOP_COUNT"',
        "number of VMs to install on, as a literal integer",
        "the loop count, only when it is an integer",
    ),
    LinkedTemplateToken(
        "EXTENSION_LOOP_COUNT",
        "number of VMs to install on, as an ARM expression",
        "the loop count expression",
    ),
    LinkedTemplateToken(
        "EXTENSION_LOOP_OFFSET",
        "index of the first VM to install on",
        "offset variable for availability sets and Kubernetes masters, else ''",
    ),
)


def find_extension_profile(
    extension: Extension, extension_profiles: Sequence[ExtensionProfile]
) -> ExtensionProfile:
    """Resolve an Extension reference by case-insensitive name.

    Raises:
        ExtensionNotFoundError: If no profile carries the referenced name.
    """
    wanted = extension.name.casefold()
    for profile in extension_profiles:
        if profile.name.casefold() == wanted:
            return profile
    raise ExtensionNotFoundError(extension.name)


def _script_url(profile: ExtensionProfile) -> str:
    return get_extension_url(
        profile.root_url, profile.name, profile.version, profile.script, profile.url_query
    )


def make_extension_script_commands(
    extension: Extension,
    curl_ca_cert_opt: str,
    extension_profiles: Sequence[ExtensionProfile],
) -> str:
    """cloud-init runcmd lines installing a Linux pre-provision extension."""
    profile = find_extension_profile(extension, extension_profiles)
    parameters_reference = f"parameters('{profile.name}Parameters')"
    script_file_path = f"{LINUX_EXTENSIONS_DIR}/{profile.name}/{profile.script}"
    return (
        f"- sudo /usr/bin/curl --retry 5 --retry-delay 10 --retry-max-time 30 "
        f"-o {script_file_path} --create-dirs {curl_ca_cert_opt} \"{_script_url(profile)}\" \n"
        f"- sudo /bin/chmod 744 {script_file_path} \n"
        f"- sudo {script_file_path} ',{parameters_reference},' "
        f"> /var/log/{profile.name}-output.log"
    )


def make_windows_extension_script_commands(
    extension: Extension, extension_profiles: Sequence[ExtensionProfile]
) -> str:
    """PowerShell commands installing a Windows pre-provision extension."""
    profile = find_extension_profile(extension, extension_profiles)
    script_file_dir = f"{WINDOWS_EXTENSIONS_DIR}/{profile.name}"
    script_file_path = f"{script_file_dir}/{profile.script}"
    return (
        f"New-Item -ItemType Directory -Force -Path \"{script_file_dir}\" ; "
        f"Invoke-WebRequest -Uri \"{_script_url(profile)}\" -OutFile \"{script_file_path}\" ; "
        f"powershell \"{script_file_path} `\"',parameters('{profile.name}Parameters'),'`\"\"\n"
    )


def _curl_ca_cert_opt(spec: ClusterSpecification) -> str:
    if spec.is_azure_stack_cloud():
        return f"--cacert {AZURE_STACK_CA_CERT_LOCATION}"
    return ""


def make_master_extension_script_commands(spec: ClusterSpecification) -> str:
    extension = spec.master_profile.preprovision_extension
    if extension is None:
        return ""
    return make_extension_script_commands(
        extension, _curl_ca_cert_opt(spec), spec.extension_profiles
    )


def make_agent_extension_script_commands(
    spec: ClusterSpecification, profile: AgentPoolProfile
) -> str:
    extension = profile.preprovision_extension
    if extension is None:
        return ""
    if profile.is_windows():
        return make_windows_extension_script_commands(extension, spec.extension_profiles)
    return make_extension_script_commands(
        extension, _curl_ca_cert_opt(spec), spec.extension_profiles
    )


def validate_profile_opted_for_extension(
    extension_name: str, profile_extensions: Sequence[Extension]
) -> Tuple[bool, str]:
    """Return (opted in, single_or_all) for a profile's extension list."""
    for extension in profile_extensions:
        if extension.name == extension_name:
            return True, extension.single_or_all
    return False, ""


def _is_integer(value: str) -> bool:
    try:
        int(value)
    except ValueError:
        return False
    return True


def substitute_linked_template_tokens(
    template_text: str,
    *,
    target_vm_name_prefix: str,
    loop_count: str,
    loop_offset: str,
    extension_profile: ExtensionProfile,
) -> str:
    """Fill the LINKED_TEMPLATE_TOKENS placeholders of a template-link.json text."""
    target_vm_type = "master" if "master" in target_vm_name_prefix else "agent"
    values: Dict[str, Optional[str]] = {
        "EXTENSION_TARGET_VM_TYPE": target_vm_type,
        "EXTENSION_PARAMETERS_REPLACE": f"[parameters('{extension_profile.name}Parameters')]",
        "EXTENSION_URL_REPLACE": extension_profile.root_url,
        "EXTENSION_TARGET_VM_NAME_PREFIX": target_vm_name_prefix,
        '"EXTENSION_LOOP_COUNT"': loop_count if _is_integer(loop_count) else None,
        "EXTENSION_LOOP_COUNT": loop_count,
        "EXTENSION_LOOP_OFFSET": loop_offset,
    }
    for entry in LINKED_TEMPLATE_TOKENS:
        replacement = values[entry.token]
        if replacement is not None:
            template_text = template_text.replace(entry.token, replacement)
    return template_text


async def _pool_linked_template_text(
    client: ExtensionRegistryClient,
    orchestrator_type: str,
    extension_profile: ExtensionProfile,
    *,
    target_vm_name_prefix: str,
    loop_count: str,
    loop_offset: str,
) -> str:
    template_text = await client.get_linked_template_text_for_url(
        extension_profile.root_url,
        orchestrator_type,
        extension_profile.name,
        extension_profile.version,
        extension_profile.url_query,
    )
    return substitute_linked_template_tokens(
        template_text,
        target_vm_name_prefix=target_vm_name_prefix,
        loop_count=loop_count,
        loop_offset=loop_offset,
        extension_profile=extension_profile,
    )


async def get_master_linked_template_text(
    client: ExtensionRegistryClient,
    orchestrator_type: str,
    extension_profile: ExtensionProfile,
    single_or_all: str,
) -> str:
    """Linked template installing an extension on the master VMs.

    Kubernetes upgrades may reinstall only part of the masters, so Kubernetes
    masters loop from the 'masterOffset' variable.
    """
    loop_count = "[variables('masterCount')]"
    loop_offset = ""
    if orchestrator_type == OrchestratorType.KUBERNETES.value:
        loop_count = "[sub(variables('masterCount'), variables('masterOffset'))]"
        loop_offset = "variables('masterOffset')"

    if single_or_all.lower() == "single":
        loop_count = "1"

    return await _pool_linked_template_text(
        client,
        orchestrator_type,
        extension_profile,
        target_vm_name_prefix="variables('masterVMNamePrefix')",
        loop_count=loop_count,
        loop_offset=loop_offset,
    )


async def get_agent_pool_linked_template_text(
    client: ExtensionRegistryClient,
    agent_pool_profile: AgentPoolProfile,
    orchestrator_type: str,
    extension_profile: ExtensionProfile,
    single_or_all: str,
) -> str:
    """Linked template installing an extension on the VMs of one agent pool.

    Availability set VMs are never redeployed, so scale up starts at the pool
    offset and does not rerun the extension on existing VMs. Scale sets have no
    offset.
    """
    name = agent_pool_profile.name
    loop_count = f"[variables('{name}Count')]"
    loop_offset = ""
    if agent_pool_profile.is_availability_sets():
        loop_count = f"[sub(variables('{name}Count'), variables('{name}Offset'))]"
        loop_offset = f"variables('{name}Offset')"

    if single_or_all.lower() == "single":
        loop_count = "1"

    return await _pool_linked_template_text(
        client,
        orchestrator_type,
        extension_profile,
        target_vm_name_prefix=f"variables('{name}VMNamePrefix')",
        loop_count=loop_count,
        loop_offset=loop_offset,
    )


async def get_linked_templates_for_extensions(
    spec: ClusterSpecification, client: ExtensionRegistryClient
) -> str:
    """All linked extension templates of a cluster, each preceded by a comma.

    Iterates extension profiles in order; for each one, the master first and
    then every opted-in agent pool.

    Raises:
        ExtensionRegistryError: If any registry read fails.
    """
    orchestrator_type = spec.orchestrator_profile.orchestrator_type.value
    result = ""
    for extension_profile in spec.extension_profiles:
        opted_in, single_or_all = validate_profile_opted_for_extension(
            extension_profile.name, spec.master_profile.extensions
        )
        if opted_in:
            logger.debug("Adding master linked template for %s", extension_profile.name)
            result += ","
            result += await get_master_linked_template_text(
                client, orchestrator_type, extension_profile, single_or_all
            )

        for pool in spec.agent_pool_profiles:
            opted_in, single_or_all = validate_profile_opted_for_extension(
                extension_profile.name, pool.extensions
            )
            if opted_in:
                logger.debug(
                    "Adding %s linked template for %s", pool.name, extension_profile.name
                )
                result += ","
                result += await get_agent_pool_linked_template_text(
                    client, pool, orchestrator_type, extension_profile, single_or_all
                )
    return result
