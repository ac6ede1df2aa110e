"""
clustergen/engine/errors.py

Exceptions raised by the generators.

Two families:
  - ConfigurationFault: the specification itself is inconsistent (an extension,
    addon container or address that was never defined). Generation aborts.
  - GenerationError: reading a template asset, rendering it, or calling the
    extension registry failed. The caller may retry the whole generation.

BundledAssetDefect marks a script shipped with the package that fails to render;
it is a bug in the package, not in the input.
"""

from __future__ import annotations

from typing import Optional


class ConfigurationFault(Exception):
    """The cluster specification references something it never defined."""


class ExtensionNotFoundError(ConfigurationFault):
    """An Extension reference has no matching ExtensionProfile.

    Attributes:
        extension_name (str): Name of the unresolved extension.
    """

    def __init__(self, extension_name: str) -> None:
        super().__init__(
            f"{extension_name} extension referenced was not found in the extension profile"
        )
        self.extension_name = extension_name


class AddonContainerNotFoundError(ConfigurationFault):
    """An addon template asked for a container the addon does not define."""

    def __init__(self, addon_name: str, container_name: str) -> None:
        super().__init__(
            f"container {container_name!r} is not defined for addon {addon_name!r}"
        )
        self.addon_name = addon_name
        self.container_name = container_name


class InvalidAddonDataError(ConfigurationFault):
    """An addon's inline manifest payload is not valid base64 text."""

    def __init__(self, addon_name: str, reason: str) -> None:
        super().__init__(f"addon {addon_name!r} has invalid inline data: {reason}")
        self.addon_name = addon_name


class InvalidAddressError(ConfigurationFault):
    """A static IP range cannot be generated from the given address."""

    def __init__(self, message: str, address: str) -> None:
        super().__init__(message)
        self.address = address


class GenerationError(Exception):
    """A recoverable failure while producing an artifact."""


class TemplateAssetError(GenerationError):
    """A template asset is missing or fails to parse or render.

    Attributes:
        file_name (str): The asset the error originates from.
    """

    def __init__(self, message: str, file_name: str) -> None:
        super().__init__(message)
        self.file_name = file_name


class ExtensionRegistryError(GenerationError):
    """A registry resource could not be fetched or understood.

    Attributes:
        extension_name (str): Extension being fetched.
        version (str): Extension version.
        file_name (Optional[str]): Registry file, if the failure concerns one.
        url (Optional[str]): Request URL, if one was issued.
        status (Optional[int]): HTTP status for non-200 responses.
    """

    def __init__(
        self,
        message: str,
        *,
        extension_name: str,
        version: str,
        file_name: Optional[str] = None,
        url: Optional[str] = None,
        status: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.extension_name = extension_name
        self.version = version
        self.file_name = file_name
        self.url = url
        self.status = status


class BundledAssetDefect(Exception):
    """A script asset shipped with the package could not be rendered."""

    def __init__(self, file_name: str, reason: str) -> None:
        super().__init__(f"BUG: bundled asset {file_name}: {reason}")
        self.file_name = file_name
