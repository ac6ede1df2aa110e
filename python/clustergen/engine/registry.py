"""
clustergen/engine/registry.py

An asynchronous client for the extension registry. Extension files live at:

  GET {root_url}extensions/{name}/{version}/{file_name}[?{query}]

For a linked template two files are read in sequence:
  1) supported-orchestrators.json, a JSON list of orchestrator names
  2) template-link.json, only if the orchestrator appears in (1)

Each call is a single attempt: no retries and no caching.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, List, Optional, Type

import aiohttp

from clustergen.engine.errors import ExtensionRegistryError
from clustergen.models.registry import RegistrySettings
from clustergen.models.validator import validate_type

logger = logging.getLogger(__name__)

SUPPORTED_ORCHESTRATORS_FILE = "supported-orchestrators.json"
TEMPLATE_LINK_FILE = "template-link.json"


def get_extension_url(
    root_url: str, extension_name: str, version: str, file_name: str, query: str
) -> str:
    """Build the registry URL of one extension file.

    `root_url` is expected to end with '/'.
    """
    url = f"{root_url}extensions/{extension_name}/{version}/{file_name}"
    if query:
        url += "?" + query
    return url


class ExtensionRegistryClient:
    """Fetches extension metadata from a registry root URL.

    Use as an async context manager, or call `close()` when done:

        async with ExtensionRegistryClient() as client:
            text = await client.get_linked_template_text_for_url(...)
    """

    def __init__(self, settings: Optional[RegistrySettings] = None) -> None:
        self._settings = settings or RegistrySettings()
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> ExtensionRegistryClient:
        await self.ensure_session()
        return self

    async def __aexit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[Any],
    ) -> None:
        await self.close()

    async def ensure_session(self) -> aiohttp.ClientSession:
        """Return the active aiohttp session, creating it if needed."""
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._settings.timeout_seconds)
            )
        return self._session

    async def close(self) -> None:
        if self._session is not None:
            await self._session.close()
        self._session = None

    async def get_extension_resource(
        self,
        root_url: str,
        extension_name: str,
        version: str,
        file_name: str,
        query: str = "",
    ) -> bytes:
        """GET one file of an extension.

        Returns:
            bytes: The response body.

        Raises:
            ExtensionRegistryError: On I/O failure or a non-200 status.
        """
        request_url = get_extension_url(root_url, extension_name, version, file_name, query)
        description = (
            f"Unable to GET extension resource for extension: {extension_name} "
            f"with version {version} with filename {file_name} at URL: {request_url}"
        )
        session = await self.ensure_session()
        logger.debug("GET %s", request_url)
        try:
            async with session.get(request_url, ssl=self._settings.verify_ssl) as resp:
                if resp.status != 200:
                    logger.warning("GET %s returned %d", request_url, resp.status)
                    raise ExtensionRegistryError(
                        f"{description} StatusCode: {resp.status}: Status: {resp.reason}",
                        extension_name=extension_name,
                        version=version,
                        file_name=file_name,
                        url=request_url,
                        status=resp.status,
                    )
                return await resp.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.warning("GET %s failed: %s", request_url, exc)
            raise ExtensionRegistryError(
                f"{description}: {exc}",
                extension_name=extension_name,
                version=version,
                file_name=file_name,
                url=request_url,
            ) from exc

    async def get_supported_orchestrators(
        self, root_url: str, extension_name: str, version: str, query: str = ""
    ) -> List[str]:
        body = await self.get_extension_resource(
            root_url, extension_name, version, SUPPORTED_ORCHESTRATORS_FILE, query
        )
        try:
            return validate_type(json.loads(body), List[str])
        except ValueError as exc:
            raise ExtensionRegistryError(
                f"Unable to parse {SUPPORTED_ORCHESTRATORS_FILE} for Extension "
                f"{extension_name} Version {version}",
                extension_name=extension_name,
                version=version,
                file_name=SUPPORTED_ORCHESTRATORS_FILE,
                url=get_extension_url(
                    root_url, extension_name, version, SUPPORTED_ORCHESTRATORS_FILE, query
                ),
            ) from exc

    async def orchestrator_supports_extension(
        self,
        root_url: str,
        orchestrator: str,
        extension_name: str,
        version: str,
        query: str = "",
    ) -> bool:
        """Check that `orchestrator` is listed in the extension's supported orchestrators.

        Raises:
            ExtensionRegistryError: If the list cannot be fetched or parsed.
        """
        supported = await self.get_supported_orchestrators(
            root_url, extension_name, version, query
        )
        return orchestrator in supported

    async def get_linked_template_text_for_url(
        self,
        root_url: str,
        orchestrator: str,
        extension_name: str,
        version: str,
        query: str = "",
    ) -> str:
        """Return the raw template-link.json text of an extension.

        Raises:
            ExtensionRegistryError: If the orchestrator is not supported by the
                extension, or either registry file cannot be fetched.
        """
        if not await self.orchestrator_supports_extension(
            root_url, orchestrator, extension_name, version, query
        ):
            raise ExtensionRegistryError(
                f"Extension not supported for orchestrator: Orchestrator: {orchestrator} "
                f"not in list of supported orchestrators for Extension: "
                f"{extension_name} Version {version}",
                extension_name=extension_name,
                version=version,
                file_name=SUPPORTED_ORCHESTRATORS_FILE,
            )

        body = await self.get_extension_resource(
            root_url, extension_name, version, TEMPLATE_LINK_FILE, query
        )
        try:
            return body.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ExtensionRegistryError(
                f"Unable to decode {TEMPLATE_LINK_FILE} for Extension "
                f"{extension_name} Version {version}: {exc}",
                extension_name=extension_name,
                version=version,
                file_name=TEMPLATE_LINK_FILE,
                url=get_extension_url(
                    root_url, extension_name, version, TEMPLATE_LINK_FILE, query
                ),
            ) from exc
