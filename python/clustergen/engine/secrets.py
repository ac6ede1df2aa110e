"""
clustergen/engine/secrets.py

Decides how a parameter is emitted into a ParameterMap: as a literal value,
as a base64-encoded literal, or as a KeyVault reference when the value is a
KeyVault secret path:

  /subscriptions/<sub>/resourceGroups/<rg>/providers/Microsoft.KeyVault/vaults/<vault>/secrets/<name>[/<version>]
"""

from __future__ import annotations

import base64
import re
from typing import Any

from clustergen.models.parameters import KeyVaultID, KeyVaultReference, ParameterMap

# compiled once, only ever used for read-only matching. Always fullmatch:
# "$" alone would also match before a trailing newline.
KEYVAULT_SECRET_PATH_RE = re.compile(
    r"^(/subscriptions/\S+/resourceGroups/\S+/providers/Microsoft.KeyVault/vaults/\S+)"
    r"/secrets/([^/\s]+)(/(\S+))?$"
)


def add_value(params: ParameterMap, key: str, value: Any) -> None:
    params[key] = {"value": value}


def add_keyvault_reference(
    params: ParameterMap,
    key: str,
    vault_id: str,
    secret_name: str,
    secret_version: str,
) -> None:
    params[key] = {
        "reference": KeyVaultReference(
            key_vault=KeyVaultID(id=vault_id),
            secret_name=secret_name,
            secret_version=secret_version,
        )
    }


def add_secret(params: ParameterMap, key: str, value: Any, encode: bool) -> None:
    """Add a parameter that may hold a secret.

    Args:
        params: The map to add to.
        key: Parameter name.
        value: Raw value. Non-strings are added as-is.
        encode: Base64-encode literal string values.

    A string matching the KeyVault secret path pattern becomes a reference
    (secret version "" when the path has none). Anything else, including a
    malformed vault path, becomes a literal value.
    """
    if not isinstance(value, str):
        add_value(params, key, value)
        return

    match = KEYVAULT_SECRET_PATH_RE.fullmatch(value)
    if match is None:
        if encode:
            add_value(params, key, base64.b64encode(value.encode("utf-8")).decode("ascii"))
        else:
            add_value(params, key, value)
        return

    add_keyvault_reference(params, key, match.group(1), match.group(2), match.group(4) or "")
