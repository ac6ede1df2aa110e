"""
clustergen/models/parameters.py

The ARM parameter contract consumed by the deployment layer:
  - KeyVaultID / KeyVaultReference: a deferred secret lookup
  - ParameterMap: ordered parameter name -> {"value": ...} | {"reference": ...}
"""

from __future__ import annotations

from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field

ParameterMap = Dict[str, Dict[str, Any]]


class KeyVaultID(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str


class KeyVaultReference(BaseModel):
    """A parameter value resolved by the deployment engine from a vault.

    Serialised with the ARM key names ('keyVault', 'secretName', 'secretVersion').
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    key_vault: KeyVaultID = Field(alias="keyVault")
    secret_name: str = Field(alias="secretName")
    secret_version: str = Field(default="", alias="secretVersion")


def dump_parameters(params: ParameterMap) -> Dict[str, Any]:
    """Convert a ParameterMap into plain JSON-serialisable data, keeping order."""

    def _dump_entry(entry: Dict[str, Any]) -> Dict[str, Any]:
        return {
            key: val.model_dump(by_alias=True) if isinstance(val, BaseModel) else val
            for key, val in entry.items()
        }

    return {name: _dump_entry(entry) for name, entry in params.items()}
