"""
clustergen/engine/customdata.py

Custom data helpers:
  - escape_single_line: make rendered text embeddable in a JSON string literal
  - gzip + base64 encoding of scripts, and the reverse base64 decoding
  - build_yaml_file_with_write_files: a #cloud-config document delivering
    compressed scripts to /opt/azure/containers

Scripts rendered here are bundled with the package, so a failure to render or
compress one is a packaging bug and raises BundledAssetDefect.
"""

from __future__ import annotations

import base64
import binascii
import gzip
import posixpath
from typing import Any, Callable, Mapping, Sequence

from jinja2 import TemplateError

from clustergen.engine.assets import AssetStore, compile_template
from clustergen.engine.errors import BundledAssetDefect, TemplateAssetError
from clustergen.models.cluster import ClusterSpecification

CONTAINERS_DIR = "/opt/azure/containers"

_CLOUD_CONFIG = """#cloud-config

write_files:
{files}
"""

_WRITE_FILE_BLOCK = """ -  encoding: gzip
    content: !!binary |
        {content}
    path: {containers_dir}/{path}
    permissions: "0744"
"""


def escape_single_line(text: str) -> str:
    """Escape text for a JSON string literal inside a pretty-printed ARM template."""
    text = text.replace("\\", "\\\\")
    text = text.replace("\r\n", "\\n")
    text = text.replace("\n", "\\n")
    return text.replace('"', '\\"')


def get_base64_encoded_gzipped_custom_script_from_str(text: str) -> str:
    """Gzip (zero mtime, so output is reproducible) then base64-encode text."""
    compressed = gzip.compress(text.encode("utf-8"), mtime=0)
    return base64.b64encode(compressed).decode("ascii")


def get_string_from_base64(text: str) -> str:
    """Decode standard base64 into UTF-8 text.

    Raises:
        ValueError: If the input is not valid base64 or not UTF-8.
    """
    try:
        return base64.b64decode(text, validate=True).decode("utf-8")
    except binascii.Error as exc:
        raise ValueError(f"invalid base64 data: {exc}") from exc


def get_base64_encoded_gzipped_custom_script(
    cs_filename: str,
    spec: ClusterSpecification,
    functions: Mapping[str, Callable[..., Any]],
    assets: AssetStore,
) -> str:
    """Render a bundled script against the specification, then gzip + base64 it.

    Line endings are normalised to LF before compression.

    Raises:
        BundledAssetDefect: If the asset is missing or fails to render.
    """
    try:
        source = assets.read(cs_filename)
        rendered = compile_template(source, functions).render(cs=spec)
    except (TemplateError, TemplateAssetError) as exc:
        raise BundledAssetDefect(cs_filename, str(exc)) from exc
    return get_base64_encoded_gzipped_custom_script_from_str(rendered.replace("\r\n", "\n"))


def build_yaml_file_with_write_files(
    files: Sequence[str],
    spec: ClusterSpecification,
    functions: Mapping[str, Callable[..., Any]],
    assets: AssetStore,
) -> str:
    """A #cloud-config document writing each script under /opt/azure/containers.

    Each script keeps its base name and is delivered gzip + base64 encoded
    with permissions 0744.
    """
    file_lines = "".join(
        _WRITE_FILE_BLOCK.format(
            content=get_base64_encoded_gzipped_custom_script(name, spec, functions, assets),
            containers_dir=CONTAINERS_DIR,
            path=posixpath.basename(name),
        )
        for name in files
    )
    return _CLOUD_CONFIG.format(files=file_lines)
