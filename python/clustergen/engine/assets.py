"""
clustergen/engine/assets.py

Read-only access to the template assets bundled under clustergen/parts.
Asset names are '/'-separated paths relative to the asset root, e.g.
'k8s/addons/1.15/kubernetesmasteraddons-tiller-deployment.yaml'.
"""

from __future__ import annotations

import os
from typing import Any, Callable, Mapping, Optional

from jinja2 import Environment, StrictUndefined, Template

from clustergen.engine.errors import TemplateAssetError

DEFAULT_ASSET_ROOT = os.path.join(os.path.dirname(os.path.dirname(__file__)), "parts")


class AssetStore:
    """Looks up template assets below a root directory."""

    def __init__(self, root: Optional[str] = None) -> None:
        self.root = root or DEFAULT_ASSET_ROOT

    def _path(self, name: str) -> str:
        return os.path.join(self.root, *name.split("/"))

    def exists(self, name: str) -> bool:
        return os.path.isfile(self._path(name))

    def read(self, name: str) -> str:
        """Return the text of an asset.

        Raises:
            TemplateAssetError: If the asset does not exist or cannot be read.
        """
        try:
            with open(self._path(name), "r", encoding="utf-8", newline="") as f:
                return f.read()
        except OSError as exc:
            raise TemplateAssetError(f"asset {name} does not exist: {exc}", name) from exc


def compile_template(source: str, functions: Mapping[str, Callable[..., Any]]) -> Template:
    """Compile asset text into a Jinja2 template exposing `functions` as globals.

    Undefined names raise at render time instead of rendering as ''.

    Raises:
        jinja2.TemplateSyntaxError: If the text is not a valid template.
    """
    env = Environment(undefined=StrictUndefined, keep_trailing_newline=True)
    env.globals.update(functions)
    return env.from_string(source)
