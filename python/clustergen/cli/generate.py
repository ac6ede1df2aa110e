#!/usr/bin/env python3
"""
clustergen/cli/generate.py

CLI for generating deployment artifacts from a cluster specification:
  - parameters   ARM parameter map as JSON
  - customdata   a rendered custom data asset (single line or --raw)
  - addons       the addon write_files block
  - cloud-init   a #cloud-config document delivering bundled scripts
  - template     the top-level ARM template, linked extension templates included

Usage:
  python -m clustergen.cli.generate parameters --spec cluster.yaml
  python -m clustergen.cli.generate customdata --spec cluster.yaml \\
      --asset k8s/kubernetesagentcustomdata.yml --pool agentpool1 --raw
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Callable, Coroutine, List, Optional

from clustergen.engine.addons import get_container_addons_string
from clustergen.engine.assets import AssetStore
from clustergen.engine.customdata import build_yaml_file_with_write_files
from clustergen.engine.errors import (
    BundledAssetDefect,
    ConfigurationFault,
    GenerationError,
)
from clustergen.engine.registry import ExtensionRegistryClient
from clustergen.engine.template_generator import TemplateGenerator
from clustergen.models.cluster import ClusterSpecification
from clustergen.models.parameters import dump_parameters
from clustergen.models.registry import RegistrySettings
from clustergen.models.validator import load_cluster_specification


#
# Subcommand handlers
#
async def _run_parameters(args: argparse.Namespace) -> None:
    generator = _build_generator(args)
    print(json.dumps(dump_parameters(generator.get_parameters()), indent=2))


async def _run_customdata(args: argparse.Namespace) -> None:
    """
    Render one asset against the master profile, or an agent pool with --pool.
    """
    generator = _build_generator(args)
    profile: Any = generator.spec.master_profile
    if args.pool:
        profile = next(
            (p for p in generator.spec.agent_pool_profiles if p.name == args.pool), None
        )
        if profile is None:
            print(f"Error: no agent pool named '{args.pool}'", file=sys.stderr)
            sys.exit(1)

    try:
        if args.raw:
            text = generator.get_single_line(args.asset, profile)
        else:
            text = generator.get_single_line_for_template(args.asset, profile)
    except (ConfigurationFault, GenerationError) as exc:
        print(f"Error rendering '{args.asset}': {exc}", file=sys.stderr)
        sys.exit(1)
    sys.stdout.write(text)


async def _run_addons(args: argparse.Namespace) -> None:
    generator = _build_generator(args)
    try:
        text = get_container_addons_string(
            generator.spec, settings=generator.addon_settings, assets=generator.assets
        )
    except (ConfigurationFault, GenerationError) as exc:
        print(f"Error rendering addons: {exc}", file=sys.stderr)
        sys.exit(1)
    sys.stdout.write(text)


async def _run_cloud_init(args: argparse.Namespace) -> None:
    generator = _build_generator(args)
    try:
        text = build_yaml_file_with_write_files(
            args.files,
            generator.spec,
            generator.get_template_func_map(),
            generator.assets,
        )
    except (BundledAssetDefect, ConfigurationFault, GenerationError) as exc:
        print(f"Error building cloud-init: {exc}", file=sys.stderr)
        sys.exit(1)
    sys.stdout.write(text)


async def _run_template(args: argparse.Namespace) -> None:
    """
    Render the ARM template. Linked extension templates are fetched first.
    """
    generator = _build_generator(args)
    if not generator.validate_distro():
        print("Error: distro not supported by the orchestrator", file=sys.stderr)
        sys.exit(1)

    settings = RegistrySettings(
        timeout_seconds=args.timeout, verify_ssl=not args.no_verify_ssl
    )
    async with ExtensionRegistryClient(settings) as client:
        try:
            text = await generator.generate_template(client)
        except (ConfigurationFault, GenerationError) as exc:
            print(f"Error generating template: {exc}", file=sys.stderr)
            sys.exit(1)
    sys.stdout.write(text)


#
# Helpers
#
def _load_spec(path: str) -> ClusterSpecification:
    """
    Read and validate the cluster specification file. Exits with error on failure.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            return load_cluster_specification(f.read())
    except OSError as exc:
        print(f"Error reading '{path}': {exc}", file=sys.stderr)
        sys.exit(1)
    except ValueError as exc:
        print(f"Error: invalid cluster specification '{path}': {exc}", file=sys.stderr)
        sys.exit(1)


def _build_generator(args: argparse.Namespace) -> TemplateGenerator:
    return TemplateGenerator(_load_spec(args.spec), assets=AssetStore(args.asset_root))


def _add_common_args(subparser: argparse.ArgumentParser) -> None:
    subparser.add_argument(
        "--spec", required=True, help="Cluster specification file (YAML or JSON)."
    )
    subparser.add_argument(
        "--asset-root",
        default=None,
        help="Directory to read template assets from (default: the bundled assets).",
    )


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser(
        prog="clustergen.cli.generate",
        description="Generate ARM templates, parameters and cloud-init payloads.",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: WARNING).",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        required=True,
        help="Sub-command to run. Use -h/--help after a subcommand for more usage details.",
    )

    parameters_parser = subparsers.add_parser(
        "parameters", help="Print the ARM parameter map as JSON."
    )
    _add_common_args(parameters_parser)
    parameters_parser.set_defaults(func=_run_parameters)

    customdata_parser = subparsers.add_parser(
        "customdata", help="Render a custom data asset."
    )
    _add_common_args(customdata_parser)
    customdata_parser.add_argument(
        "--asset",
        required=True,
        help="Asset name, e.g. 'k8s/kubernetesmastercustomdata.yml'.",
    )
    customdata_parser.add_argument(
        "--pool", help="Render against this agent pool instead of the master."
    )
    customdata_parser.add_argument(
        "--raw",
        action="store_true",
        default=False,
        help="Print the rendered text instead of the ARM-escaped single line.",
    )
    customdata_parser.set_defaults(func=_run_customdata)

    addons_parser = subparsers.add_parser(
        "addons", help="Print the write_files entries of every enabled addon."
    )
    _add_common_args(addons_parser)
    addons_parser.set_defaults(func=_run_addons)

    cloud_init_parser = subparsers.add_parser(
        "cloud-init", help="Build a #cloud-config document from script assets."
    )
    _add_common_args(cloud_init_parser)
    cloud_init_parser.add_argument(
        "files", nargs="+", help="Script asset names, e.g. 'k8s/cloud-init/artifacts/provision.sh'."
    )
    cloud_init_parser.set_defaults(func=_run_cloud_init)

    template_parser = subparsers.add_parser(
        "template", help="Render the top-level ARM template."
    )
    _add_common_args(template_parser)
    template_parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="Deadline in seconds for each extension registry request (default: none).",
    )
    template_parser.add_argument(
        "--no-verify-ssl",
        action="store_true",
        default=False,
        help="Skip TLS verification when talking to the extension registry.",
    )
    template_parser.set_defaults(func=_run_template)

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    func: Callable[[argparse.Namespace], Coroutine[Any, Any, None]] = args.func
    asyncio.run(func(args))


if __name__ == "__main__":
    main()
