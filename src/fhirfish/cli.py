#!/usr/bin/env python3
"""fhirfish command line.

Resolve an identifier against FHIR packages and local resources and print
the matching definition (or its metadata) as JSON.
"""

import asyncio
import json
import sys
from typing import List, Optional, Tuple

import click

from fhirfish.config import get_settings
from fhirfish.fhirdefs import (
    FHIRDefinitions,
    FHIRPackageLoader,
    Type,
    get_local_resource_paths,
    load_dependencies,
    load_predefined_resources,
    load_supplemental_fhir_packages,
)
from fhirfish.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)

TYPE_CHOICES = [t.value for t in Type]


@click.group()
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"], case_sensitive=False),
    help="Override the configured log level",
)
def cli(log_level: Optional[str]) -> None:
    """Fish FHIR definitions out of packages and local resources."""
    setup_logging(level=log_level)


async def _load(
    defs: FHIRDefinitions, packages: List[str], supplemental: List[str]
) -> Tuple[int, int]:
    results = await load_dependencies(packages, defs)
    failed = sum(1 for r in results if not r.loaded)
    supplemental_results = await load_supplemental_fhir_packages(supplemental, defs)
    failed_supplemental = sum(1 for r in supplemental_results if not r.loaded)
    return failed, failed_supplemental


@cli.command()
@click.argument("item")
@click.option(
    "--type",
    "-t",
    "types",
    multiple=True,
    type=click.Choice(TYPE_CHOICES),
    help="Expected type (can be specified multiple times, in priority order)",
)
@click.option(
    "--package",
    "-p",
    "packages",
    multiple=True,
    help="Package to load as id#version (can be specified multiple times)",
)
@click.option(
    "--supplemental",
    "-s",
    multiple=True,
    help="Supplemental FHIR package as id#version (adds to the configured ones)",
)
@click.option(
    "--resource-dir",
    type=click.Path(file_okay=False, dir_okay=True),
    help="Folder containing predefined resource subfolders",
)
@click.option(
    "--project-dir",
    type=click.Path(file_okay=False, dir_okay=True),
    help="Project folder that path-resource parameters are relative to",
)
@click.option(
    "--path-resource",
    multiple=True,
    help="Extra predefined resource folder relative to the project folder",
)
@click.option(
    "--local-only", is_flag=True, help="Only search local predefined resources"
)
@click.option("--metadata", is_flag=True, help="Print metadata instead of the definition")
def fish(
    item: str,
    types: tuple,
    packages: tuple,
    supplemental: tuple,
    resource_dir: Optional[str],
    project_dir: Optional[str],
    path_resource: tuple,
    local_only: bool,
    metadata: bool,
) -> None:
    """Resolve ITEM (an id, name or canonical URL)."""
    settings = get_settings()
    defs = FHIRDefinitions(package_loader=FHIRPackageLoader())

    supplemental_packages = list(settings.supplemental_packages) + [
        p for p in supplemental if p not in settings.supplemental_packages
    ]
    failed, failed_supplemental = asyncio.run(
        _load(defs, list(packages), supplemental_packages)
    )
    if failed:
        click.echo(f"Warning: {failed} package(s) failed to load", err=True)
    if failed_supplemental:
        click.echo(
            f"Warning: {failed_supplemental} supplemental package(s) failed to load",
            err=True,
        )

    if resource_dir:
        parameters = [{"code": "path-resource", "value": p} for p in path_resource]
        paths = get_local_resource_paths(resource_dir, project_dir, parameters)
        load_predefined_resources(defs, paths)

    wanted = [Type(t) for t in types]
    logger.info("fishing", item=item, types=list(types), definitions=len(defs))
    if local_only:
        result = (
            defs.fish_for_predefined_resource_metadata(item, *wanted)
            if metadata
            else defs.fish_for_predefined_resource(item, *wanted)
        )
    else:
        result = (
            defs.fish_for_metadata(item, *wanted)
            if metadata
            else defs.fish_for_fhir(item, *wanted)
        )

    if result is None:
        click.echo(f"No definition found for {item}", err=True)
        sys.exit(1)

    payload = (
        result.model_dump(by_alias=True, exclude_none=True) if metadata else result
    )
    click.echo(json.dumps(payload, indent=2))


@cli.command("packages")
@click.argument("name")
@click.option("--package", "-p", "packages", multiple=True, help="Package to load")
def list_packages(name: str, packages: tuple) -> None:
    """List loaded packages named NAME."""
    defs = FHIRDefinitions(package_loader=FHIRPackageLoader())
    asyncio.run(load_dependencies(list(packages), defs))
    for info in defs.fish_for_package_infos(name):
        click.echo(f"{info.name}#{info.version}")


def main() -> None:
    """Console script entry point."""
    cli()


if __name__ == "__main__":
    main()
