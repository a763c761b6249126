"""FHIR package loading.

Packages are read from the local FHIR package cache, which uses the same
layout as the HL7 IG Publisher (``{cache}/{packageId}#{version}/package``).
Packages missing from the cache are downloaded from the package registry.
"""

import asyncio
import io
import json
import shutil
import tarfile
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, Any, List, Optional, Protocol, Tuple

import httpx

from fhirfish.config import get_settings
from fhirfish.core.exceptions import NetworkError, PackageLoadError
from fhirfish.fhirdefs.metadata import PackageInfo
from fhirfish.fhirdefs.types import FHIRJson
from fhirfish.utils.logging import get_logger
from fhirfish.utils.retry import retry_with_backoff

if TYPE_CHECKING:
    from fhirfish.fhirdefs.definitions import FHIRDefinitions

logger = get_logger(__name__)

LATEST = "latest"


class PackageLoader(Protocol):
    """Merges a FHIR package into a definitions store."""

    async def merge_dependency(
        self, package_id: str, version: str, target: "FHIRDefinitions"
    ) -> "FHIRDefinitions":
        """Load package_id#version into target and return target."""


class FHIRPackageLoader:
    """Package loader backed by the local cache and the package registry."""

    def __init__(
        self,
        cache_dir: Optional[str] = None,
        registry_url: Optional[str] = None,
        timeout: Optional[int] = None,
        max_retries: Optional[int] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the loader.

        Args:
            cache_dir: FHIR package cache; defaults to the configured one
            registry_url: Package registry base URL
            timeout: Download timeout in seconds
            max_retries: Retries for transient network failures
            client: HTTP client to use instead of creating one per download
        """
        settings = get_settings()
        self.cache_dir = Path(cache_dir or settings.fhir_cache_dir)
        self.registry_url = (registry_url or settings.registry_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.download_timeout
        self.max_retries = (
            max_retries if max_retries is not None else settings.download_retries
        )
        self._client = client

    def package_dir(self, package_id: str, version: str) -> Path:
        """Cache directory holding the contents of package_id#version."""
        return self.cache_dir / f"{package_id}#{version}" / "package"

    async def merge_dependency(
        self, package_id: str, version: str, target: "FHIRDefinitions"
    ) -> "FHIRDefinitions":
        """Load a package into target, downloading it first if needed.

        Raises:
            PackageLoadError: If the package cannot be downloaded or read
        """
        if version == LATEST:
            version = await self.resolve_latest_version(package_id)

        key = f"{package_id}#{version}"
        package_dir = self.package_dir(package_id, version)
        if not package_dir.is_dir():
            logger.info("package_not_cached", fhir_package=key)
            await self.download(package_id, version)

        package, resources = await asyncio.to_thread(
            read_package, package_id, version, package_dir
        )
        target.add_package(package)
        for resource_path, resource in resources:
            target.add(resource, package=package, resource_path=resource_path)

        logger.info("package_loaded", fhir_package=key, resources=len(resources))
        return target

    async def resolve_latest_version(self, package_id: str) -> str:
        """Ask the registry for the latest published version of a package."""
        response = await self._get(f"{self.registry_url}/{package_id}")
        try:
            return response.json()["dist-tags"][LATEST]
        except (ValueError, KeyError) as e:
            raise PackageLoadError(
                f"{package_id}#{LATEST}", "registry did not report a latest version"
            ) from e

    async def download(self, package_id: str, version: str) -> Path:
        """Download and unpack package_id#version into the cache."""
        key = f"{package_id}#{version}"
        response = await self._get(f"{self.registry_url}/{package_id}/{version}")
        logger.info("package_downloaded", fhir_package=key, size=len(response.content))
        await asyncio.to_thread(self._unpack, key, response.content)
        return self.package_dir(package_id, version)

    async def _get(self, url: str) -> httpx.Response:
        fetch = retry_with_backoff(
            max_retries=self.max_retries,
            exceptions=(NetworkError,),
        )(self._fetch)
        try:
            response = await fetch(url)
        except NetworkError as e:
            raise PackageLoadError(url, str(e)) from e

        if response.status_code == 404:
            raise PackageLoadError(url, "not found in the package registry")
        if response.status_code != 200:
            raise PackageLoadError(
                url, f"registry responded with status {response.status_code}"
            )
        return response

    async def _fetch(self, url: str) -> httpx.Response:
        try:
            if self._client is not None:
                return await self._client.get(url, follow_redirects=True)
            async with httpx.AsyncClient(timeout=httpx.Timeout(self.timeout)) as client:
                return await client.get(url, follow_redirects=True)
        except httpx.RequestError as e:
            raise NetworkError(f"Failed to reach {url}: {e}") from e

    def _unpack(self, key: str, content: bytes) -> None:
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        destination = self.cache_dir / key
        staging = Path(tempfile.mkdtemp(dir=self.cache_dir, prefix=".download-"))
        try:
            with tarfile.open(fileobj=io.BytesIO(content), mode="r:gz") as tar:
                tar.extractall(staging, filter="data")
            if not (staging / "package").is_dir():
                raise PackageLoadError(key, "tarball has no package folder")
            if destination.exists():
                shutil.rmtree(destination)
            staging.rename(destination)
        except tarfile.TarError as e:
            raise PackageLoadError(key, f"invalid package tarball: {e}") from e
        finally:
            if staging.exists():
                shutil.rmtree(staging, ignore_errors=True)


def read_package(
    package_id: str, version: str, package_dir: Path
) -> Tuple[PackageInfo, List[Tuple[str, FHIRJson]]]:
    """Read a package manifest and its top-level resources.

    Raises:
        PackageLoadError: If the folder or its package.json is missing
    """
    key = f"{package_id}#{version}"
    manifest_path = package_dir / "package.json"
    if not manifest_path.is_file():
        raise PackageLoadError(key, f"no package.json in {package_dir}")
    manifest = _read_json(manifest_path)
    if not isinstance(manifest, dict):
        raise PackageLoadError(key, "package.json is not valid JSON")

    package = PackageInfo(
        name=manifest.get("name", package_id),
        version=manifest.get("version", version),
        package_json=manifest,
        package_path=str(package_dir),
    )
    resources = []
    for path in sorted(package_dir.glob("*.json")):
        if path.name == "package.json" or path.name.startswith("."):
            continue
        resource = _read_json(path)
        if isinstance(resource, dict) and resource.get("resourceType"):
            resources.append((str(path), resource))
    return package, resources


def _read_json(path: Path) -> Optional[Any]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.warning("json_file_unreadable", path=str(path), error=str(e))
        return None


__all__ = ["FHIRPackageLoader", "PackageLoader", "read_package"]
