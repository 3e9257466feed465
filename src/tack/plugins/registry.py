"""Remote registry tier: reference construction and OCI artifact download.

Plugins published to a registry are addressed by OCI references such as
``ghcr.io/reglet-dev/reglet-plugins/dns:1.2.0``. Users rarely type those in
full; :func:`resolve_reference` expands the short forms ``dns`` and
``dns@1.2.0`` against the configured default registry.

:class:`OCIRegistryResolver` speaks just enough of the OCI distribution API
to pull the single-layer artifacts plugins are published as: fetch the
manifest (negotiating an anonymous bearer token on ``401``), download the
first layer, verify its digest, and store it in the local plugin directory
as ``<name>@<version>.wasm`` where the local tier will find it from then on.
Signature verification is left to the registry operator's tooling.
"""

from __future__ import annotations

import hashlib
import logging
import os
import re
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import httpx

from tack.exceptions import RegistryFetchError

logger = logging.getLogger(__name__)

_MANIFEST_ACCEPT = ", ".join(
    [
        "application/vnd.oci.image.manifest.v1+json",
        "application/vnd.docker.distribution.manifest.v2+json",
    ]
)
_CHALLENGE_PARAM = re.compile(r'(\w+)="([^"]*)"')


def parse_name_version(name: str) -> tuple[str, str]:
    """Split ``name@version`` into its parts, defaulting the version to ``latest``."""
    base, sep, version = name.partition("@")
    if not sep or not version:
        return base, "latest"
    return base, version


def resolve_reference(name: str, default_registry: str) -> str:
    """Build the OCI reference for a plugin name.

    A name containing ``/`` is already fully qualified and is returned
    unchanged. Anything else is expanded to
    ``<default_registry>/<name>:<version>``.

    Example::

        >>> resolve_reference("dns@1.2.0", "ghcr.io/acme/plugins")
        'ghcr.io/acme/plugins/dns:1.2.0'
    """
    if "/" in name:
        return name
    base, version = parse_name_version(name)
    return f"{default_registry.rstrip('/')}/{base}:{version}"


def split_reference(reference: str) -> tuple[str, str, str]:
    """Split an OCI reference into ``(registry_host, repository, tag_or_digest)``.

    Raises:
        RegistryFetchError: If *reference* has no registry host or repository.
    """
    host, sep, remainder = reference.partition("/")
    if not sep or not remainder:
        raise RegistryFetchError(f"Invalid registry reference '{reference}'")
    if "@" in remainder:
        repository, _, tag = remainder.partition("@")
    else:
        last = remainder.rsplit("/", 1)[-1]
        if ":" in last:
            repository, _, tag = remainder.rpartition(":")
        else:
            repository, tag = remainder, "latest"
    return host, repository, tag


class RegistryResolver(ABC):
    """Fetches a plugin from a remote registry into the local plugin directory."""

    @abstractmethod
    def fetch(self, reference: str, timeout: Optional[float] = None) -> Path:
        """Download *reference* and return the path of the stored ``.wasm`` file.

        Raises:
            RegistryFetchError: On any transport or protocol failure.
        """
        ...


class OCIRegistryResolver(RegistryResolver):
    """Pulls plugin artifacts over the OCI distribution HTTP API.

    Args:
        plugins_dir: Local plugin directory the artifact is written to.
        timeout: Default per-request timeout in seconds.
        transport: Optional :mod:`httpx` transport, used by tests to serve
            canned responses.
    """

    def __init__(
        self,
        plugins_dir: Path,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._plugins_dir = plugins_dir
        self._timeout = timeout
        self._transport = transport

    def fetch(self, reference: str, timeout: Optional[float] = None) -> Path:
        host, repository, tag = split_reference(reference)
        base_url = f"https://{host}/v2/{repository}"
        logger.info("Pulling %s", reference)

        try:
            with httpx.Client(
                timeout=timeout if timeout is not None else self._timeout,
                follow_redirects=True,
                transport=self._transport,
            ) as client:
                headers = {"Accept": _MANIFEST_ACCEPT}
                response = client.get(f"{base_url}/manifests/{tag}", headers=headers)
                if response.status_code == 401:
                    token = self._anonymous_token(client, response)
                    headers["Authorization"] = f"Bearer {token}"
                    response = client.get(
                        f"{base_url}/manifests/{tag}", headers=headers
                    )
                response.raise_for_status()

                layers = response.json().get("layers") or []
                if not layers:
                    raise RegistryFetchError(f"{reference} has no layers")
                digest = layers[0]["digest"]

                headers.pop("Accept")
                blob = client.get(f"{base_url}/blobs/{digest}", headers=headers)
                blob.raise_for_status()
                data = blob.content
        except httpx.HTTPStatusError as exc:
            raise RegistryFetchError(
                f"HTTP {exc.response.status_code} fetching {reference}"
            ) from exc
        except httpx.RequestError as exc:
            raise RegistryFetchError(f"Failed to fetch {reference}: {exc}") from exc
        except (ValueError, KeyError, TypeError) as exc:
            raise RegistryFetchError(
                f"Unexpected manifest for {reference}: {exc}"
            ) from exc

        _verify_digest(digest, data, reference)
        version = tag.replace(":", "-") if tag.startswith("sha256:") else tag
        name = repository.rsplit("/", 1)[-1]
        return _store(self._plugins_dir / f"{name}@{version}.wasm", data)

    def _anonymous_token(self, client: httpx.Client, challenge: httpx.Response) -> str:
        header = challenge.headers.get("www-authenticate", "")
        scheme, _, params_text = header.partition(" ")
        if scheme.lower() != "bearer":
            raise RegistryFetchError(f"Unsupported registry auth scheme '{scheme}'")
        params = dict(_CHALLENGE_PARAM.findall(params_text))
        realm = params.pop("realm", None)
        if not realm:
            raise RegistryFetchError("Registry auth challenge has no realm")
        response = client.get(realm, params=params)
        response.raise_for_status()
        body = response.json()
        token = body.get("token") or body.get("access_token")
        if not token:
            raise RegistryFetchError("Registry did not issue a token")
        return token


def _verify_digest(digest: str, data: bytes, reference: str) -> None:
    algorithm, _, expected = digest.partition(":")
    if algorithm != "sha256":
        logger.debug("Skipping verification of %s digest for %s", algorithm, reference)
        return
    actual = hashlib.sha256(data).hexdigest()
    if actual != expected:
        raise RegistryFetchError(
            f"Digest mismatch for {reference}: expected {expected}, got {actual}"
        )


def _store(path: Path, data: bytes) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise
    return path
