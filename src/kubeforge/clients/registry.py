#!/usr/bin/env python3
"""
KUBEFORGE REGISTRY CLIENT
-------------------------
A minimal Docker Registry v2 client: tag listing and image inspection
(manifest, then config blob). Bearer-token challenges are answered with
credentials from a credential store.

Author: KubeForge Team
Date: 2026-10-18
"""

import logging
import re
from typing import Dict, List, Optional

import httpx

from kubeforge.core.errors import ClientError, ImageNotFound
from kubeforge.core.models import ImageMetadata
from kubeforge.core.reference import DOCKER_HUB_ALIASES, ImageReference
from kubeforge.search.credentials import NoCredentials

logger = logging.getLogger("kubeforge.clients.registry")

DOCKER_HUB_API_HOST = "registry-1.docker.io"

MANIFEST_V2 = "application/vnd.docker.distribution.manifest.v2+json"
OCI_MANIFEST = "application/vnd.oci.image.manifest.v1+json"
MANIFEST_LIST = "application/vnd.docker.distribution.manifest.list.v2+json"
OCI_INDEX = "application/vnd.oci.image.index.v1+json"

_CHALLENGE_PARAM_RE = re.compile(r'(\w+)="([^"]*)"')


def parse_challenge(header: str) -> Dict[str, str]:
    """Parses `Bearer realm="...",service="...",scope="..."`."""
    scheme, _, params = header.partition(" ")
    if scheme.lower() != "bearer":
        return {}
    return dict(_CHALLENGE_PARAM_RE.findall(params))


class RegistryClient:
    """
    Talks to Docker Registry v2 endpoints.

    `http_client` may be injected (e.g. an httpx.Client over a
    MockTransport); otherwise one is created with the given timeout.
    """

    def __init__(self, credentials=None, timeout: float = 10.0,
                 insecure: bool = False, http_client: Optional[httpx.Client] = None):
        self.credentials = credentials or NoCredentials()
        self.timeout = timeout
        self.insecure = insecure
        self._http = http_client or httpx.Client(timeout=timeout, follow_redirects=True)
        self._tokens: Dict[str, str] = {}

    def close(self) -> None:
        self._http.close()

    def _base_url(self, ref: ImageReference) -> str:
        registry = ref.docker_client_defaults().registry
        if registry in DOCKER_HUB_ALIASES:
            registry = DOCKER_HUB_API_HOST
        scheme = "http" if self.insecure else "https"
        return f"{scheme}://{registry}/v2"

    def _fetch_token(self, challenge: Dict[str, str]) -> str:
        realm = challenge.get("realm")
        if not realm:
            raise ClientError("registry auth challenge carries no realm")
        params = {k: v for k, v in challenge.items() if k in ("service", "scope")}
        username, password = self.credentials.basic(realm)
        auth = (username, password) if username or password else None
        try:
            resp = self._http.get(realm, params=params, auth=auth, timeout=self.timeout)
        except httpx.HTTPError as e:
            raise ClientError(f"unable to obtain registry token from {realm}: {e}")
        if resp.status_code != 200:
            raise ClientError(f"registry token request to {realm} failed with status {resp.status_code}")
        body = resp.json()
        return body.get("token") or body.get("access_token") or ""

    def _get(self, url: str, image: str, headers: Optional[Dict[str, str]] = None) -> httpx.Response:
        headers = dict(headers or {})
        host = httpx.URL(url).host
        if host in self._tokens:
            headers["Authorization"] = f"Bearer {self._tokens[host]}"
        try:
            resp = self._http.get(url, headers=headers, timeout=self.timeout)
            if resp.status_code == 401:
                challenge = parse_challenge(resp.headers.get("WWW-Authenticate", ""))
                if challenge:
                    self._tokens[host] = self._fetch_token(challenge)
                    headers["Authorization"] = f"Bearer {self._tokens[host]}"
                    resp = self._http.get(url, headers=headers, timeout=self.timeout)
        except httpx.TimeoutException:
            raise ClientError(f"timed out contacting the registry for {image}")
        except httpx.HTTPError as e:
            raise ClientError(f"unable to contact the registry for {image}: {e}")

        if resp.status_code == 404:
            raise ImageNotFound(image)
        if resp.status_code == 401:
            # Docker Hub answers unknown repositories with 401 after auth.
            raise ImageNotFound(image)
        if resp.status_code >= 400:
            raise ClientError(f"registry returned status {resp.status_code} for {image}")
        return resp

    def list_images(self, reference: str) -> List[str]:
        """Lists the tags of the repository named by `reference` as pull specs."""
        ref = ImageReference.parse(reference)
        url = f"{self._base_url(ref)}/{ref.repository_path()}/tags/list"
        resp = self._get(url, str(ref.as_repository()))
        tags = resp.json().get("tags") or []
        repo = ref.as_repository()
        return [str(repo.with_tag(tag)) for tag in sorted(tags)]

    def inspect_image(self, reference: str) -> ImageMetadata:
        """Fetches env, exposed ports, volumes and labels of a remote image."""
        ref = ImageReference.parse(reference).docker_client_defaults()
        base = f"{self._base_url(ref)}/{ref.repository_path()}"
        digest_or_tag = ref.id or ref.tag
        accept = ", ".join([MANIFEST_V2, OCI_MANIFEST, MANIFEST_LIST, OCI_INDEX])

        manifest = self._get(f"{base}/manifests/{digest_or_tag}", str(ref), {"Accept": accept}).json()
        if manifest.get("mediaType") in (MANIFEST_LIST, OCI_INDEX) or "manifests" in manifest:
            chosen = _pick_platform(manifest.get("manifests") or [])
            if chosen is None:
                raise ImageNotFound(str(ref))
            manifest = self._get(f"{base}/manifests/{chosen}", str(ref), {"Accept": accept}).json()

        config_digest = (manifest.get("config") or {}).get("digest")
        if not config_digest:
            raise ClientError(f"the manifest of {ref} has no image config")
        blob = self._get(f"{base}/blobs/{config_digest}", str(ref)).json()
        logger.debug(f"Inspected remote image {ref} ({config_digest})")
        return ImageMetadata.from_config(blob.get("config"), image_id=config_digest)


def _pick_platform(manifests: List[Dict]) -> Optional[str]:
    for entry in manifests:
        platform = entry.get("platform") or {}
        if platform.get("os") == "linux" and platform.get("architecture") == "amd64":
            return entry.get("digest")
    return manifests[0].get("digest") if manifests else None
