#!/usr/bin/env python3
"""
KUBEFORGE CREDENTIALS - Registry Auth Stores
--------------------------------------------
Answers `basic(url) -> (username, password)` for registry auth challenges.

Three stores are provided: one that never has credentials, an explicit
list matched by host and path, and a keyring materialised lazily from
dockercfg secrets. Stores are read-only once built and are shared by all
concurrent lookups.

Author: KubeForge Team
Date: 2026-10-18
"""

import base64
import json
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple
from urllib.parse import urlparse

logger = logging.getLogger("kubeforge.credentials")

DOCKERCFG_KEY = ".dockercfg"
DOCKERCONFIGJSON_KEY = ".dockerconfigjson"

LEGACY_TOKEN_HOST = "auth.docker.io/token"
LEGACY_INDEX_URL = "https://index.docker.io/v1"


def _split_url(url: str) -> Tuple[str, str]:
    """Returns (host, path) for a URL with or without a scheme."""
    if "://" not in url:
        url = f"https://{url}"
    parsed = urlparse(url)
    return parsed.netloc, parsed.path


class NoCredentials:
    """A store that never has anything to offer."""

    def basic(self, url: str) -> Tuple[str, str]:
        logger.debug(f"asked to provide basic credentials for {url}")
        return "", ""


@dataclass
class _BasicForURL:
    host: str
    path: str
    username: str
    password: str


class BasicCredentials:
    """
    An ordered list of explicit credentials.

    The first entry whose host and path match the target wins; an empty
    host or path on an entry matches anything.
    """

    def __init__(self):
        self._creds: List[_BasicForURL] = []

    def add(self, url: str, username: str, password: str) -> None:
        host, path = _split_url(url) if url else ("", "")
        self._creds.append(_BasicForURL(host, path, username, password))

    def basic(self, url: str) -> Tuple[str, str]:
        host, path = _split_url(url)
        for cred in self._creds:
            if cred.host and cred.host != host:
                continue
            if cred.path and cred.path != path:
                continue
            return cred.username, cred.password
        return "", ""


@dataclass
class KeyringEntry:
    host: str
    path: str
    username: str
    password: str
    server_address: str


class DockerKeyring:
    """Registry credentials keyed by server address, longest path first."""

    def __init__(self, entries: Optional[List[KeyringEntry]] = None):
        self.entries = sorted(entries or [], key=lambda e: len(e.path), reverse=True)

    def lookup(self, value: str) -> List[KeyringEntry]:
        host, _, path = value.partition("/")
        path = "/" + path if path else ""
        found = []
        for entry in self.entries:
            if entry.host != host:
                continue
            if entry.path and not path.startswith(entry.path.rstrip("/")):
                continue
            found.append(entry)
        return found

    @classmethod
    def from_secrets(cls, secrets: List[Dict]) -> "DockerKeyring":
        """
        Builds a keyring from dockercfg and dockerconfigjson secrets.

        Raises ValueError when a secret's payload cannot be decoded.
        """
        entries = []
        for secret in secrets:
            data = secret.get("data") or {}
            name = (secret.get("metadata") or {}).get("name", "")
            if DOCKERCFG_KEY in data:
                auths = _decode_payload(data[DOCKERCFG_KEY], name)
            elif DOCKERCONFIGJSON_KEY in data:
                auths = _decode_payload(data[DOCKERCONFIGJSON_KEY], name).get("auths", {})
            else:
                continue
            for server, auth in auths.items():
                username, password = auth.get("username", ""), auth.get("password", "")
                if auth.get("auth") and not username:
                    decoded = base64.b64decode(auth["auth"]).decode("utf-8")
                    username, _, password = decoded.partition(":")
                host, path = _split_url(server)
                entries.append(KeyringEntry(host, path.rstrip("/"), username, password, server))
        return cls(entries)


def _decode_payload(encoded: str, name: str) -> Dict:
    try:
        return json.loads(base64.b64decode(encoded).decode("utf-8"))
    except (ValueError, UnicodeDecodeError) as e:
        raise ValueError(f"secret {name!r} does not contain a valid docker config: {e}")


EMPTY_KEYRING = DockerKeyring()


def credentials_from_keyring(keyring: DockerKeyring, url: str) -> Tuple[str, str]:
    host, path = _split_url(url)
    value = host + path
    configs = keyring.lookup(value)
    if not configs:
        if value == LEGACY_TOKEN_HOST:
            logger.debug(f"Being asked for {url}, trying {LEGACY_INDEX_URL} for legacy behavior")
            return credentials_from_keyring(keyring, LEGACY_INDEX_URL)
        logger.debug(f"Unable to find a secret to match {url} ({value})")
        return "", ""
    logger.debug(f"Found secret to match {url} ({value}): {configs[0].server_address}")
    return configs[0].username, configs[0].password


class SecretCredentialStore:
    """
    A keyring built from dockercfg secrets on first use.

    The secrets are either given up front or fetched by `secrets_fn`. The
    keyring is built at most once under a lock; a failure is kept for
    `err()` and the store then behaves as if it had no credentials.
    """

    def __init__(self, secrets: Optional[List[Dict]] = None,
                 secrets_fn: Optional[Callable[[], List[Dict]]] = None):
        self._lock = threading.Lock()
        self._secrets = secrets
        self._secrets_fn = secrets_fn
        self._keyring: Optional[DockerKeyring] = None
        self._err: Optional[Exception] = None

    def basic(self, url: str) -> Tuple[str, str]:
        return credentials_from_keyring(self._init(), url)

    def err(self) -> Optional[Exception]:
        with self._lock:
            return self._err

    def _init(self) -> DockerKeyring:
        with self._lock:
            if self._keyring is not None:
                return self._keyring

            if self._secrets is None and self._secrets_fn is not None:
                try:
                    self._secrets = self._secrets_fn()
                except Exception as e:
                    self._err = e
                    self._secrets = []

            try:
                keyring = DockerKeyring.from_secrets(self._secrets or [])
            except ValueError as e:
                logger.debug(f"Loading keyring failed for credential store: {e}")
                self._err = e
                keyring = EMPTY_KEYRING
            self._keyring = keyring
            return keyring
