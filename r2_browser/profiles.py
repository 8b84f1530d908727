from __future__ import annotations
"""Connection profile models and persistence."""
from dataclasses import dataclass
import json
import logging
import os
from pathlib import Path
from typing import Mapping

import keyring
from keyring.errors import KeyringError


LOGGER = logging.getLogger(__name__)

KEYRING_SERVICE = "r2-browser"
R2_ENDPOINT_TEMPLATE = "https://{account_id}.r2.cloudflarestorage.com"


@dataclass
class ConnectionProfile:
    """Represents a saved R2 connection."""

    name: str
    endpoint_url: str
    access_key: str
    secret_key: str


def r2_endpoint_url(account_id: str) -> str:
    account = account_id.strip()
    if not account:
        raise ValueError("Account id cannot be empty")
    return R2_ENDPOINT_TEMPLATE.format(account_id=account)


def profile_from_env(
    environ: Mapping[str, str] | None = None,
    *,
    name: str = "environment",
) -> ConnectionProfile | None:
    """Build a profile from ``R2_*`` environment variables, if all are set.

    ``R2_ENDPOINT_URL`` wins over ``R2_ACCOUNT_ID`` when both are present.
    """
    env = os.environ if environ is None else environ
    endpoint_url = env.get("R2_ENDPOINT_URL", "").strip()
    if not endpoint_url and env.get("R2_ACCOUNT_ID", "").strip():
        endpoint_url = r2_endpoint_url(env["R2_ACCOUNT_ID"])
    access_key = env.get("R2_ACCESS_KEY_ID", "").strip()
    secret_key = env.get("R2_SECRET_ACCESS_KEY", "").strip()
    if not (endpoint_url and access_key and secret_key):
        return None
    return ConnectionProfile(
        name=name,
        endpoint_url=endpoint_url,
        access_key=access_key,
        secret_key=secret_key,
    )


class KeychainStore:
    """Encapsulates OS keychain access for secrets."""

    def __init__(self, service_name: str = KEYRING_SERVICE):
        self._service_name = service_name

    def get_secret(self, profile_name: str) -> str:
        if not profile_name:
            return ""
        try:
            return keyring.get_password(self._service_name, profile_name) or ""
        except KeyringError:
            LOGGER.warning("Keychain lookup failed for profile '%s'", profile_name)
            return ""

    def set_secret(self, profile_name: str, secret_key: str) -> None:
        if not profile_name:
            return
        if not secret_key:
            self.delete_secret(profile_name)
            return
        try:
            keyring.set_password(self._service_name, profile_name, secret_key)
        except KeyringError:
            LOGGER.warning("Could not store secret for profile '%s' in the keychain", profile_name)

    def delete_secret(self, profile_name: str) -> None:
        if not profile_name:
            return
        try:
            keyring.delete_password(self._service_name, profile_name)
        except KeyringError:
            return


class ProfileStorage:
    """JSON-backed store for connection profiles; secrets live in the keychain."""

    def __init__(self, storage_path: str | Path | None = None, keychain: KeychainStore | None = None):
        if storage_path is None:
            storage_path = Path.home() / ".r2_browser_connections.json"
        self._path = Path(storage_path)
        self._keychain = keychain or KeychainStore()

    def load(self) -> list[ConnectionProfile]:
        data = self._read_data()
        profiles: list[ConnectionProfile] = []
        sanitized: list[dict[str, str]] = []
        saw_plaintext = False
        for entry in data:
            try:
                name = entry["name"]
                endpoint_url = entry["endpoint_url"]
                access_key = entry["access_key"]
            except (KeyError, TypeError):
                continue
            secret_key = entry.get("secret_key", "")
            if secret_key:
                saw_plaintext = True
                self._keychain.set_secret(name, secret_key)
            else:
                secret_key = self._keychain.get_secret(name)
            profiles.append(
                ConnectionProfile(
                    name=name,
                    endpoint_url=endpoint_url,
                    access_key=access_key,
                    secret_key=secret_key,
                )
            )
            sanitized.append(self._serialize(profiles[-1]))
        if saw_plaintext:
            LOGGER.info("Moved plaintext secrets from %s into the keychain", self._path)
            self._write_data(sanitized)
        return profiles

    def save(self, profiles: list[ConnectionProfile]) -> None:
        data = []
        for profile in profiles:
            self._keychain.set_secret(profile.name, profile.secret_key)
            data.append(self._serialize(profile))
        current_names = {profile.name for profile in profiles}
        for name in self._load_profile_names() - current_names:
            self._keychain.delete_secret(name)
        self._write_data(data)

    def _serialize(self, profile: ConnectionProfile) -> dict[str, str]:
        return {
            "name": profile.name,
            "endpoint_url": profile.endpoint_url,
            "access_key": profile.access_key,
        }

    def _read_data(self) -> list:
        if not self._path.exists():
            return []
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            return []
        return data if isinstance(data, list) else []

    def _load_profile_names(self) -> set[str]:
        names = set()
        for entry in self._read_data():
            name = entry.get("name") if isinstance(entry, dict) else None
            if isinstance(name, str) and name:
                names.add(name)
        return names

    def _write_data(self, data: list[dict[str, str]]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(data, indent=2), encoding="utf-8")
