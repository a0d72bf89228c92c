"""OS keychain store built on the `keyring` library."""
import json
import logging
import os
from typing import Dict, List, Optional, Tuple

import keyring
from keyring.errors import KeyringError, KeyringLocked, NoKeyringError, PasswordDeleteError

from .envelope import SecretEnvelope
from .errors import KeyAlreadyExistsError, KeyNotFoundError, StoreError, StoreLockedError, ValidationError
from .models import SERVICE_NAME, Identifier, KeyKind
from .store import Name, decode_payload, encode_payload, validate_value

logger = logging.getLogger(__name__)

# keyring cannot enumerate accounts, so names and kinds are tracked here.
# The account name cannot collide with a valid identifier.
INDEX_ACCOUNT = "__lkr_index__"


def resolve_service_name(configured: Optional[str] = None) -> str:
    """
    Get the keychain service name.

    Priority order:
    1. LKR_KEYCHAIN_SERVICE environment variable
    2. Configured value (config.yml keychain.service)
    3. Built-in default
    """
    env_service = os.getenv("LKR_KEYCHAIN_SERVICE")
    if env_service:
        logger.debug(f"Using LKR_KEYCHAIN_SERVICE from environment: {env_service}")
        return env_service
    return configured or SERVICE_NAME


def _translate(error: Exception, ident: Optional[Identifier] = None) -> StoreError:
    if isinstance(error, KeyringLocked):
        return StoreLockedError()
    if isinstance(error, NoKeyringError):
        return StoreError(f"No keychain backend available: {error}")
    target = f" for {ident}" if ident else ""
    return StoreError(f"Keychain error{target}: {error}")


class KeychainStore:
    """Key store backed by the OS keychain (macOS Keychain, Secret Service, Windows)."""

    def __init__(self, service: Optional[str] = None):
        self.service = resolve_service_name(service)

    def _read(self, account: str) -> Optional[str]:
        try:
            return keyring.get_password(self.service, account)
        except KeyringError as e:
            raise _translate(e) from None

    def _load_index(self) -> Dict[str, str]:
        raw = self._read(INDEX_ACCOUNT)
        if not raw:
            return {}
        try:
            index = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning(f"Keychain index for {self.service} is corrupt; treating as empty")
            return {}
        if not isinstance(index, dict):
            return {}
        return index

    def _save_index(self, index: Dict[str, str]) -> None:
        try:
            keyring.set_password(self.service, INDEX_ACCOUNT, json.dumps(index, sort_keys=True))
        except KeyringError as e:
            raise _translate(e) from None

    def _update_index(self, name: str, kind: Optional[KeyKind]) -> None:
        """Add (kind given) or remove (kind None) one index entry."""
        index = self._load_index()
        if kind is None:
            if index.pop(name, None) is None:
                return
        else:
            if index.get(name) == str(kind):
                return
            index[name] = str(kind)
        self._save_index(index)

    def put(self, name: Name, value: str, kind: KeyKind = KeyKind.RUNTIME, force: bool = False) -> None:
        """
        Store a key.

        The index entry is written before the record, so a stored key is
        always listed. An entry whose record never landed is pruned by
        `enumerate`.

        Raises:
            ValidationError: Malformed name or empty value
            KeyAlreadyExistsError: Key exists and force is False
            StoreError: Keychain failure
        """
        ident = Identifier.parse(name)
        validate_value(value)

        if not force and self.exists(ident):
            raise KeyAlreadyExistsError(str(ident))

        self._update_index(str(ident), kind)
        try:
            keyring.set_password(self.service, str(ident), encode_payload(value, kind))
        except KeyringError as e:
            raise _translate(e, ident) from None

        # a concurrent put may have rewritten the index from a stale copy
        self._update_index(str(ident), kind)
        logger.info(f"Stored {ident} (kind: {kind}) in keychain service {self.service}")

    def fetch(self, name: Name) -> SecretEnvelope:
        ident = Identifier.parse(name)
        payload = self._read(str(ident))
        if payload is None:
            raise KeyNotFoundError(str(ident))
        return decode_payload(ident, payload)

    def delete(self, name: Name) -> None:
        """
        Remove a key, then its index entry.

        If the index cannot be rewritten the key is still gone; the stale
        entry is pruned by the next `enumerate`.
        """
        ident = Identifier.parse(name)
        try:
            keyring.delete_password(self.service, str(ident))
        except PasswordDeleteError:
            raise KeyNotFoundError(str(ident)) from None
        except KeyringError as e:
            raise _translate(e, ident) from None

        try:
            self._update_index(str(ident), None)
        except StoreError as e:
            logger.warning(f"Removed {ident} but could not update the keychain index: {e}")
        logger.info(f"Removed {ident} from keychain service {self.service}")

    def enumerate(self) -> List[Tuple[Identifier, KeyKind]]:
        """
        Stored keys and their kinds, sorted. Values are never returned.

        Index entries whose record is missing are skipped and pruned.
        """
        index = self._load_index()
        entries = []
        stale = []
        for name, kind in index.items():
            try:
                entry = (Identifier.parse(name), KeyKind(kind))
            except (ValidationError, ValueError):
                logger.warning(f"Skipping unrecognized keychain index entry: {name}")
                continue
            if not self.exists(entry[0]):
                stale.append(name)
                continue
            entries.append(entry)

        if stale:
            for name in stale:
                index.pop(name)
            try:
                self._save_index(index)
                logger.info(f"Pruned {len(stale)} stale keychain index entries")
            except StoreError as e:
                logger.warning(f"Could not prune stale keychain index entries: {e}")
        return sorted(entries)

    def exists(self, name: Name) -> bool:
        ident = Identifier.parse(name)
        return self._read(str(ident)) is not None
