"""Signer capability.

Callers check ``signer.available`` once and branch, instead of poking at
whatever object happens to be around:

* ``KeySigner``: holds a private key and signs locally.
* ``SignedEventSigner``: wraps an event already signed by the user's
  browser extension; proves the public key but cannot sign anything new.
* ``UnavailableSigner``: no signer at all.
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
from abc import ABC, abstractmethod

from pynostr.event import Event  # type: ignore[import-untyped]
from pynostr.key import PrivateKey  # type: ignore[import-untyped]

from core.errors import AuthError, UpstreamError
from core.nostr import HTTP_AUTH_KIND, is_valid_pubkey

logger = logging.getLogger(__name__)


def no_signer_error() -> UpstreamError:
    return UpstreamError(
        "No Nostr signer available. Install a Nostr extension like Alby and try again",
        "NoSignerAvailable",
    )


def compute_event_id(event: dict) -> str:
    serialized = json.dumps(
        [
            0,
            event["pubkey"],
            event["created_at"],
            event["kind"],
            event.get("tags", []),
            event.get("content", ""),
        ],
        separators=(",", ":"),
        ensure_ascii=False,
    ).encode("utf-8")
    return hashlib.sha256(serialized).hexdigest()


def verify_event(event: dict) -> bool:
    """Check the event id and its BIP-340 signature."""
    try:
        if not is_valid_pubkey(event.get("pubkey", "")):
            return False
        if compute_event_id(event) != event.get("id"):
            return False
        parsed = Event(
            content=event.get("content", ""),
            pubkey=event["pubkey"],
            created_at=event["created_at"],
            kind=event["kind"],
            tags=event.get("tags", []),
            id=event["id"],
            sig=event["sig"],
        )
        return bool(parsed.verify())
    except (KeyError, TypeError, ValueError) as e:
        logger.warning(f"Malformed event rejected: {e}")
        return False


class Signer(ABC):
    available = True

    @abstractmethod
    async def get_public_key(self) -> str: ...

    @abstractmethod
    async def sign_event(self, unsigned: dict) -> dict: ...


class UnavailableSigner(Signer):
    available = False

    async def get_public_key(self) -> str:
        raise no_signer_error()

    async def sign_event(self, unsigned: dict) -> dict:
        raise no_signer_error()


class KeySigner(Signer):
    """Signs with a local private key given as nsec or hex."""

    def __init__(self, secret: str):
        if secret.startswith("nsec"):
            self._private_key = PrivateKey.from_nsec(secret)
        else:
            self._private_key = PrivateKey(bytes.fromhex(secret))
        self._pubkey_hex: str = self._private_key.public_key.hex()

    @property
    def npub(self) -> str:
        return self._private_key.public_key.bech32()

    async def get_public_key(self) -> str:
        return self._pubkey_hex

    async def sign_event(self, unsigned: dict) -> dict:
        event = Event(
            kind=unsigned["kind"],
            content=unsigned.get("content", ""),
            tags=unsigned.get("tags", []),
            pubkey=self._pubkey_hex,
            created_at=unsigned.get("created_at") or int(time.time()),
        )
        event.sign(self._private_key.hex())
        return event.to_dict()


class SignedEventSigner(Signer):
    """A login event signed client-side, kind 27235.

    ``get_public_key`` only succeeds if the signature verifies and the
    event is recent enough.
    """

    def __init__(self, event: dict, max_age: int = 60, clock=time.time):
        self.event = event
        self.max_age = max_age
        self.clock = clock

    async def get_public_key(self) -> str:
        event = self.event
        if not isinstance(event, dict) or event.get("kind") != HTTP_AUTH_KIND:
            raise AuthError("Login event must be kind 27235", "LoginFailed")
        created_at = event.get("created_at")
        if not isinstance(created_at, int) or abs(self.clock() - created_at) > self.max_age:
            raise AuthError("Login event is stale", "LoginFailed")
        if not verify_event(event):
            raise AuthError("Login event signature is invalid", "LoginFailed")
        return event["pubkey"]

    async def sign_event(self, unsigned: dict) -> dict:
        raise no_signer_error()
