import logging
import re
import time
import bech32

logger = logging.getLogger(__name__)

PUBKEY_HEX_RE = re.compile(r"^[0-9a-f]{64}$")
LIGHTNING_ADDRESS_RE = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
RELAY_URL_RE = re.compile(r"^wss?://\S+$")

ZAP_REQUEST_KIND = 9734
HTTP_AUTH_KIND = 27235


def is_valid_pubkey(value: str) -> bool:
    return bool(value) and PUBKEY_HEX_RE.match(value) is not None


def convert_npub_to_hex(npub: str) -> str:
    if npub.startswith("npub"):
        try:
            hrp, data = bech32.bech32_decode(npub)
            if hrp != "npub" or data is None:
                raise ValueError("Invalid npub format")
            converted = bech32.convertbits(data, 5, 8, False)
            if converted is None or len(converted) != 32:
                raise ValueError("Invalid npub conversion")
            return ''.join(f'{x:02x}' for x in converted)
        except Exception as e:
            raise ValueError(f"Invalid npub format: {e}")
    elif re.match(r"^[0-9a-fA-F]{64}$", npub):
        return npub.lower()
    else:
        raise ValueError("Key must be npub or 64-character hex")


def hex_to_npub(pubkey_hex: str) -> str:
    """Bech32 display form of a hex key. Display only, never stored."""
    if not is_valid_pubkey(pubkey_hex):
        raise ValueError("Pubkey must be 64 lowercase hex characters")
    data = bech32.convertbits(bytes.fromhex(pubkey_hex), 8, 5)
    return bech32.bech32_encode("npub", data)


def display_key(pubkey_hex: str) -> str:
    try:
        return hex_to_npub(pubkey_hex)
    except ValueError:
        return pubkey_hex[:8] + "..."


def filter_relays(relays) -> list[str]:
    """Drop anything that is not a non-empty string."""
    if not isinstance(relays, list):
        return []
    return [r for r in relays if isinstance(r, str) and r]


def is_valid_relay_url(url: str) -> bool:
    return isinstance(url, str) and RELAY_URL_RE.match(url) is not None


def split_lightning_address(address: str | None) -> tuple[str, str] | None:
    if not address or "@" not in address:
        return None
    local, _, domain = address.strip().rpartition("@")
    if not local or not domain or "@" in local:
        return None
    return local, domain


def is_valid_lightning_address(address: str) -> bool:
    return bool(address) and LIGHTNING_ADDRESS_RE.match(address) is not None


def build_zap_request(
    recipient_pubkey: str,
    amount_sats: int,
    relays: list[str],
    comment: str = "",
    sender_pubkey: str | None = None,
) -> dict:
    """Unsigned NIP-57 zap request (kind 9734).

    The ``amount`` tag is in millisats, matching the callback's ``amount``
    query parameter.
    """
    event = {
        "kind": ZAP_REQUEST_KIND,
        "created_at": int(time.time()),
        "content": comment or "",
        "tags": [
            ["p", recipient_pubkey],
            ["amount", str(amount_sats * 1000)],
            ["relays", *relays],
        ],
    }
    if sender_pubkey:
        event["pubkey"] = sender_pubkey
    return event
