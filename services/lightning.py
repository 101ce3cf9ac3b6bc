"""Lightning Address -> LNURL-pay -> bolt11 invoice, plus wallet-mediated zaps."""

import asyncio
import json
import math
import logging
from enum import Enum
from typing import Callable

import httpx
import websockets

from config import DEFAULT_RELAY, RELAY_TIMEOUT
from core.errors import UpstreamError, ValidationError
from core.nostr import build_zap_request, split_lightning_address
from core.signer import Signer, no_signer_error

logger = logging.getLogger(__name__)

http_client: httpx.AsyncClient | None = None


class InvoiceState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    RESOLVING_LNURL = "resolving_lnurl"
    CHECKING_BOUNDS = "checking_bounds"
    REQUESTING_INVOICE = "requesting_invoice"
    DONE = "done"
    FAILED = "failed"


def parse_amount(amount) -> int:
    if isinstance(amount, bool):
        raise ValidationError("Amount must be a positive whole number of sats", "InvalidAmount")
    try:
        value = int(str(amount).strip())
    except (TypeError, ValueError):
        raise ValidationError("Amount must be a positive whole number of sats", "InvalidAmount")
    if value <= 0:
        raise ValidationError("Amount must be a positive whole number of sats", "InvalidAmount")
    return value


def lnurlp_url(lightning_address: str) -> str:
    parts = split_lightning_address(lightning_address)
    if parts is None:
        raise ValidationError("Recipient has no valid Lightning Address", "MissingAddress")
    local, domain = parts
    return f"https://{domain}/.well-known/lnurlp/{local}"


class LightningInvoiceRequester:
    """One-shot invoice request; no retries.

    ``on_progress`` receives every ``InvoiceState`` the request passes
    through, ``FAILED`` included.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        on_progress: Callable[[InvoiceState], None] | None = None,
    ):
        self.client = client
        self.on_progress = on_progress
        self.state = InvoiceState.IDLE

    def _enter(self, state: InvoiceState) -> None:
        self.state = state
        logger.debug(f"Invoice request -> {state.value}")
        if self.on_progress is not None:
            self.on_progress(state)

    async def request_invoice(
        self,
        lightning_address: str | None,
        amount,
        recipient_pubkey: str,
        relays: list[str] | None = None,
        comment: str = "",
        sender_pubkey: str | None = None,
    ) -> str:
        try:
            return await self._run(
                lightning_address, amount, recipient_pubkey, relays, comment, sender_pubkey
            )
        except (ValidationError, UpstreamError):
            self._enter(InvoiceState.FAILED)
            raise

    async def _run(self, lightning_address, amount, recipient_pubkey, relays, comment, sender_pubkey) -> str:
        self._enter(InvoiceState.VALIDATING)
        sats = parse_amount(amount)
        discovery_url = lnurlp_url(lightning_address)

        self._enter(InvoiceState.RESOLVING_LNURL)
        try:
            response = await self.client.get(discovery_url)
        except httpx.HTTPError as e:
            logger.warning(f"LNURL discovery failed for {lightning_address}: {e}")
            raise UpstreamError("Unable to reach the recipient's Lightning provider", "LnurlUnreachable") from e
        if not response.is_success:
            logger.warning(f"LNURL discovery for {lightning_address} returned {response.status_code}")
            raise UpstreamError("Unable to reach the recipient's Lightning provider", "LnurlUnreachable")
        try:
            lnurl_data = response.json()
        except ValueError as e:
            raise UpstreamError("Lightning provider returned an invalid response", "LnurlUnreachable") from e
        if not isinstance(lnurl_data, dict) or not lnurl_data.get("callback"):
            raise UpstreamError("Lightning provider response has no callback", "MalformedLnurlResponse")

        self._enter(InvoiceState.CHECKING_BOUNDS)
        try:
            min_msat = int(lnurl_data.get("minSendable", 0))
            max_msat = int(lnurl_data.get("maxSendable", 0))
        except (TypeError, ValueError) as e:
            raise UpstreamError("Lightning provider sent invalid amount limits", "MalformedLnurlResponse") from e
        if not min_msat <= sats * 1000 <= max_msat:
            min_sats = math.ceil(min_msat / 1000)
            max_sats = max_msat // 1000
            raise ValidationError(
                f"Amount must be between {min_sats} and {max_sats} sats",
                "AmountOutOfBounds",
            )

        self._enter(InvoiceState.REQUESTING_INVOICE)
        zap_request = build_zap_request(
            recipient_pubkey, sats, relays or [DEFAULT_RELAY], comment, sender_pubkey
        )
        try:
            response = await self.client.get(
                lnurl_data["callback"],
                params={"amount": sats * 1000, "nostr": json.dumps(zap_request)},
            )
        except httpx.HTTPError as e:
            logger.warning(f"Invoice callback failed for {lightning_address}: {e}")
            raise UpstreamError("Failed to request invoice", "InvoiceRequestFailed") from e
        if not response.is_success:
            logger.warning(f"Invoice callback for {lightning_address} returned {response.status_code}")
            raise UpstreamError("Failed to request invoice", "InvoiceRequestFailed")
        try:
            invoice_data = response.json()
        except ValueError:
            invoice_data = {}
        pr = invoice_data.get("pr") if isinstance(invoice_data, dict) else None
        if not pr:
            raise UpstreamError("No invoice returned by the Lightning provider", "NoInvoiceReturned")

        self._enter(InvoiceState.DONE)
        logger.info(f"Invoice for {sats} sats obtained from {lightning_address}")
        return pr


async def _send_event(relay: str, message: str) -> bool:
    async with websockets.connect(relay) as websocket:
        await websocket.send(message)
        response = json.loads(await websocket.recv())
    return isinstance(response, list) and len(response) >= 3 and response[0] == "OK" and response[2] is True


async def _publish_to_relay(relay: str, message: str, timeout: float) -> bool:
    try:
        return await asyncio.wait_for(_send_event(relay, message), timeout)
    except Exception as e:
        logger.warning(f"Error publishing to relay {relay}: {e}")
        return False


class ZapPublisher:
    """Wallet-mediated zap: sign the zap request and hand it to relays."""

    def __init__(self, signer: Signer, timeout: float = RELAY_TIMEOUT):
        self.signer = signer
        self.timeout = timeout

    async def zap(
        self,
        recipient_pubkey: str,
        amount,
        relays: list[str] | None = None,
        comment: str = "",
    ) -> list[str]:
        if not self.signer.available:
            raise no_signer_error()
        sats = parse_amount(amount)
        targets = relays or [DEFAULT_RELAY]

        sender = await self.signer.get_public_key()
        unsigned = build_zap_request(recipient_pubkey, sats, targets, comment, sender)
        event = await self.signer.sign_event(unsigned)

        message = json.dumps(["EVENT", event])
        results = await asyncio.gather(
            *(_publish_to_relay(relay, message, self.timeout) for relay in targets)
        )
        accepted = [relay for relay, ok in zip(targets, results) if ok]
        if not accepted:
            raise UpstreamError("No relay accepted the zap request", "RelayUnreachable")
        logger.info(f"Zap request {event.get('id', '')[:16]} accepted by {len(accepted)} relay(s)")
        return accepted
