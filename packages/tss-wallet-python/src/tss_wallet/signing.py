"""Two-round threshold signing between the user and the operating service."""

import asyncio
import logging
from collections import OrderedDict
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterator

from .api import CoordinationClient, RequestTracer
from .eddsa import Eddsa, GShare, PShare, RShare, ShareCrypto, SignShare
from .intents import PrebuildParams, build_intent
from .types import (
    ConfigError,
    DirectionError,
    ErrorCode,
    NotFoundError,
    OwnershipError,
    PartyRole,
    SignatureShareRecord,
    TssWalletError,
    TxRequest,
)
from .validation import is_directed, is_own_share, is_r_share_directed

logger = logging.getLogger(__name__)

# r (32 bytes) followed by R (32 bytes), hex
R_SHARE_HEX_LENGTH = 128


@dataclass
class SigningConfig:
    """Configuration for signing tx requests of one wallet."""

    coin: str
    wallet_id: str
    read_retries: int = 2  # Extra reads while waiting for the service's reply
    read_retry_delay_secs: float = 1.0
    max_tracked_requests: int = 1000  # Oldest states are forgotten beyond this


class SigningState(Enum):
    """Progress of one tx request through the signing protocol."""

    FETCHED = "fetched"
    USER_SIGN_SHARE_CREATED = "user_sign_share_created"
    R_SHARE_OFFERED = "r_share_offered"
    BITGO_R_SHARE_RECEIVED = "bitgo_r_share_received"
    G_SHARE_CREATED = "g_share_created"
    G_SHARE_SENT = "g_share_sent"
    SENT = "sent"
    FAILED = "failed"


class SigningCoordinator:
    """
    User side of the TSS signing protocol.

    Each step is a separate method so it can be driven (and tested) on its
    own; :meth:`sign_tx_request` runs them in order. Steps that only compute
    are synchronous, steps that talk to the service are coroutines.

    Example:
        >>> signer = SigningCoordinator(client, SigningConfig(coin="tsol", wallet_id=wallet_id))
        >>> tx_request = await signer.prebuild_tx_with_intent(
        ...     PrebuildParams(recipients=[Recipient(address="...", amount="10000")])
        ... )
        >>> signed = await signer.sign_tx_request(tx_request, user_prv)
    """

    def __init__(
        self,
        client: CoordinationClient,
        config: SigningConfig,
        mpc: ShareCrypto | None = None,
    ) -> None:
        if not config.coin or not config.wallet_id:
            raise ConfigError("Coin and wallet id are required")
        if config.read_retries < 0:
            raise ConfigError("read_retries must not be negative")
        if config.max_tracked_requests < 1:
            raise ConfigError("max_tracked_requests must be positive")
        self._client = client
        self._config = config
        self._mpc = mpc or Eddsa()
        self._states: OrderedDict[str, SigningState] = OrderedDict()

    def state(self, tx_request_id: str) -> SigningState | None:
        """Last recorded state of ``tx_request_id`` (``None`` if untouched)."""
        return self._states.get(tx_request_id)

    def reset(self, tx_request_id: str) -> None:
        """Forget the recorded state of ``tx_request_id``."""
        self._states.pop(tx_request_id, None)

    async def sign_tx_request(
        self,
        tx_request: TxRequest | str,
        user_p_share: PShare | str,
        req_id: RequestTracer | None = None,
    ) -> TxRequest:
        """Run the full signing protocol and return the updated tx request.

        ``tx_request`` may be an id (it is fetched first) or an already
        fetched request.
        """
        req_id = req_id or RequestTracer()
        if isinstance(tx_request, str):
            tx_request = await self.get_tx_request(tx_request, req_id)
        tx_request_id = tx_request.tx_request_id

        with self._tracking(tx_request_id):
            if not tx_request.unsigned_txs:
                raise NotFoundError("No unsigned transactions found", tx_request_id=tx_request_id)
            try:
                signable_payload = bytes.fromhex(tx_request.unsigned_txs[0].signable_hex)
            except ValueError as e:
                raise TssWalletError(
                    ErrorCode.MALFORMED_SHARE,
                    "Invalid signable payload, not hex",
                    cause=e,
                    tx_request_id=tx_request_id,
                ) from e
            user_sign_share = self.create_user_sign_share(signable_payload, user_p_share)
            self._record(tx_request_id, SigningState.USER_SIGN_SHARE_CREATED)

        await self.offer_user_to_bitgo_r_share(tx_request_id, user_sign_share, req_id)
        bitgo_to_user_r_share = await self.get_bitgo_to_user_r_share(tx_request_id, req_id)

        with self._tracking(tx_request_id):
            user_to_bitgo_g_share = self.create_user_to_bitgo_g_share(
                user_sign_share, bitgo_to_user_r_share, signable_payload
            )
            self._record(tx_request_id, SigningState.G_SHARE_CREATED)

        await self.send_user_to_bitgo_g_share(tx_request_id, user_to_bitgo_g_share, req_id)
        await self.send_tx_request(tx_request_id, req_id)

        logger.info("Signed tx request %s", tx_request_id)
        return await self.get_tx_request(tx_request_id, req_id)

    async def get_tx_request(
        self, tx_request_id: str, req_id: RequestTracer | None = None
    ) -> TxRequest:
        """Fetch the latest version of a tx request."""
        with self._tracking(tx_request_id):
            tx_requests = await self._client.get_tx_requests(
                self._config.wallet_id, tx_request_id, latest=True, req_id=req_id
            )
            if not tx_requests:
                raise NotFoundError(f"Unable to find TxRequest with id {tx_request_id}")
            if tx_request_id not in self._states:
                self._record(tx_request_id, SigningState.FETCHED)
            return tx_requests[0]

    def create_user_sign_share(
        self, signable_payload: bytes, user_p_share: PShare | str
    ) -> SignShare:
        """Create the user's nonce shares for one signing session."""
        p_share = PShare.from_json(user_p_share) if isinstance(user_p_share, str) else user_p_share
        if not is_own_share(p_share, PartyRole.USER):
            raise OwnershipError(
                "Invalid PShare, PShare doesnt belong to the User",
                i=p_share.i,
                expected=int(PartyRole.USER),
            )
        return self._mpc.sign_share(signable_payload, p_share, [PartyRole.BITGO])

    async def offer_user_to_bitgo_r_share(
        self,
        tx_request_id: str,
        user_sign_share: SignShare,
        req_id: RequestTracer | None = None,
    ) -> None:
        """Send the user's R share for the service."""
        with self._tracking(tx_request_id):
            r_share = user_sign_share.r_shares.get(PartyRole.BITGO)
            if r_share is None:
                raise NotFoundError("userToBitgo RShare not found", tx_request_id=tx_request_id)
            if not is_r_share_directed(r_share, PartyRole.USER, PartyRole.BITGO):
                raise DirectionError(
                    "Invalid RShare, is not from User to Bitgo", i=r_share.i, j=r_share.j
                )

            record = SignatureShareRecord(
                from_role=PartyRole.USER,
                to_role=PartyRole.BITGO,
                share=r_share.r + r_share.R,
            )
            await self.send_signature_share(tx_request_id, record, req_id)
            self._record(tx_request_id, SigningState.R_SHARE_OFFERED)

    async def get_bitgo_to_user_r_share(
        self, tx_request_id: str, req_id: RequestTracer | None = None
    ) -> SignatureShareRecord:
        """Wait for the service's R share addressed to the user."""
        with self._tracking(tx_request_id):
            attempts = self._config.read_retries + 1
            attempt = 1
            while True:
                tx_request = await self.get_tx_request(tx_request_id, req_id)
                try:
                    record = self._find_bitgo_to_user_r_share(tx_request)
                    break
                except NotFoundError:
                    if attempt >= attempts:
                        raise
                logger.debug(
                    "Bitgo R share for %s not visible yet (attempt %d/%d)",
                    tx_request_id,
                    attempt,
                    attempts,
                )
                attempt += 1
                await asyncio.sleep(self._config.read_retry_delay_secs)

            self._record(tx_request_id, SigningState.BITGO_R_SHARE_RECEIVED)
            return record

    def create_user_to_bitgo_g_share(
        self,
        user_sign_share: SignShare,
        bitgo_to_user_r_share: SignatureShareRecord,
        signable_payload: bytes,
    ) -> GShare:
        """Compute the user's partial signature."""
        x_share = user_sign_share.x_share
        if not is_own_share(x_share, PartyRole.USER):
            raise OwnershipError(
                "Invalid XShare, doesnt belong to the User",
                i=x_share.i,
                expected=int(PartyRole.USER),
            )
        if not is_directed(bitgo_to_user_r_share, PartyRole.BITGO, PartyRole.USER):
            raise DirectionError(
                "Invalid RShare, is not from Bitgo to User",
                from_role=bitgo_to_user_r_share.from_role.share_type,
                to_role=bitgo_to_user_r_share.to_role.share_type,
            )

        share = bitgo_to_user_r_share.share
        if len(share) != R_SHARE_HEX_LENGTH:
            raise TssWalletError(
                ErrorCode.MALFORMED_SHARE,
                "Invalid RShare, unexpected share length",
                length=len(share),
            )
        try:
            bytes.fromhex(share)
        except ValueError as e:
            raise TssWalletError(
                ErrorCode.MALFORMED_SHARE,
                "Invalid RShare, share is not hex",
                cause=e,
            ) from e
        r_share = RShare(
            i=int(PartyRole.BITGO),
            j=int(PartyRole.USER),
            r=share[:64],
            R=share[64:],
        )
        return self._mpc.sign(signable_payload, x_share, [r_share])

    async def send_user_to_bitgo_g_share(
        self,
        tx_request_id: str,
        user_to_bitgo_g_share: GShare,
        req_id: RequestTracer | None = None,
    ) -> None:
        """Send the user's partial signature to the service."""
        with self._tracking(tx_request_id):
            if not is_own_share(user_to_bitgo_g_share, PartyRole.USER):
                raise OwnershipError(
                    "Invalid GShare, doesnt belong to the User",
                    i=user_to_bitgo_g_share.i,
                    expected=int(PartyRole.USER),
                )

            record = SignatureShareRecord(
                from_role=PartyRole.USER,
                to_role=PartyRole.BITGO,
                share=user_to_bitgo_g_share.R + user_to_bitgo_g_share.gamma,
            )
            await self.send_signature_share(tx_request_id, record, req_id)
            self._record(tx_request_id, SigningState.G_SHARE_SENT)

    async def send_tx_request(
        self, tx_request_id: str, req_id: RequestTracer | None = None
    ) -> None:
        """Tell the service the user side of the protocol is complete."""
        with self._tracking(tx_request_id):
            await self._client.post_tx_send(
                self._config.coin, self._config.wallet_id, tx_request_id, req_id=req_id
            )
            self._record(tx_request_id, SigningState.SENT)

    async def send_signature_share(
        self,
        tx_request_id: str,
        record: SignatureShareRecord,
        req_id: RequestTracer | None = None,
    ) -> SignatureShareRecord:
        """Post a signature share record to the tx request."""
        logger.info(
            "Sending %s -> %s signature share for %s",
            record.from_role.share_type,
            record.to_role.share_type,
            tx_request_id,
        )
        return await self._client.post_signature_share(
            self._config.wallet_id, tx_request_id, record, req_id=req_id
        )

    async def prebuild_tx_with_intent(
        self,
        params: PrebuildParams | dict[str, Any],
        req_id: RequestTracer | None = None,
    ) -> TxRequest:
        """Create a tx request from a payment intent."""
        if not isinstance(params, PrebuildParams):
            params = PrebuildParams.model_validate(params)
        body = build_intent(params, self._config.coin)
        tx_request = await self._client.post_tx_request_create(
            self._config.wallet_id, body, req_id=req_id
        )
        logger.info("Created tx request %s", tx_request.tx_request_id)
        return tx_request

    @staticmethod
    def _find_bitgo_to_user_r_share(tx_request: TxRequest) -> SignatureShareRecord:
        tx_request_id = tx_request.tx_request_id
        if not tx_request.signature_shares:
            raise NotFoundError(f"No signatures shares found for id: {tx_request_id}")
        for record in tx_request.signature_shares:
            if is_directed(record, PartyRole.BITGO, PartyRole.USER):
                return record
        raise NotFoundError(f"Bitgo to User RShare not found for id: {tx_request_id}")

    @contextmanager
    def _tracking(self, tx_request_id: str) -> Iterator[None]:
        """Record FAILED for ``tx_request_id`` when the wrapped step raises."""
        try:
            yield
        except Exception as e:
            if self._states.get(tx_request_id) is not SigningState.FAILED:
                logger.warning("Signing %s failed: %s", tx_request_id, e)
            self._record(tx_request_id, SigningState.FAILED)
            raise

    def _record(self, tx_request_id: str, state: SigningState) -> None:
        self._states[tx_request_id] = state
        self._states.move_to_end(tx_request_id)
        while len(self._states) > self._config.max_tracked_requests:
            self._states.popitem(last=False)
