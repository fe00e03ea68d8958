import copy
import secrets

import pytest

from tss_wallet.eddsa import Eddsa, GShare, PShare, RShare, SignatureResult, SignShare, YShare
from tss_wallet.keygen import KeygenConfig
from tss_wallet.signing import SigningConfig
from tss_wallet.transport import EncryptionKeyPair, decrypt_text, encrypt_text
from tss_wallet.types import (
    Keychain,
    KeychainShare,
    PartyRole,
    SignatureShareRecord,
    TxRequest,
    UnsignedTx,
)
from tss_wallet.validation import is_directed

COIN = "tsol"
WALLET_ID = "5b34252f1bf349930e34020a00000000"


class FakeBitGo:
    """In-memory coordination service that plays the Bitgo party."""

    def __init__(self, mpc: Eddsa) -> None:
        self.mpc = mpc
        self.gpg_key = EncryptionKeyPair.generate()
        self.key_share = mpc.key_share(PartyRole.BITGO, 2, 3)
        self.p_share: PShare | None = None
        self.tx_requests: dict[str, TxRequest] = {}
        self.created_keys: list[dict] = []
        self.created_tx_bodies: list[dict] = []
        self.sign_shares: dict[str, SignShare] = {}
        self.g_shares: dict[str, GShare] = {}
        self.signatures: dict[str, SignatureResult] = {}
        self.sent: list[str] = []
        self.calls: list[str] = []
        self.reply_r_shares = True

    def add_tx_request(
        self, signable_hex: str = "deadbeef", tx_request_id: str = "randomId"
    ) -> TxRequest:
        tx_request = TxRequest(
            tx_request_id=tx_request_id,
            unsigned_txs=[UnsignedTx(signable_hex=signable_hex, serialized_tx_hex="ababfefe")],
        )
        self.tx_requests[tx_request_id] = tx_request
        return copy.deepcopy(tx_request)

    async def get_constants(self):
        self.calls.append("get_constants")
        return {"tss": {"bitgoPublicKey": self.gpg_key.public_key}}

    async def create_key(self, coin, params, req_id=None):
        self.calls.append("create_key")
        self.created_keys.append(params)
        if params["source"] == "bitgo":
            return self._create_bitgo_keychain(params)
        ids = {"user": "1", "backup": "2"}
        return Keychain(
            id=ids[params["source"]],
            common_pub=params["commonPub"],
            source=params["source"],
        )

    async def get_tx_requests(self, wallet_id, tx_request_id, latest=True, req_id=None):
        self.calls.append("get_tx_requests")
        tx_request = self.tx_requests.get(tx_request_id)
        return [copy.deepcopy(tx_request)] if tx_request else []

    async def post_signature_share(self, wallet_id, tx_request_id, record, req_id=None):
        self.calls.append("post_signature_share")
        tx_request = self.tx_requests[tx_request_id]
        tx_request.signature_shares.append(record)
        if is_directed(record, PartyRole.USER, PartyRole.BITGO) and self.p_share is not None:
            if tx_request_id not in self.sign_shares:
                self._reply_r_share(tx_request, record)
            else:
                self._combine(tx_request, record)
        return record

    async def post_tx_request_create(self, wallet_id, body, req_id=None):
        self.calls.append("post_tx_request_create")
        self.created_tx_bodies.append(body)
        return self.add_tx_request(secrets.token_hex(32), tx_request_id=secrets.token_hex(8))

    async def post_tx_send(self, coin, wallet_id, tx_request_id, req_id=None):
        self.calls.append("post_tx_send")
        self.sent.append(tx_request_id)
        self.tx_requests[tx_request_id].state = "delivered"

    def _create_bitgo_keychain(self, params) -> Keychain:
        y_shares = []
        for data in params["keyShares"]:
            share = KeychainShare.from_dict(data)
            y_shares.append(YShare(
                i=int(share.from_role),
                j=int(PartyRole.BITGO),
                y=share.public_share,
                u=decrypt_text(self.gpg_key.private_key, share.private_share),
            ))
        combined = self.mpc.key_combine(self.key_share.u_share, y_shares)
        self.p_share = combined.p_share

        def deal(role, public_key):
            y_share = self.key_share.y_shares[role]
            return KeychainShare(
                from_role=PartyRole.BITGO,
                to_role=role,
                public_share=y_share.y,
                private_share=encrypt_text(public_key, y_share.u),
            )

        return Keychain(
            id="3",
            pub=combined.common_pub,
            common_pub=combined.common_pub,
            key_shares=(
                deal(PartyRole.USER, params["userGPGPublicKey"]),
                deal(PartyRole.BACKUP, params["backupGPGPublicKey"]),
            ),
            source="bitgo",
        )

    def _reply_r_share(self, tx_request, record):
        if not self.reply_r_shares:
            return
        signable = bytes.fromhex(tx_request.unsigned_txs[0].signable_hex)
        sign_share = self.mpc.sign_share(signable, self.p_share, [PartyRole.USER])
        user_r_share = RShare(
            i=int(PartyRole.USER), j=int(PartyRole.BITGO), r=record.share[:64], R=record.share[64:]
        )
        to_user = sign_share.r_shares[PartyRole.USER]
        tx_request.signature_shares.append(SignatureShareRecord(
            from_role=PartyRole.BITGO,
            to_role=PartyRole.USER,
            share=to_user.r + to_user.R,
        ))
        self.sign_shares[tx_request.tx_request_id] = sign_share
        self.g_shares[tx_request.tx_request_id] = self.mpc.sign(
            signable, sign_share.x_share, [user_r_share]
        )

    def _combine(self, tx_request, record):
        user_g_share = GShare(
            i=int(PartyRole.USER), y=self.p_share.y, R=record.share[:64], gamma=record.share[64:]
        )
        self.signatures[tx_request.tx_request_id] = self.mpc.sign_combine(
            [user_g_share, self.g_shares[tx_request.tx_request_id]]
        )


@pytest.fixture
def mpc():
    return Eddsa()


@pytest.fixture
def fake_bitgo(mpc):
    return FakeBitGo(mpc)


@pytest.fixture
def user_gpg_key():
    return EncryptionKeyPair.generate()


@pytest.fixture
def keygen_config():
    return KeygenConfig(coin=COIN)


@pytest.fixture
def signing_config():
    return SigningConfig(coin=COIN, wallet_id=WALLET_ID, read_retries=0, read_retry_delay_secs=0)


@pytest.fixture
def user_p_share(mpc, fake_bitgo):
    """User's combined share for a wallet whose Bitgo side is ``fake_bitgo``."""
    user = mpc.key_share(PartyRole.USER, 2, 3)
    backup = mpc.key_share(PartyRole.BACKUP, 2, 3)
    bitgo = fake_bitgo.key_share
    fake_bitgo.p_share = mpc.key_combine(
        bitgo.u_share, [user.y_shares[PartyRole.BITGO], backup.y_shares[PartyRole.BITGO]]
    ).p_share
    return mpc.key_combine(
        user.u_share, [backup.y_shares[PartyRole.USER], bitgo.y_shares[PartyRole.USER]]
    ).p_share
