import pytest

from tss_wallet import (
    ApiConfig,
    ConfigError,
    DecryptionError,
    Keychain,
    SigningState,
    TssWallet,
    WalletConfig,
)

COIN = "tsol"
WALLET_ID = "5b34252f1bf349930e34020a00000000"


@pytest.fixture
def wallet(fake_bitgo, mpc):
    config = WalletConfig(coin=COIN, read_retries=0, read_retry_delay_secs=0)
    return TssWallet(config, client=fake_bitgo, mpc=mpc)


async def test_create_keychains_and_sign(wallet, fake_bitgo, mpc):
    keychains = await wallet.create_keychains("passphrase")
    wallet.set_wallet_id(WALLET_ID)

    tx_request = await wallet.prebuild_tx_with_intent({
        "recipients": [{"address": "addr", "amount": "10000"}],
    })
    signed = await wallet.sign_tx_request(tx_request, keychains.user, "passphrase")

    signable = bytes.fromhex(tx_request.unsigned_txs[0].signable_hex)
    signature = fake_bitgo.signatures[tx_request.tx_request_id]
    assert signature.y == keychains.user.common_pub
    assert mpc.verify(signable, signature)
    assert signed.state == "delivered"
    assert wallet.signer.state(tx_request.tx_request_id) is SigningState.SENT


async def test_sign_with_wrong_passphrase(wallet, fake_bitgo):
    keychains = await wallet.create_keychains("passphrase")
    wallet.set_wallet_id(WALLET_ID)
    tx_request = fake_bitgo.add_tx_request()

    with pytest.raises(DecryptionError, match="Incorrect passphrase"):
        await wallet.sign_tx_request(tx_request, keychains.user, "wrong")
    assert "post_signature_share" not in fake_bitgo.calls


async def test_sign_without_encrypted_prv(wallet, fake_bitgo):
    wallet.set_wallet_id(WALLET_ID)
    tx_request = fake_bitgo.add_tx_request()

    with pytest.raises(ConfigError, match="no encrypted private key"):
        await wallet.sign_tx_request(tx_request, Keychain(id="1"), "passphrase")


async def test_signing_requires_wallet_id(wallet):
    assert wallet.wallet_id is None
    with pytest.raises(ConfigError, match="No wallet id set"):
        await wallet.prebuild_tx_with_intent({"recipients": [{"address": "a", "amount": "1"}]})


def test_set_wallet_id_rebinds_signer(wallet):
    wallet.set_wallet_id("first")
    first = wallet.signer
    wallet.set_wallet_id("second")

    assert wallet.signer is not first
    assert wallet.wallet_id == "second"


def test_requires_api_or_client():
    with pytest.raises(ConfigError):
        TssWallet(WalletConfig(coin=COIN))


def test_builds_http_client_from_api_config():
    api = ApiConfig(base_url="https://bitgo.fakeurl", access_token="token")
    wallet = TssWallet(WalletConfig(coin=COIN, wallet_id=WALLET_ID, api=api))

    assert wallet.get_info() == {
        "coin": COIN,
        "wallet_id": WALLET_ID,
        "base_url": "https://bitgo.fakeurl",
    }


async def test_context_manager_closes_owned_client():
    api = ApiConfig(base_url="https://bitgo.fakeurl")

    async with TssWallet(WalletConfig(coin=COIN, api=api)) as wallet:
        assert not wallet.client.is_closed

    assert wallet.client.is_closed


async def test_aclose_leaves_injected_client_alone(wallet, fake_bitgo):
    await wallet.aclose()

    assert wallet.client is fake_bitgo
