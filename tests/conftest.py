from __future__ import annotations

import os
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest
from eth_account import Account
from web3 import Web3

# Ensure local "src/" takes precedence over any globally-installed "launchpad" package.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

src_str = str(SRC)
if src_str not in sys.path:
    sys.path.insert(0, src_str)


# Hardhat's default dev accounts: valid, checksummed, distinct.
ADDRS = SimpleNamespace(
    owner="0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266",
    alice="0x70997970C51812dc3A010C7d01b50e0d17dc79C8",
    bob="0x3C44CdDdB6a900fa2b585dd299e03d12FA4293BC",
    carol="0x90F79bf6EB2c4f870365E785982E1f101E93b906",
    marketing="0x15d34AAf54267DB7D7c367839AAf71A00a2C6A65",
    w1="0x9965507D1a55bcC2695C58ba16FB37d819B0A4dc",
    w2="0x976EA74026E726554dB657fA54763abd0C3a0aa9",
    pool="0x14dC79964da2C08b23698B3D3cc7Ca32193d9955",
)

FEE = 10**16  # 0.01 ether

# Native balance every test creator starts with.
FUNDED = 10**18


@pytest.fixture(autouse=True)
def _restore_environ():
    """create_app() exports LAUNCHPAD_* into os.environ; undo it per test."""
    saved = dict(os.environ)
    from launchpad.runtime import metrics

    metrics.reset()
    yield
    os.environ.clear()
    os.environ.update(saved)


@pytest.fixture
def addrs() -> SimpleNamespace:
    return ADDRS


@pytest.fixture
def token_args():
    """Creation args for a valid token; call with overrides."""

    def _make(**overrides):
        args = {
            "name": "Test Token",
            "symbol": "TEST",
            "total_supply": 1_000_000 * 10**18,
            "buy_tax": 500,
            "sell_tax": 500,
            "lp_percentage": 7000,
            "marketing_wallet": ADDRS.marketing,
            "marketing_percentage": 1000,
            "wallets": [ADDRS.w1, ADDRS.w2],
            "percentages": [1000, 1000],
        }
        args.update(overrides)
        return args

    return _make


@pytest.fixture
def make_executor(tmp_path: Path):
    from launchpad.runtime.executor import LaunchpadExecutor

    opened = []

    def _make(*, db_name: str = "launchpad.db", **kwargs):
        params = {
            "db_path": str(tmp_path / db_name),
            "network": "sepolia",
            "owner": ADDRS.owner,
            "deployment_fee": FEE,
            "allocation_policy": "headroom",
        }
        params.update(kwargs)
        if not str(params["network"]).startswith("solana"):
            params.setdefault("genesis_balances", {ADDRS.alice: FUNDED, ADDRS.bob: FUNDED, ADDRS.carol: FUNDED})
        ex = LaunchpadExecutor(**params)
        opened.append(ex)
        return ex

    yield _make

    for ex in opened:
        ex.close()


@pytest.fixture
def executor(make_executor):
    return make_executor()


class SigningWallets:
    """Deterministic keys that sign calls the way an HTTP client must.

    Tracks one nonce per account so consecutive calls stay fresh.
    """

    NAMES = ("owner", "alice", "bob", "carol")

    def __init__(self, network: str = "sepolia") -> None:
        self.network = network
        self.accounts = {n: Account.from_key(Web3.keccak(text=f"launchpad-test-{n}")) for n in self.NAMES}
        self.nonces = {n: 0 for n in self.NAMES}

    def address(self, name: str) -> str:
        return self.accounts[name].address

    def sign(self, name: str, call: str, payload: dict, *, nonce=None) -> dict:
        """caller/nonce/signature fields for a request body."""
        from launchpad.runtime.call_auth import sign_call_evm

        if nonce is None:
            self.nonces[name] += 1
            nonce = self.nonces[name]
        acct = self.accounts[name]
        sig = sign_call_evm(
            network=self.network,
            call=call,
            caller=acct.address,
            nonce=nonce,
            payload=payload,
            private_key=acct.key,
        )
        return {"caller": acct.address, "nonce": nonce, "signature": sig}

    def body(self, name: str, call: str, fields: dict, **fixed) -> dict:
        """A signed request body; `fixed` are path parameters folded into the signed payload."""
        return dict(fields, **self.sign(name, call, dict(fixed, **fields)))


@pytest.fixture
def wallets() -> SigningWallets:
    return SigningWallets()


@pytest.fixture
def signed_executor(make_executor, wallets):
    """Executor owned and funded by the signing wallets."""
    return make_executor(
        owner=wallets.address("owner"),
        genesis_balances={wallets.address(n): FUNDED for n in ("alice", "bob", "carol")},
    )
