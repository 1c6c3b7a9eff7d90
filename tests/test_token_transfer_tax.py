from __future__ import annotations

import pytest

from launchpad.runtime.apply.token import compute_tax_split
from launchpad.runtime.errors import InsufficientAllowance, InsufficientBalance, InvalidArgument, TokenNotFound, Unauthorized
from launchpad.runtime.state_invariants import token_supply_holds

FEE = 10**16


@pytest.fixture
def token(executor, token_args, addrs) -> str:
    t = executor.create_token(**token_args(), payment=FEE, caller=addrs.alice)
    executor.set_pool(t, addrs.pool, caller=addrs.alice)
    return t


def _tok(executor, token: str) -> dict:
    return executor.read_state()["tokens"][token]


def test_plain_transfer_is_untaxed(executor, token, addrs) -> None:
    out = executor.transfer(token, addrs.bob, 10_000, caller=addrs.alice)
    assert out["kind"] == "transfer"
    assert out["tax"] == 0
    assert executor.balance_of(token, addrs.bob) == 10_000
    assert executor.events(name="TaxCollected") == []


def test_sell_splits_tax_across_recipients(executor, token, addrs) -> None:
    out = executor.transfer(token, addrs.pool, 10_000, caller=addrs.alice)

    assert out["kind"] == "sell"
    assert out["tax"] == 500
    assert out["net"] == 9_500
    assert executor.balance_of(token, addrs.pool) == 9_500
    # lp_percentage is not a tax recipient: 500 over marketing 1000 + w1 1000 + w2 1000.
    assert _tok(executor, token)["liquidity_accumulator"] == 0
    assert executor.balance_of(token, addrs.marketing) == 166
    assert executor.balance_of(token, addrs.w1) == 166
    assert executor.balance_of(token, addrs.w2) == 168

    transfers = [e["data"] for e in executor.events(name="Transfer")]
    assert transfers[0] == {"from": addrs.alice, "to": addrs.pool, "amount": 9_500}
    assert {"from": addrs.alice, "to": addrs.w2, "amount": 168} in transfers
    assert all(t["to"] != token for t in transfers)

    taxed = executor.events(name="TaxCollected")
    assert taxed[0]["token"] == token
    assert taxed[0]["data"]["kind"] == "sell"
    assert taxed[0]["data"]["tax"] == 500


def test_buy_uses_buy_tax(executor, token_args, addrs) -> None:
    t = executor.create_token(**token_args(buy_tax=1000, sell_tax=0), payment=FEE, caller=addrs.alice)
    executor.set_pool(t, addrs.pool, caller=addrs.alice)

    # Selling into the pool is untaxed with sell_tax 0.
    executor.transfer(t, addrs.pool, 100_000, caller=addrs.alice)
    assert executor.balance_of(t, addrs.pool) == 100_000

    out = executor.transfer(t, addrs.bob, 10_000, caller=addrs.pool)
    assert out["kind"] == "buy"
    assert out["tax"] == 1_000
    assert executor.balance_of(t, addrs.bob) == 9_000


def test_remainder_goes_to_last_wallet(executor, token, addrs) -> None:
    out = executor.transfer(token, addrs.pool, 999, caller=addrs.alice)
    # tax 49: marketing 16, w1 16, w2 16 + remainder 1
    assert out["tax"] == 49
    assert _tok(executor, token)["liquidity_accumulator"] == 0
    assert executor.balance_of(token, addrs.marketing) == 16
    assert executor.balance_of(token, addrs.w1) == 16
    assert executor.balance_of(token, addrs.w2) == 17


def test_remainder_goes_to_marketing_without_wallets(executor, token_args, addrs) -> None:
    t = executor.create_token(**token_args(wallets=[], percentages=[]), payment=FEE, caller=addrs.alice)
    executor.set_pool(t, addrs.pool, caller=addrs.alice)

    executor.transfer(t, addrs.pool, 999, caller=addrs.alice)
    # Marketing is the only tax recipient, so it takes the whole tax of 49.
    assert _tok(executor, t)["liquidity_accumulator"] == 0
    assert executor.balance_of(t, addrs.marketing) == 49


def test_default_scenario_sends_whole_tax_to_marketing(executor, token_args, addrs) -> None:
    t = executor.create_token(
        **token_args(lp_percentage=8000, marketing_percentage=200, wallets=[], percentages=[]),
        payment=FEE,
        caller=addrs.alice,
    )
    executor.set_pool(t, addrs.pool, caller=addrs.alice)

    out = executor.transfer(t, addrs.pool, 2_000, caller=addrs.alice)
    assert out["tax"] == 100
    assert executor.balance_of(t, addrs.marketing) == 100
    assert _tok(executor, t)["liquidity_accumulator"] == 0


def test_tax_without_eligible_recipients_goes_to_liquidity(executor, token_args, addrs) -> None:
    t = executor.create_token(
        **token_args(marketing_percentage=0, wallets=[], percentages=[]),
        payment=FEE,
        caller=addrs.alice,
    )
    executor.set_pool(t, addrs.pool, caller=addrs.alice)

    executor.transfer(t, addrs.pool, 999, caller=addrs.alice)
    assert _tok(executor, t)["liquidity_accumulator"] == 49
    assert executor.balance_of(t, addrs.marketing) == 0
    assert token_supply_holds(_tok(executor, t))


def test_creator_policy_credits_unallocated_share(make_executor, token_args, addrs) -> None:
    ex = make_executor(allocation_policy="creator")
    t = ex.create_token(**token_args(percentages=[500, 500]), payment=FEE, caller=addrs.alice)
    ex.set_pool(t, addrs.pool, caller=addrs.alice)

    ex.transfer(t, addrs.bob, 20_000, caller=addrs.alice)
    ex.transfer(t, addrs.pool, 10_000, caller=addrs.bob)

    # The creator's unallocated 1000 bps joins the base: 500 over
    # marketing 1000 + w1 500 + w2 500 + creator 1000.
    assert ex.read_state()["tokens"][t]["liquidity_accumulator"] == 0
    assert ex.balance_of(t, addrs.marketing) == 166
    assert ex.balance_of(t, addrs.w1) == 83
    assert ex.balance_of(t, addrs.w2) == 85
    supply = 1_000_000 * 10**18
    assert ex.balance_of(t, addrs.alice) == supply - 20_000 + 166


def test_insufficient_balance_changes_nothing(executor, token, addrs) -> None:
    before = executor.read_state()
    with pytest.raises(InsufficientBalance) as e:
        executor.transfer(token, addrs.carol, 1, caller=addrs.bob)
    assert e.value.details == {"holder": addrs.bob, "balance": 0, "amount": 1}
    assert executor.read_state() is before


def test_transfer_argument_checks(executor, token, addrs) -> None:
    with pytest.raises(InvalidArgument):
        executor.transfer(token, addrs.bob, -1, caller=addrs.alice)
    with pytest.raises(InvalidArgument):
        executor.transfer(token, "0x" + "00" * 20, 1, caller=addrs.alice)
    with pytest.raises(InvalidArgument):
        executor.transfer(token, "not-an-address", 1, caller=addrs.alice)
    with pytest.raises(TokenNotFound):
        executor.transfer(addrs.carol, addrs.bob, 1, caller=addrs.alice)


def test_approve_and_transfer_from(executor, token, addrs) -> None:
    executor.approve(token, addrs.bob, 1_000, caller=addrs.alice)
    assert executor.allowance(token, addrs.alice, addrs.bob) == 1_000

    executor.transfer_from(token, addrs.alice, addrs.carol, 600, caller=addrs.bob)
    assert executor.balance_of(token, addrs.carol) == 600
    assert executor.allowance(token, addrs.alice, addrs.bob) == 400

    with pytest.raises(InsufficientAllowance):
        executor.transfer_from(token, addrs.alice, addrs.carol, 500, caller=addrs.bob)
    assert executor.allowance(token, addrs.alice, addrs.bob) == 400

    approvals = executor.events(name="Approval")
    assert approvals[0]["data"] == {"owner": addrs.alice, "spender": addrs.bob, "amount": 1_000}


def test_transfer_from_into_pool_is_taxed(executor, token, addrs) -> None:
    executor.approve(token, addrs.bob, 10_000, caller=addrs.alice)
    out = executor.transfer_from(token, addrs.alice, addrs.pool, 10_000, caller=addrs.bob)
    assert out["kind"] == "sell"
    assert out["tax"] == 500
    assert executor.allowance(token, addrs.alice, addrs.bob) == 0


def test_only_creator_registers_pools(executor, token, addrs) -> None:
    with pytest.raises(Unauthorized):
        executor.set_pool(token, addrs.carol, caller=addrs.bob)

    executor.set_pool(token, addrs.pool, False, caller=addrs.alice)
    assert executor.get_token(token)["pools"] == []
    out = executor.transfer(token, addrs.pool, 10_000, caller=addrs.alice)
    assert out["kind"] == "transfer"


def test_tax_parameters_never_change(executor, token, addrs) -> None:
    info = executor.get_token(token)
    executor.transfer(token, addrs.pool, 50_000, caller=addrs.alice)
    executor.set_deployment_fee(0, caller=addrs.owner)
    after = executor.get_token(token)
    for k in ("buy_tax", "sell_tax", "lp_percentage", "marketing_percentage", "additional_wallets"):
        assert after[k] == info[k]


def test_supply_is_conserved_across_transfers(executor, token, addrs) -> None:
    executor.transfer(token, addrs.bob, 123_457, caller=addrs.alice)
    executor.transfer(token, addrs.pool, 77_777, caller=addrs.bob)
    executor.transfer(token, addrs.carol, 33_333, caller=addrs.pool)
    executor.transfer(token, addrs.pool, 1_001, caller=addrs.carol)
    executor.approve(token, addrs.carol, 9_999, caller=addrs.bob)
    executor.transfer_from(token, addrs.bob, addrs.pool, 9_999, caller=addrs.carol)

    assert token_supply_holds(_tok(executor, token))


def _token_record(*, lp: int, marketing: int, wallets: list, policy: str = "headroom") -> dict:
    return {
        "address": "TOKEN",
        "creator": "CREATOR",
        "marketing_wallet": "MKT",
        "lp_percentage": lp,
        "marketing_percentage": marketing,
        "additional_wallets": [{"address": f"W{i}", "percentage": p} for i, p in enumerate(wallets)],
        "allocation_policy": policy,
    }


@pytest.mark.parametrize(
    "record",
    [
        _token_record(lp=7000, marketing=1000, wallets=[1000, 1000]),
        _token_record(lp=5000, marketing=0, wallets=[]),
        _token_record(lp=5001, marketing=999, wallets=[1, 2, 3]),
        _token_record(lp=6000, marketing=700, wallets=[300], policy="creator"),
        _token_record(lp=9500, marketing=500, wallets=[0, 0], policy="exact"),
        _token_record(lp=0, marketing=0, wallets=[]),
    ],
)
@pytest.mark.parametrize("tax", [0, 1, 2, 3, 7, 99, 1_000, 12_345, 10**18 + 7])
def test_shares_sum_to_tax_exactly(record: dict, tax: int) -> None:
    shares = compute_tax_split(record, tax)
    assert sum(a for _, _, a in shares) == tax
    assert all(a >= 0 for _, _, a in shares)


def test_split_ignores_lp_percentage() -> None:
    shares = compute_tax_split(_token_record(lp=8000, marketing=200, wallets=[]), 100)
    assert shares == [("marketing", "MKT", 100)]

    shares = compute_tax_split(_token_record(lp=7000, marketing=1000, wallets=[1000]), 1_000)
    assert shares == [("marketing", "MKT", 500), ("wallet", "W0", 500)]


def test_split_with_no_eligible_recipients_goes_to_lp() -> None:
    assert compute_tax_split(_token_record(lp=5000, marketing=0, wallets=[0]), 7) == [("lp", "TOKEN", 7)]
