from __future__ import annotations

import copy
import logging
import secrets
import threading
import time
from typing import Any, Dict, List, Optional, Sequence

from launchpad.ledger.addresses import get_address_validator
from launchpad.ledger.config_validator import ALLOCATION_POLICIES
from launchpad.ledger.token_config import TokenConfig
from launchpad.runtime.apply.token import get_token
from launchpad.runtime.call_types import CallEnvelope
from launchpad.runtime.domain_apply import apply_call
from launchpad.runtime.errors import LaunchpadError
from launchpad.runtime.metrics import inc_counter, set_gauge
from launchpad.runtime.pool_registry import DEFAULT_POOL_REGISTRY, PoolRegistry
from launchpad.runtime.runtime_logging import log_event
from launchpad.runtime.single_writer import SingleWriterLock
from launchpad.runtime.sqlite_db import SqliteDB, SqliteLedgerStore

Json = Dict[str, Any]

log = logging.getLogger("launchpad.executor")


def _now_ms() -> int:
    return int(time.time() * 1000)


def _safe_int(v: Any, default: int) -> int:
    try:
        return int(v)
    except Exception:
        return int(default)


class ExecutorError(RuntimeError):
    pass


class LaunchpadExecutor:
    """Launchpad executor: the single writer of the factory and token ledger.

    Every mutating call goes through submit(). Calls are serialised on one
    lock, applied to a deep copy of the current snapshot, persisted together
    with their journal row and events in one SQLite transaction, and only
    then swapped in. Readers use the current snapshot without locking; a
    committed snapshot is never mutated again.
    """

    def __init__(
        self,
        *,
        db_path: str,
        network: str,
        owner: str,
        deployment_fee: int,
        allocation_policy: str = "headroom",
        pools: Optional[PoolRegistry] = None,
        single_writer: bool = True,
        genesis_balances: Optional[Dict[str, int]] = None,
    ) -> None:
        self.network = str(network or "").strip().lower()
        self._av = get_address_validator(self.network)

        if allocation_policy not in ALLOCATION_POLICIES:
            raise ExecutorError(f"unknown allocation_policy {allocation_policy!r}")
        self.allocation_policy = str(allocation_policy)

        if not self._av.is_valid(owner) or self._av.is_zero(owner):
            raise ExecutorError(f"owner must be a valid non-zero {self._av.family} address; got {owner!r}")
        self._genesis_owner = self._av.normalize(owner)
        self._genesis_fee = int(deployment_fee)
        if self._genesis_fee < 0:
            raise ExecutorError(f"deployment_fee must be >= 0; got {deployment_fee}")

        self._pools = pools or DEFAULT_POOL_REGISTRY
        self._genesis_balances = self._normalize_balances(genesis_balances or {})

        self.db_path = str(db_path)

        self._writer_lock: Optional[SingleWriterLock] = None
        if single_writer:
            self._writer_lock = SingleWriterLock.for_db(self.db_path)
            self._writer_lock.acquire()

        try:
            self._db = SqliteDB(path=self.db_path)
            self._store = SqliteLedgerStore(db=self._db)

            if self._store.exists():
                self.state = self._store.read()
            else:
                self.state = self._initial_state()
                self._store.write_genesis(self.state)

            self._check_db_consistency_fail_closed()
        except BaseException:
            self.close()
            raise

        self._lock = threading.Lock()
        self._refresh_gauges(self.state)

    def _initial_state(self) -> Json:
        return {
            "network": self.network,
            "seq": 0,
            "factory": {
                "owner": self._genesis_owner,
                "deployment_fee": self._genesis_fee,
                "accumulated_fees": 0,
                "total_withdrawn": 0,
                "allocation_policy": self.allocation_policy,
                "salt": secrets.token_hex(16),
                "token_count": 0,
                "records": [],
                "user_tokens": {},
                "withdrawals": [],
                "deposits": {},
            },
            "tokens": {},
            "native_balances": dict(self._genesis_balances),
            "nonces": {},
            "created_ms": _now_ms(),
        }

    def _normalize_balances(self, balances: Dict[str, Any]) -> Dict[str, int]:
        """Native balances funded at genesis; applied only when the DB is created."""
        out: Dict[str, int] = {}
        for addr, amount in balances.items():
            if not self._av.is_valid(addr):
                raise ExecutorError(f"genesis balance for invalid {self._av.family} address {addr!r}")
            wei = _safe_int(amount, -1)
            if wei < 0:
                raise ExecutorError(f"genesis balance for {addr!r} must be a non-negative integer; got {amount!r}")
            key = self._av.normalize(addr)
            out[key] = out.get(key, 0) + wei
        return out

    # ----------------------------
    # DB consistency checks
    # ----------------------------

    def _check_db_consistency_fail_closed(self) -> None:
        """Fail-closed if the snapshot disagrees with the journal or the operator config."""
        st_seq = _safe_int(self.state.get("seq"), 0)
        max_seq = self._store.max_call_seq()
        if st_seq != max_seq:
            raise ExecutorError(
                f"db_invariant_violation: snapshot seq {st_seq} but journal ends at {max_seq}. Refuse to start."
            )

        st_network = str(self.state.get("network") or "").strip()
        if st_network != self.network:
            raise ExecutorError(f"network mismatch: db={st_network!r} executor={self.network!r}. Refuse to start.")

        st_policy = str((self.state.get("factory") or {}).get("allocation_policy") or "")
        if st_policy != self.allocation_policy:
            raise ExecutorError(
                f"allocation_policy mismatch: db={st_policy!r} executor={self.allocation_policy!r}. Refuse to start."
            )

    # ----------------------------
    # Lifecycle
    # ----------------------------

    def close(self) -> None:
        if self._writer_lock is not None:
            self._writer_lock.release()
            self._writer_lock = None

    def __enter__(self) -> "LaunchpadExecutor":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    # ----------------------------
    # Call submission
    # ----------------------------

    def submit(self, env: Any) -> Json:
        """Apply one call envelope and commit it.

        The in-process API trusts `caller`; a signature is checked only when
        the envelope carries one. Raises LaunchpadError for caller errors; the
        ledger is left unchanged.
        """
        return self._submit(env, require_signature=False)

    def submit_signed(self, env: Any) -> Json:
        """Apply a call that arrived over the network.

        The envelope must be signed by its caller with a fresh nonce.
        """
        return self._submit(env, require_signature=True)

    def _submit(self, env: Any, *, require_signature: bool) -> Json:
        with self._lock:
            norm = CallEnvelope.from_json(env).with_ts(_now_ms())
            working = copy.deepcopy(self.state)
            try:
                result = apply_call(working, norm, pools=self._pools, require_signature=require_signature)
            except LaunchpadError as e:
                inc_counter("calls_rejected")
                inc_counter("calls", call=norm.call, outcome="rejected")
                log_event(
                    log,
                    "call_rejected",
                    level=logging.WARNING,
                    call=norm.call,
                    caller=norm.caller,
                    code=e.code,
                    reason=e.reason,
                )
                raise

            seq = _safe_int(working.get("seq"), 0) + 1
            working["seq"] = seq
            events: List[Json] = list(result.get("events") or [])

            self._store.commit(st=working, envelope=norm.to_json(), result=result, events=events)
            self.state = working

        self._record_metrics(norm.call, result)
        log_event(log, "call_applied", call=norm.call, caller=norm.caller, seq=seq, events=len(events))

        out = dict(result)
        out["seq"] = seq
        return out

    def _record_metrics(self, call: str, result: Json) -> None:
        inc_counter("calls_applied")
        inc_counter("calls", call=call, outcome="applied")
        if call == "CREATE_TOKEN":
            inc_counter("tokens_created")
        elif call in ("TOKEN_TRANSFER", "TOKEN_TRANSFER_FROM"):
            inc_counter("token_transfers")
        elif call == "WITHDRAW_FEES":
            inc_counter("fees_withdrawn_wei", _safe_int(result.get("amount"), 0))
        self._refresh_gauges(self.state)

    @staticmethod
    def _refresh_gauges(st: Json) -> None:
        fac = st.get("factory") or {}
        set_gauge("token_count", _safe_int(fac.get("token_count"), 0))
        set_gauge("accumulated_fees_wei", _safe_int(fac.get("accumulated_fees"), 0))

    # ----------------------------
    # Factory calls
    # ----------------------------

    def create_token(
        self,
        *,
        name: Any,
        symbol: Any,
        total_supply: Any,
        buy_tax: Any,
        sell_tax: Any,
        lp_percentage: Any,
        marketing_wallet: Any,
        marketing_percentage: Any,
        wallets: Sequence[Any] = (),
        percentages: Sequence[Any] = (),
        payment: int,
        caller: str,
    ) -> str:
        """Issue a new token; returns its address."""
        out = self.submit(
            {
                "call": "CREATE_TOKEN",
                "caller": caller,
                "payload": {
                    "name": name,
                    "symbol": symbol,
                    "total_supply": total_supply,
                    "buy_tax": buy_tax,
                    "sell_tax": sell_tax,
                    "lp_percentage": lp_percentage,
                    "marketing_wallet": marketing_wallet,
                    "marketing_percentage": marketing_percentage,
                    "wallets": list(wallets),
                    "percentages": list(percentages),
                    "payment": payment,
                },
            }
        )
        return str(out["token"])

    def create_token_from_config(self, config: TokenConfig, *, payment: int, caller: str) -> str:
        j = config.to_json()
        wallets = j.pop("additional_wallets")
        return self.create_token(
            **j,
            wallets=[w["address"] for w in wallets],
            percentages=[w["percentage"] for w in wallets],
            payment=payment,
            caller=caller,
        )

    def set_deployment_fee(self, new_fee: int, *, caller: str) -> Json:
        return self.submit({"call": "SET_DEPLOYMENT_FEE", "caller": caller, "payload": {"fee": new_fee}})

    def withdraw_fees(self, *, caller: str) -> int:
        out = self.submit({"call": "WITHDRAW_FEES", "caller": caller, "payload": {}})
        return int(out["amount"])

    def transfer_ownership(self, new_owner: str, *, caller: str) -> Json:
        return self.submit({"call": "TRANSFER_OWNERSHIP", "caller": caller, "payload": {"new_owner": new_owner}})

    def credit_native(self, account: str, amount: int, reference: str, *, caller: str) -> Json:
        return self.submit(
            {
                "call": "CREDIT_NATIVE",
                "caller": caller,
                "payload": {"account": account, "amount": amount, "reference": reference},
            }
        )

    # ----------------------------
    # Token calls
    # ----------------------------

    def transfer(self, token: str, to: str, amount: int, *, caller: str) -> Json:
        return self.submit(
            {"call": "TOKEN_TRANSFER", "caller": caller, "payload": {"token": token, "to": to, "amount": amount}}
        )

    def approve(self, token: str, spender: str, amount: int, *, caller: str) -> Json:
        return self.submit(
            {
                "call": "TOKEN_APPROVE",
                "caller": caller,
                "payload": {"token": token, "spender": spender, "amount": amount},
            }
        )

    def transfer_from(self, token: str, sender: str, to: str, amount: int, *, caller: str) -> Json:
        return self.submit(
            {
                "call": "TOKEN_TRANSFER_FROM",
                "caller": caller,
                "payload": {"token": token, "from": sender, "to": to, "amount": amount},
            }
        )

    def set_pool(self, token: str, pool: str, enabled: bool = True, *, caller: str) -> Json:
        return self.submit(
            {
                "call": "TOKEN_SET_POOL",
                "caller": caller,
                "payload": {"token": token, "pool": pool, "enabled": enabled},
            }
        )

    # ----------------------------
    # Reads (lock-free, current snapshot)
    # ----------------------------

    def read_state(self) -> Json:
        return self.state

    def _factory(self) -> Json:
        return self.state.get("factory") or {}

    def _key(self, address: Any) -> str:
        s = str(address or "").strip()
        return self._av.normalize(s) if self._av.is_valid(s) else s

    def owner(self) -> str:
        return str(self._factory().get("owner") or "")

    def deployment_fee(self) -> int:
        return _safe_int(self._factory().get("deployment_fee"), 0)

    def accumulated_fees(self) -> int:
        return _safe_int(self._factory().get("accumulated_fees"), 0)

    def token_count(self) -> int:
        return _safe_int(self._factory().get("token_count"), 0)

    def get_user_tokens(self, address: str) -> List[str]:
        user_tokens = self._factory().get("user_tokens") or {}
        return list(user_tokens.get(self._key(address)) or [])

    def get_record(self, index: int) -> Optional[Json]:
        records = self._factory().get("records") or []
        if 0 <= int(index) < len(records):
            return records[int(index)]
        return None

    def get_token(self, token: str) -> Json:
        """Token accessors without the balance and allowance books."""
        rec = get_token(self.state, token)
        return {k: v for k, v in rec.items() if k not in ("balances", "allowances")}

    def balance_of(self, token: str, holder: str) -> int:
        rec = get_token(self.state, token)
        return _safe_int((rec.get("balances") or {}).get(self._key(holder)), 0)

    def allowance(self, token: str, owner: str, spender: str) -> int:
        rec = get_token(self.state, token)
        mine = (rec.get("allowances") or {}).get(self._key(owner)) or {}
        return _safe_int(mine.get(self._key(spender)), 0)

    def native_balance_of(self, address: str) -> int:
        return _safe_int((self.state.get("native_balances") or {}).get(self._key(address)), 0)

    def nonce_of(self, address: str) -> int:
        """Last nonce accepted from `address`; the next signed call must exceed it."""
        return _safe_int((self.state.get("nonces") or {}).get(self._key(address)), 0)

    def events(
        self,
        *,
        since_id: int = 0,
        limit: int = 100,
        name: Optional[str] = None,
        token: Optional[str] = None,
    ) -> List[Json]:
        return self._store.list_events(
            since_id=since_id,
            limit=limit,
            name=name,
            token=self._key(token) if token else None,
        )

    # ----------------------------
    # Journal replay
    # ----------------------------

    def replay_journal(self) -> Json:
        """Rebuild the ledger from genesis by re-applying every journaled call.

        Does not touch the live state. Raises ExecutorError if a journaled
        call no longer applies.
        """
        st = self._store.read_genesis()
        for env in self._store.iter_calls(since_seq=0):
            seq = int(env.pop("seq"))
            try:
                apply_call(st, env, pools=self._pools)
            except LaunchpadError as e:
                raise ExecutorError(f"replay_failed at seq {seq}: {e.code}:{e.reason}") from e
            st["seq"] = seq
        return st
