"""In-process execution environment holding Safe and contract state."""
from __future__ import annotations

import threading
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from typing import Any

from eth_abi.exceptions import DecodingError
from eth_utils import to_hex

from nested_safe_builder.domain.approval import ApprovalLedger
from nested_safe_builder.domain.safe import SafeState
from nested_safe_builder.environment.contracts import (
    AccessKind,
    CallContext,
    CallReverted,
    Contract,
    StateAccess,
)
from nested_safe_builder.evm.addresses import normalize_address
from nested_safe_builder.evm.codecs.calls import (
    MULTICALL3_ADDRESS,
    decode_aggregate3_value,
    decode_approve_hash,
)
from nested_safe_builder.evm.safe_tx import SafeTransaction
from nested_safe_builder.evm.signatures import collect_valid_signers, split_signatures
from nested_safe_builder.orchestration.errors import (
    ExecutionReverted,
    InsufficientSignatures,
    ReplayRejected,
    UnknownSafe,
)
from nested_safe_builder.types import CommandStatus, Operation


@dataclass(slots=True, frozen=True)
class CallResult:
    target: str
    success: bool
    return_data: bytes = b""

    def as_dict(self) -> dict[str, Any]:
        return {
            "target": self.target,
            "success": self.success,
            "return_data": to_hex(self.return_data),
        }


@dataclass(slots=True, frozen=True)
class ExecutionReceipt:
    safe: str
    safe_tx_hash: bytes
    nonce: int
    signers: tuple[str, ...]
    results: tuple[CallResult, ...]
    accesses: tuple[StateAccess, ...]

    def as_dict(self) -> dict[str, Any]:
        return {
            "status": CommandStatus.EXECUTED.value,
            "safe": self.safe,
            "safe_tx_hash": to_hex(self.safe_tx_hash),
            "nonce": self.nonce,
            "signers": list(self.signers),
            "results": [result.as_dict() for result in self.results],
            "accesses": [access.as_dict() for access in self.accesses],
        }


@dataclass(slots=True, frozen=True)
class StateOverride:
    """Fork-only adjustment of a Safe, used to dry-run before approvals exist."""

    safe: str
    threshold: int | None = None
    nonce: int | None = None
    approvals: tuple[tuple[str, bytes], ...] = ()

    def as_dict(self) -> dict[str, Any]:
        return {
            "safe": self.safe,
            "threshold": self.threshold,
            "nonce": self.nonce,
            "approvals": [
                {"approver": approver, "safe_tx_hash": to_hex(safe_tx_hash)}
                for approver, safe_tx_hash in self.approvals
            ],
        }


@dataclass(slots=True)
class WorldState:
    safes: dict[str, SafeState] = field(default_factory=dict)
    storage: dict[str, dict[str, int]] = field(default_factory=dict)
    balances: dict[str, int] = field(default_factory=dict)
    ledger: ApprovalLedger = field(default_factory=ApprovalLedger)

    def copy(self) -> WorldState:
        return WorldState(
            safes=dict(self.safes),
            storage={account: dict(slots) for account, slots in self.storage.items()},
            balances=dict(self.balances),
            ledger=self.ledger.copy(),
        )


class InMemoryEnvironment:
    """Safe-semantics execution environment.

    Safe transactions are authorized with the Safe signature rules, batches are
    delegatecalled into Multicall3 and applied atomically, and every storage
    touch is appended to an access trace. ``fork`` returns an isolated copy
    that must be ``discard``-ed after use.
    """

    def __init__(
        self,
        *,
        chain_id: int = 1,
        multicall_address: str = MULTICALL3_ADDRESS,
        world: WorldState | None = None,
        contracts: dict[str, Contract] | None = None,
        is_fork: bool = False,
    ) -> None:
        self._chain_id = chain_id
        self._multicall_address = normalize_address(multicall_address, field_name="multicall_address")
        self._world = world if world is not None else WorldState()
        self._contracts: dict[str, Contract] = contracts if contracts is not None else {}
        self._accesses: list[StateAccess] = []
        self._lock = threading.RLock()
        self._is_fork = is_fork
        self._discarded = False

    @property
    def chain_id(self) -> int:
        return self._chain_id

    @property
    def multicall_address(self) -> str:
        return self._multicall_address

    @property
    def is_fork(self) -> bool:
        return self._is_fork

    @property
    def is_discarded(self) -> bool:
        return self._discarded

    @property
    def accesses(self) -> tuple[StateAccess, ...]:
        return tuple(self._accesses)

    def register_safe(
        self,
        address: str,
        owners: Iterable[str],
        threshold: int,
        *,
        nonce: int = 0,
    ) -> SafeState:
        state = SafeState.create(address, owners, threshold, nonce=nonce)
        with self._lock:
            self._ensure_live()
            if state.address in self._contracts or state.address in self._world.safes:
                raise ValueError(f"address {state.address} is already in use")
            if self._creates_cycle(state.address, state.owners):
                raise ValueError(f"safe {state.address} would create an ownership cycle")
            self._world.safes[state.address] = state
        return state

    def deploy_contract(self, address: str, contract: Contract) -> str:
        normalized = normalize_address(address, field_name="contract")
        with self._lock:
            self._ensure_live()
            if normalized in self._contracts or normalized in self._world.safes:
                raise ValueError(f"address {normalized} is already in use")
            self._contracts[normalized] = contract
        return normalized

    def set_balance(self, address: str, amount: int) -> None:
        if amount < 0:
            raise ValueError("balance must be non-negative")
        with self._lock:
            self._ensure_live()
            self._world.balances[normalize_address(address, field_name="account")] = amount

    def get_safe(self, address: str) -> SafeState:
        self._ensure_live()
        try:
            key = normalize_address(address, field_name="safe")
        except ValueError as exc:
            raise UnknownSafe(f"unknown safe: {address}") from exc
        state = self._world.safes.get(key)
        if state is None:
            raise UnknownSafe(f"unknown safe: {address}")
        return state

    def is_safe(self, address: str) -> bool:
        try:
            self.get_safe(address)
        except UnknownSafe:
            return False
        return True

    def is_hash_approved(self, owner_safe: str, approver: str, safe_tx_hash: bytes) -> bool:
        self._ensure_live()
        return self._world.ledger.is_approved(
            normalize_address(owner_safe, field_name="owner_safe"),
            normalize_address(approver, field_name="approver"),
            safe_tx_hash,
        )

    def approvers(self, owner_safe: str, safe_tx_hash: bytes) -> tuple[str, ...]:
        self._ensure_live()
        return self._world.ledger.approvers(
            normalize_address(owner_safe, field_name="owner_safe"),
            safe_tx_hash,
        )

    def balance_of(self, address: str) -> int:
        self._ensure_live()
        return self._world.balances.get(normalize_address(address, field_name="account"), 0)

    def storage_at(self, account: str, slot: str) -> int:
        self._ensure_live()
        return self._world.storage.get(account, {}).get(slot, 0)

    def load_storage(self, account: str, slot: str) -> int:
        value = self.storage_at(account, slot)
        self._record(account, slot, AccessKind.READ, value, value)
        return value

    def store(self, account: str, slot: str, value: int) -> None:
        previous = self.storage_at(account, slot)
        self._world.storage.setdefault(account, {})[slot] = value
        self._record(account, slot, AccessKind.WRITE, previous, value)

    def exec_transaction(
        self,
        transaction: SafeTransaction,
        signatures: bytes,
        *,
        sender: str,
    ) -> ExecutionReceipt:
        with self._lock:
            self._ensure_live()
            mark = len(self._accesses)
            safe = self.get_safe(transaction.safe)
            self._record(safe.address, "nonce", AccessKind.READ, safe.nonce, safe.nonce)

            if transaction.chain_id != self._chain_id:
                raise ReplayRejected(
                    f"chain mismatch: transaction chain {transaction.chain_id} != "
                    f"environment chain {self._chain_id}"
                )
            if transaction.nonce != safe.nonce:
                raise ReplayRejected(
                    f"stale nonce: transaction nonce {transaction.nonce} != "
                    f"safe nonce {safe.nonce}"
                )

            safe_tx_hash = transaction.safe_tx_hash()
            try:
                parsed = split_signatures(signatures)
            except ValueError as exc:
                raise InsufficientSignatures(f"malformed signatures: {exc}") from exc

            signers = collect_valid_signers(
                safe_tx_hash,
                parsed,
                owners=safe.owners,
                is_hash_approved=lambda owner: self._world.ledger.is_approved(
                    safe.address, owner, safe_tx_hash
                ),
                sender=sender,
            )
            if len(signers) < safe.threshold:
                raise InsufficientSignatures(
                    f"insufficient signatures: {len(signers)} of {safe.threshold} "
                    f"required for safe {safe.address}"
                )

            saved = self._world.copy()
            self._set_nonce(safe.address, safe.nonce + 1)
            try:
                results = self._dispatch_transaction(transaction)
            except CallReverted as exc:
                self._world = saved
                self._mark_reverted(mark)
                raise ExecutionReverted(f"batch reverted: {exc.reason}") from exc
            except BaseException:
                self._world = saved
                self._mark_reverted(mark)
                raise

            return ExecutionReceipt(
                safe=safe.address,
                safe_tx_hash=safe_tx_hash,
                nonce=transaction.nonce,
                signers=signers,
                results=results,
                accesses=tuple(self._accesses[mark:]),
            )

    def apply_override(self, override: StateOverride) -> None:
        with self._lock:
            self._ensure_live()
            if not self._is_fork:
                raise RuntimeError("state overrides can only be applied to a fork")

            state = self.get_safe(override.safe)
            if override.threshold is not None:
                state = state.with_threshold(override.threshold)
            if override.nonce is not None:
                state = state.with_nonce(override.nonce)
            self._world.safes[state.address] = state

            for raw_approver, safe_tx_hash in override.approvals:
                approver = normalize_address(raw_approver, field_name="approver")
                if not state.is_owner(approver):
                    raise ValueError(f"override approver {approver} is not an owner of {state.address}")
                self._world.ledger.record(state.address, approver, safe_tx_hash)

    def fork(self) -> InMemoryEnvironment:
        with self._lock:
            self._ensure_live()
            return InMemoryEnvironment(
                chain_id=self._chain_id,
                multicall_address=self._multicall_address,
                world=self._world.copy(),
                contracts=dict(self._contracts),
                is_fork=True,
            )

    def discard(self) -> None:
        with self._lock:
            if not self._is_fork:
                raise RuntimeError("only forks can be discarded")
            self._world = WorldState()
            self._accesses.clear()
            self._discarded = True

    def _ensure_live(self) -> None:
        if self._discarded:
            raise RuntimeError("environment fork has been discarded")

    def _creates_cycle(self, address: str, owners: Iterable[str]) -> bool:
        pending = list(owners)
        seen: set[str] = set()
        while pending:
            current = pending.pop()
            if current == address:
                return True
            if current in seen:
                continue
            seen.add(current)
            owner_state = self._world.safes.get(current)
            if owner_state is not None:
                pending.extend(owner_state.owners)
        return False

    def _record(
        self,
        account: str,
        slot: str,
        kind: AccessKind,
        previous_value: int,
        new_value: int,
    ) -> None:
        self._accesses.append(
            StateAccess(
                account=account,
                slot=slot,
                kind=kind,
                previous_value=previous_value,
                new_value=new_value,
            )
        )

    def _mark_reverted(self, mark: int) -> None:
        self._accesses[mark:] = [replace(access, reverted=True) for access in self._accesses[mark:]]

    def _set_nonce(self, safe_address: str, nonce: int) -> None:
        state = self._world.safes[safe_address]
        self._world.safes[safe_address] = state.with_nonce(nonce)
        self._record(safe_address, "nonce", AccessKind.WRITE, state.nonce, nonce)

    def _dispatch_transaction(self, transaction: SafeTransaction) -> tuple[CallResult, ...]:
        if transaction.operation == Operation.DELEGATECALL:
            if transaction.to != self._multicall_address:
                raise CallReverted(f"delegatecall target {transaction.to} is not Multicall3")
            return self._run_multicall(transaction.safe, transaction.data)

        return_data = self._call(transaction.safe, transaction.to, transaction.data, transaction.value)
        return (CallResult(target=transaction.to, success=True, return_data=return_data),)

    def _run_multicall(self, sender: str, data: bytes) -> tuple[CallResult, ...]:
        try:
            calls = decode_aggregate3_value(data)
        except (ValueError, DecodingError) as exc:
            raise CallReverted(f"malformed multicall payload: {exc}") from exc

        results: list[CallResult] = []
        for target, allow_failure, value, call_data in calls:
            saved = self._world.copy()
            mark = len(self._accesses)
            try:
                return_data = self._call(sender, target, call_data, value)
            except CallReverted as exc:
                self._world = saved
                self._mark_reverted(mark)
                if not allow_failure:
                    raise CallReverted(f"Multicall3: call to {target} failed ({exc.reason})") from exc
                results.append(
                    CallResult(target=target, success=False, return_data=exc.reason.encode("utf-8"))
                )
                continue
            results.append(CallResult(target=target, success=True, return_data=return_data))
        return tuple(results)

    def _call(self, sender: str, target: str, data: bytes, value: int) -> bytes:
        if value:
            self._transfer(sender, target, value)

        if target in self._world.safes:
            return self._call_safe(sender, target, data)

        contract = self._contracts.get(target)
        if contract is None:
            if data:
                raise CallReverted(f"no contract code at {target}")
            return b""
        return contract.handle(CallContext(env=self, address=target, sender=sender, value=value), data)

    def _call_safe(self, sender: str, safe_address: str, data: bytes) -> bytes:
        if not data:
            return b""

        try:
            safe_tx_hash = decode_approve_hash(data)
        except (ValueError, DecodingError) as exc:
            raise CallReverted(f"unsupported safe call: {exc}") from exc

        state = self._world.safes[safe_address]
        if not state.is_owner(sender):
            raise CallReverted("GS030: only owners can approve a hash")

        recorded = self._world.ledger.record(safe_address, sender, safe_tx_hash)
        self._record(
            safe_address,
            f"approvedHashes[{sender}][{to_hex(safe_tx_hash)}]",
            AccessKind.WRITE,
            0 if recorded else 1,
            1,
        )
        return b""

    def _transfer(self, sender: str, target: str, value: int) -> None:
        if sender == target:
            return
        sender_balance = self._world.balances.get(sender, 0)
        if sender_balance < value:
            raise CallReverted(f"insufficient balance: {sender} holds {sender_balance}, needs {value}")
        target_balance = self._world.balances.get(target, 0)
        self._world.balances[sender] = sender_balance - value
        self._world.balances[target] = target_balance + value
        self._record(sender, "balance", AccessKind.WRITE, sender_balance, sender_balance - value)
        self._record(target, "balance", AccessKind.WRITE, target_balance, target_balance + value)
