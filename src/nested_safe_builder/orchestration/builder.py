from __future__ import annotations

from collections.abc import Callable

from eth_account.signers.local import LocalAccount

from nested_safe_builder.domain.approval import ApprovalRecord
from nested_safe_builder.domain.call_batch import CallBatch
from nested_safe_builder.domain.signing_payload import SigningPayload
from nested_safe_builder.environment.base import ExecutionEnvironment
from nested_safe_builder.environment.state import ExecutionReceipt, StateOverride
from nested_safe_builder.evm.addresses import ZERO_ADDRESS
from nested_safe_builder.evm.codecs.calls import MULTICALL3_ADDRESS
from nested_safe_builder.evm.safe_tx import SafeTransaction
from nested_safe_builder.evm.signatures import SafeSignature
from nested_safe_builder.orchestration import approval_collector, execution, hasher
from nested_safe_builder.orchestration.approval_collector import SignatureInput
from nested_safe_builder.orchestration.authorization import ApprovalStatus, approval_status
from nested_safe_builder.orchestration.errors import NotEnoughApprovals, ReplayRejected
from nested_safe_builder.simulation.harness import PostCheck, SimulationReport, simulate


class NestedMultisigBuilder:
    """Carries one call batch from proposal to execution on an owner Safe.

    The batch comes from ``build_calls`` and is built once. The owner nonce is
    pinned by the first ``propose_hash`` so every later step refers to the
    same hash; after a successful ``run`` the pinned nonce is stale and
    further steps fail with ReplayRejected.
    """

    def __init__(
        self,
        env: ExecutionEnvironment,
        owner_safe: str,
        build_calls: Callable[[], CallBatch],
        post_check: PostCheck | None = None,
        *,
        sender: str = ZERO_ADDRESS,
        multicall_address: str = MULTICALL3_ADDRESS,
    ) -> None:
        self._env = env
        self._owner_safe = env.get_safe(owner_safe).address
        self._build_calls = build_calls
        self._post_check = post_check
        self._sender = sender
        self._multicall_address = multicall_address
        self._batch: CallBatch | None = None
        self._nonce: int | None = None

    @property
    def owner_safe(self) -> str:
        return self._owner_safe

    @property
    def nonce(self) -> int | None:
        return self._nonce

    def calls(self) -> CallBatch:
        if self._batch is None:
            batch = self._build_calls()
            batch.ensure_canonical()
            self._batch = batch
        return self._batch

    def propose_hash(self) -> SigningPayload:
        if self._nonce is None:
            self._nonce = self._env.get_safe(self._owner_safe).nonce
        return hasher.propose_hash(
            self._env,
            self._owner_safe,
            self.calls(),
            nonce=self._nonce,
            multicall_address=self._multicall_address,
        )

    def approval_payload(self, signer_safe: str) -> SigningPayload:
        owner_hash = self._current_hash()
        return approval_collector.approval_payload(
            self._env,
            signer_safe,
            self._owner_safe,
            owner_hash,
            multicall_address=self._multicall_address,
        )

    def sign(self, account: LocalAccount, signer_safe: str) -> SafeSignature:
        return approval_collector.sign(account, self.approval_payload(signer_safe))

    def approve(self, signer_safe: str, signatures: SignatureInput) -> ApprovalRecord:
        owner_hash = self._current_hash()
        return approval_collector.approve(
            self._env,
            signer_safe,
            self._owner_safe,
            owner_hash,
            signatures,
            sender=self._sender,
            multicall_address=self._multicall_address,
        )

    def approval_status(self) -> ApprovalStatus:
        return approval_status(self._env, self._owner_safe, self.propose_hash().safe_tx_hash)

    def check_ready(self) -> bool:
        return self.approval_status().ready

    def simulate(self, *, assume_approved: bool = False) -> SimulationReport:
        """Dry-run the batch.

        With ``assume_approved`` the fork pre-records approvals from the first
        threshold-many owners, so signers can check the outcome before any
        approval exists.
        """
        owner_hash = self._current_hash()
        transaction = self._transaction()
        overrides: tuple[StateOverride, ...] = ()
        if assume_approved:
            owner = self._env.get_safe(self._owner_safe)
            approvers = owner.owners[: owner.threshold]
            overrides = (
                StateOverride(
                    safe=owner.address,
                    approvals=tuple((approver, owner_hash) for approver in approvers),
                ),
            )
        else:
            status = approval_status(self._env, self._owner_safe, owner_hash)
            if not status.ready:
                raise NotEnoughApprovals(
                    f"not enough approvals: {len(status.approvers)} of {status.threshold} "
                    "owner safes approved; pass assume_approved=True to dry-run anyway"
                )
            approvers = status.approvers

        return simulate(
            self._env,
            transaction,
            execution.encode_approval_signatures(approvers),
            self._post_check,
            sender=self._sender,
            overrides=overrides,
        )

    def run(self) -> ExecutionReceipt:
        self.propose_hash()
        return execution.run(
            self._env,
            self._owner_safe,
            self.calls(),
            nonce=self._nonce,
            post_check=self._post_check,
            sender=self._sender,
            multicall_address=self._multicall_address,
        )

    def _transaction(self) -> SafeTransaction:
        self.propose_hash()
        assert self._nonce is not None
        return hasher.build_safe_transaction(
            self._owner_safe,
            self.calls(),
            nonce=self._nonce,
            chain_id=self._env.chain_id,
            multicall_address=self._multicall_address,
        )

    def _current_hash(self) -> bytes:
        payload = self.propose_hash()
        current = self._env.get_safe(self._owner_safe).nonce
        if current != payload.nonce:
            raise ReplayRejected(
                f"stale proposal: hash bound to nonce {payload.nonce}, safe "
                f"{self._owner_safe} is at nonce {current}"
            )
        return payload.safe_tx_hash
