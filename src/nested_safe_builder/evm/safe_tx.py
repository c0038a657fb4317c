"""EIP-712 SafeTx encoding, matching the Safe contract's getTransactionHash."""
from __future__ import annotations

from dataclasses import dataclass

from eth_abi import encode
from eth_utils import keccak

from nested_safe_builder.evm.addresses import ZERO_ADDRESS
from nested_safe_builder.types import Operation

SIGNING_PAYLOAD_VERSION = "safe-tx-eip712-v1"

DOMAIN_SEPARATOR_TYPEHASH = keccak(
    text="EIP712Domain(uint256 chainId,address verifyingContract)"
)
SAFE_TX_TYPEHASH = keccak(
    text=(
        "SafeTx(address to,uint256 value,bytes data,uint8 operation,uint256 safeTxGas,"
        "uint256 baseGas,uint256 gasPrice,address gasToken,address refundReceiver,uint256 nonce)"
    )
)


@dataclass(slots=True, frozen=True)
class SafeTransaction:
    safe: str
    chain_id: int
    to: str
    value: int
    data: bytes
    operation: Operation
    nonce: int
    safe_tx_gas: int = 0
    base_gas: int = 0
    gas_price: int = 0
    gas_token: str = ZERO_ADDRESS
    refund_receiver: str = ZERO_ADDRESS

    def domain_separator(self) -> bytes:
        return keccak(
            encode(
                ["bytes32", "uint256", "address"],
                [DOMAIN_SEPARATOR_TYPEHASH, self.chain_id, self.safe],
            )
        )

    def struct_hash(self) -> bytes:
        return keccak(
            encode(
                [
                    "bytes32",
                    "address",
                    "uint256",
                    "bytes32",
                    "uint8",
                    "uint256",
                    "uint256",
                    "uint256",
                    "address",
                    "address",
                    "uint256",
                ],
                [
                    SAFE_TX_TYPEHASH,
                    self.to,
                    self.value,
                    keccak(self.data),
                    int(self.operation),
                    self.safe_tx_gas,
                    self.base_gas,
                    self.gas_price,
                    self.gas_token,
                    self.refund_receiver,
                    self.nonce,
                ],
            )
        )

    def encode_transaction_data(self) -> bytes:
        """Return the exact bytes an owner signs over (before hashing)."""
        return b"\x19\x01" + self.domain_separator() + self.struct_hash()

    def safe_tx_hash(self) -> bytes:
        return keccak(self.encode_transaction_data())
