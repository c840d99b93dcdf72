"""
Hurupay Structured-Data Signatures

EIP-712 typed-data signing and signer recovery for transfer authorizations.

Every signature is bound to one deployment on one network through the domain
separator {name, version, chainId, verifyingContract}. The signed record
repeats the chain id inside the payload so that a fork which keeps the domain
separator but changes its live chain id still rejects foreign signatures.

Wire layout (must stay byte-compatible with other implementations):

    EIP712Domain(string name,string version,uint256 chainId,address verifyingContract)
    Transfer(bytes32 requestId,address sender,address recipient,uint256 amount,
             uint256 deadline,uint256 chainId)

Copyright (c) 2026 Momentum. All rights reserved.
Contact: engineering@momentum.inc
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, Optional, Union

from eth_account import Account
from eth_account.messages import SignableMessage, encode_typed_data
from eth_keys.exceptions import BadSignature
from eth_keys.exceptions import ValidationError as KeyValidationError

from hurupay.hardening import (
    CryptoUtils,
    InvalidSignature,
    Validators,
    normalize_identity,
)

if TYPE_CHECKING:
    from hurupay.engine import AuthorizationRequest


PROTOCOL_NAME = "Hurupay"
PROTOCOL_VERSION = "1"

TRANSFER_TYPES = {
    "Transfer": [
        {"name": "requestId", "type": "bytes32"},
        {"name": "sender", "type": "address"},
        {"name": "recipient", "type": "address"},
        {"name": "amount", "type": "uint256"},
        {"name": "deadline", "type": "uint256"},
        {"name": "chainId", "type": "uint256"},
    ],
}

# secp256k1 group order; signatures with s above half of it are malleable
SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
SECP256K1_HALF_N = SECP256K1_N // 2


@dataclass(frozen=True)
class DomainContext:
    """The EIP-712 domain a signature is bound to."""
    chain_id: int
    verifying_contract: str
    name: str = PROTOCOL_NAME
    version: str = PROTOCOL_VERSION

    def __post_init__(self):
        object.__setattr__(
            self,
            "verifying_contract",
            normalize_identity(self.verifying_contract, "verifying_contract"),
        )

    def to_eip712(self) -> Dict[str, Any]:
        """Domain data in canonical EIP712Domain field order."""
        return {
            "name": self.name,
            "version": self.version,
            "chainId": self.chain_id,
            "verifyingContract": self.verifying_contract,
        }


def transfer_message(request: "AuthorizationRequest", domain: DomainContext) -> Dict[str, Any]:
    """The structured record that the sender signs."""
    return {
        "requestId": request.request_id,
        "sender": request.sender,
        "recipient": request.recipient,
        "amount": request.amount,
        "deadline": request.deadline,
        "chainId": domain.chain_id,
    }


def signable_transfer(request: "AuthorizationRequest", domain: DomainContext) -> SignableMessage:
    return encode_typed_data(
        domain.to_eip712(),
        TRANSFER_TYPES,
        transfer_message(request, domain),
    )


def sign_authorization(
    request: "AuthorizationRequest",
    domain: DomainContext,
    private_key: Union[str, bytes],
) -> bytes:
    """
    Produce the 65-byte signature a holder hands to a relayer.

    Used by relayer tooling and tests; the engine itself never holds keys.
    """
    signed = Account.sign_message(signable_transfer(request, domain), private_key=private_key)
    return bytes(signed.signature)


def _check_signature_shape(signature: bytes) -> None:
    """Reject malformed and malleable signatures before recovery."""
    s = int.from_bytes(signature[32:64], "big")
    v = signature[64]
    if s == 0 or s > SECP256K1_HALF_N:
        raise InvalidSignature("signature s value is out of range")
    if v not in (0, 1, 27, 28):
        raise InvalidSignature("signature v value is out of range")


class SignatureVerifier:
    """
    Recovers and checks the signer of a transfer authorization.

    Stateless: verification never mutates anything, so it can be repeated
    any number of times for the same request.
    """

    def __init__(self, domain: DomainContext):
        self._domain = domain

    @property
    def domain(self) -> DomainContext:
        return self._domain

    def recover_signer(
        self,
        request: "AuthorizationRequest",
        domain: Optional[DomainContext] = None,
    ) -> str:
        """
        Recover the identity that signed ``request`` under ``domain``
        (the verifier's own domain by default).

        Raises:
            InvalidSignature: the signature bytes are malformed
        """
        result = Validators.validate_signature_bytes(request.signature)
        if not result.is_valid:
            raise InvalidSignature(result.errors[0].message)
        signature = result.sanitized_value
        _check_signature_shape(signature)

        try:
            signer = Account.recover_message(
                signable_transfer(request, domain or self._domain),
                signature=signature,
            )
        except (BadSignature, KeyValidationError, ValueError, TypeError) as e:
            raise InvalidSignature(f"signature recovery failed: {e}") from e
        return normalize_identity(signer, "signer")

    def verify(
        self,
        request: "AuthorizationRequest",
        domain: Optional[DomainContext] = None,
    ) -> bool:
        """True when the recovered signer is ``request.sender``."""
        try:
            signer = self.recover_signer(request, domain)
        except InvalidSignature:
            return False
        return CryptoUtils.same_identity(signer, request.sender)

    def require_valid(self, request: "AuthorizationRequest") -> None:
        if not self.verify(request):
            raise InvalidSignature()
