"""
Content signing for vault uploads.

Payloads are hashed with keccak-256 and the raw digest is signed with a
secp256k1 key, producing the 65 byte ``r || s || v`` layout the vault's
signing package verifies. The recovery id ``v`` is normalized to 0/1.
"""

import logging
from pathlib import Path
from typing import Union

from eth_account import Account
from eth_hash.auto import keccak

from ..api.models import SignedBlob
from ..exceptions import EmptyInputError, NotFoundError, UninitializedStateError

logger = logging.getLogger(__name__)

# Read files in 4KB chunks so large database snapshots never sit in memory
CHUNK_SIZE = 4 * 1024


def _strip_hex_prefix(value: str) -> str:
    return value[2:] if value.startswith("0x") else value


def bytes_to_hex(signature: bytes) -> str:
    """Hex encode a signature without the 0x prefix."""
    return bytes(signature).hex()


class Signer:
    """
    Hash-then-sign over byte strings and files.

    A signer keeps an incremental hash accumulator that is reset after every
    signature, so one instance can sign any number of independent payloads.
    """

    def __init__(self, private_key: str):
        self._account = Account.from_key(bytes.fromhex(_strip_hex_prefix(private_key)))
        self._reset_state()

    def _reset_state(self) -> None:
        self._state = keccak.new(b"")
        self._size = 0

    def _sum(self, chunk: Union[str, bytes]) -> None:
        if isinstance(chunk, str):
            chunk = chunk.encode("utf-8")
        self._state.update(chunk)
        self._size += len(chunk)

    def _sign(self) -> SignedBlob:
        if self._size == 0:
            raise UninitializedStateError("state is not initialized")
        digest = self._state.digest()
        self._reset_state()

        signed = self._account.unsafe_sign_hash(digest)
        # go-ethereum style signatures carry a 0/1 recovery id, not 27/28
        v = 0x00 if signed.v == 27 else 0x01
        signature = signed.r.to_bytes(32, "big") + signed.s.to_bytes(32, "big") + bytes([v])
        return SignedBlob(payload_hash=digest, signature=signature)

    def sign_bytes(self, data: Union[str, bytes]) -> bytes:
        """
        Sign an in-memory payload.

        Raises:
            EmptyInputError: If data is empty
        """
        if len(data) == 0:
            raise EmptyInputError("error with data: content is empty")
        self._reset_state()
        self._sum(data)
        return self._sign().signature

    def sign_file_blob(self, filepath: Union[str, Path]) -> SignedBlob:
        """
        Hash a file in fixed-size chunks and sign the digest.

        Raises:
            NotFoundError: If the path is not a regular file
            EmptyInputError: If the file is empty
        """
        path = Path(filepath)
        if not path.is_file():
            raise NotFoundError(f"file does not exist: {path}")
        if path.stat().st_size == 0:
            raise EmptyInputError("error with file: content is empty")

        self._reset_state()
        try:
            with open(path, "rb") as f:
                for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
                    self._sum(chunk)
        except OSError:
            self._reset_state()
            raise

        blob = self._sign()
        logger.debug(f"Signed {path} (keccak256 {blob.payload_hash.hex()})")
        return blob

    def sign_file(self, filepath: Union[str, Path]) -> bytes:
        """Sign a file's contents; same result as sign_bytes on its bytes."""
        return self.sign_file_blob(filepath).signature

    def address(self) -> str:
        """Account address for the key, lowercase hex without 0x."""
        return self._account.address[2:].lower()
