"""Payload encryption for the Philips CoAP protocol.

Every control payload is encrypted with a one-time client key:
  1. The device hands out a counter on ``/sys/dev/sync`` (8 hex chars).
  2. The client key is that counter plus one, as 8 uppercase hex chars.
  3. AES-128-CBC key and IV are the two halves of MD5(secret + client key),
     rendered as uppercase hex and used as ASCII bytes.

Wire format (all uppercase hex text):
  [client key, 8][AES ciphertext, n*32][SHA-256(client key + ciphertext), 64]

The key travels in the clear at the head of every payload, so decryption
needs nothing but the payload itself.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from ..const import CLIENT_KEY_LENGTH, DIGEST_LENGTH, ENCRYPTION_SECRET
from ..exceptions import DigestMismatchError, ProtocolError

MASK32 = 0xFFFFFFFF
BLOCK_BITS = 128


def next_client_key(counter: str) -> str:
    """Return the client key that follows *counter* (wraps at 32 bits)."""
    try:
        value = int(counter, 16)
    except ValueError as exc:
        raise ProtocolError(f"Counter is not hexadecimal: {counter!r}") from exc
    return f"{(value + 1) & MASK32:0{CLIENT_KEY_LENGTH}X}"


def _cipher(client_key: str) -> Cipher:
    key_and_iv = hashlib.md5((ENCRYPTION_SECRET + client_key).encode()).hexdigest().upper()
    half = len(key_and_iv) // 2
    return Cipher(
        algorithms.AES(key_and_iv[:half].encode("ascii")),
        modes.CBC(key_and_iv[half:].encode("ascii")),
    )


def _digest(client_key: str, ciphertext_hex: str) -> str:
    return hashlib.sha256((client_key + ciphertext_hex).encode()).hexdigest().upper()


class EncryptionContext:
    """Default cryptographic transform.

    Stateless; any object exposing the same three methods can be handed to
    :class:`~philips_air.client.PhilipsAirClient` instead.
    """

    def derive_key(self, counter: str) -> str:
        return next_client_key(counter.strip())

    def encrypt(self, client_key: str, plaintext: str) -> str:
        padder = padding.PKCS7(BLOCK_BITS).padder()
        padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()

        encryptor = _cipher(client_key).encryptor()
        ciphertext = (encryptor.update(padded) + encryptor.finalize()).hex().upper()
        return client_key + ciphertext + _digest(client_key, ciphertext)

    def decrypt(self, payload: str | bytes) -> Any:
        """Verify, decrypt and JSON-decode an encrypted payload."""
        if isinstance(payload, (bytes, bytearray)):
            try:
                payload = bytes(payload).decode("ascii")
            except UnicodeDecodeError as exc:
                raise ProtocolError("Encrypted payload is not ASCII") from exc
        payload = payload.strip()

        if len(payload) <= CLIENT_KEY_LENGTH + DIGEST_LENGTH:
            raise ProtocolError(f"Encrypted payload too short ({len(payload)} chars)")

        client_key = payload[:CLIENT_KEY_LENGTH]
        ciphertext = payload[CLIENT_KEY_LENGTH:-DIGEST_LENGTH]
        digest = payload[-DIGEST_LENGTH:]

        if digest.upper() != _digest(client_key, ciphertext):
            raise DigestMismatchError(f"Digest mismatch for client key {client_key}")

        try:
            decryptor = _cipher(client_key).decryptor()
            padded = decryptor.update(bytes.fromhex(ciphertext)) + decryptor.finalize()
            unpadder = padding.PKCS7(BLOCK_BITS).unpadder()
            plaintext = unpadder.update(padded) + unpadder.finalize()
            return json.loads(plaintext.decode("utf-8"))
        except ValueError as exc:
            # bad hex, partial block, bad padding, bad UTF-8 and bad JSON
            # all surface as ValueError subclasses
            raise ProtocolError(f"Cannot decrypt payload: {exc}") from exc
