"""
At-rest protection for the persisted state blob.

AES-256-GCM with a per-install random key kept in the key-value store next
to the ciphertext. Every seal uses a fresh 12-byte nonce stored as the
ciphertext prefix, so an envelope is self-contained.

Stored values are one of three tagged variants, decided once by
decode_envelope():

- Encrypted: "ENC1:" + base64(nonce || ciphertext). Untagged base64 written
  by older releases is read as Encrypted too.
- Obfuscated: "OBF:" + base64(xor-shuffled payload). Only written when AES-GCM
  is unavailable. A deterrent against casual inspection, not a security control.
- LegacyPlaintext: raw JSON from releases that stored state unencrypted.
"""

import asyncio
import base64
import binascii
import hashlib
import logging
import os
from dataclasses import dataclass
from urllib.parse import quote, unquote

from cryptography.exceptions import InvalidTag, UnsupportedAlgorithm
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from msamiati.domain.constants import (
    AES_KEY_BITS,
    ENCRYPTED_PREFIX,
    KEY_STORAGE_KEY,
    NONCE_BYTES,
    OBFUSCATED_PREFIX,
)
from msamiati.domain.errors import DecryptionError
from msamiati.domain.interfaces import KeyValueStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Encrypted:
    payload: bytes  # nonce || ciphertext+tag


@dataclass(frozen=True)
class Obfuscated:
    payload: str


@dataclass(frozen=True)
class LegacyPlaintext:
    text: str


Envelope = Encrypted | Obfuscated | LegacyPlaintext


def decode_envelope(raw: str) -> Envelope:
    """Classify a stored value. This is the only place prefixes are inspected."""
    if raw.startswith(ENCRYPTED_PREFIX):
        try:
            payload = base64.b64decode(raw[len(ENCRYPTED_PREFIX) :], validate=True)
        except binascii.Error as e:
            raise DecryptionError(f"Malformed ciphertext: {e}") from e
        return Encrypted(payload)

    if raw.startswith(OBFUSCATED_PREFIX):
        return Obfuscated(raw[len(OBFUSCATED_PREFIX) :])

    if raw.lstrip().startswith(("{", "[")):
        return LegacyPlaintext(raw)

    try:
        return Encrypted(base64.b64decode(raw, validate=True))
    except binascii.Error:
        return LegacyPlaintext(raw)


def encode_envelope(envelope: Envelope) -> str:
    match envelope:
        case Encrypted(payload=payload):
            return ENCRYPTED_PREFIX + base64.b64encode(payload).decode("ascii")
        case Obfuscated(payload=payload):
            return OBFUSCATED_PREFIX + payload
        case LegacyPlaintext(text=text):
            return text
    raise TypeError(f"Unknown envelope: {envelope!r}")


# ---------- Obfuscation fallback ----------


def obfuscate(text: str) -> Obfuscated:
    encoded = base64.b64encode(quote(text, safe="").encode("ascii"))
    shuffled = bytes(b ^ (i % 256) for i, b in enumerate(encoded))
    return Obfuscated(base64.b64encode(shuffled).decode("ascii"))


def deobfuscate(envelope: Obfuscated) -> str:
    try:
        shuffled = base64.b64decode(envelope.payload, validate=True)
        encoded = bytes(b ^ (i % 256) for i, b in enumerate(shuffled))
        return unquote(base64.b64decode(encoded, validate=True).decode("ascii"), errors="strict")
    except (binascii.Error, UnicodeDecodeError) as e:
        raise DecryptionError(f"Malformed obfuscated payload: {e}") from e


# ---------- Integrity ----------


def content_hash(text: str) -> str:
    """SHA-256 integrity tag, base64 encoded."""
    return base64.b64encode(hashlib.sha256(text.encode("utf-8")).digest()).decode("ascii")


# ---------- Cipher ----------


class CryptoBox:
    """
    Seals and opens state envelopes.

    The AES key is read from (or generated into) the key-value store on first
    use and cached on this instance only. A new CryptoBox over the same store
    behaves like a fresh process: it re-reads the persisted key.
    """

    def __init__(self, kv: KeyValueStore, use_aead: bool = True):
        self._kv = kv
        self._key: bytes | None = None
        self.use_aead = use_aead

    def _stored_key(self) -> bytes | None:
        stored = self._kv.get_item(KEY_STORAGE_KEY)
        if not stored:
            return None
        try:
            key = base64.b64decode(stored, validate=True)
        except binascii.Error:
            logger.warning("Stored encryption key is not valid base64; ignoring it")
            return None
        if len(key) not in (16, 24, 32):
            logger.warning(f"Stored encryption key has invalid length {len(key)}; ignoring it")
            return None
        return key

    def _get_or_create_key(self) -> bytes:
        if self._key is None:
            key = self._stored_key()
            if key is None:
                key = AESGCM.generate_key(bit_length=AES_KEY_BITS)
                self._kv.set_item(KEY_STORAGE_KEY, base64.b64encode(key).decode("ascii"))
                logger.info("Generated a new state encryption key")
            self._key = key
        return self._key

    def _get_existing_key(self) -> bytes:
        if self._key is None:
            key = self._stored_key()
            if key is None:
                raise DecryptionError("No encryption key stored for this install")
            self._key = key
        return self._key

    def _encrypt(self, text: str) -> Encrypted:
        key = self._get_or_create_key()
        nonce = os.urandom(NONCE_BYTES)
        ciphertext = AESGCM(key).encrypt(nonce, text.encode("utf-8"), None)
        return Encrypted(nonce + ciphertext)

    def _decrypt(self, envelope: Encrypted) -> str:
        key = self._get_existing_key()
        if len(envelope.payload) <= NONCE_BYTES:
            raise DecryptionError("Ciphertext too short")
        nonce, ciphertext = envelope.payload[:NONCE_BYTES], envelope.payload[NONCE_BYTES:]
        try:
            plain = AESGCM(key).decrypt(nonce, ciphertext, None)
        except InvalidTag as e:
            raise DecryptionError("Authentication tag mismatch") from e
        try:
            return plain.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecryptionError(f"Decrypted payload is not UTF-8: {e}") from e

    def seal_sync(self, text: str) -> Envelope:
        if self.use_aead:
            try:
                return self._encrypt(text)
            except UnsupportedAlgorithm as e:
                logger.warning(f"AES-GCM unavailable, falling back to obfuscation: {e}")
                self.use_aead = False
        return obfuscate(text)

    def open_sync(self, envelope: Envelope) -> str:
        match envelope:
            case Encrypted():
                return self._decrypt(envelope)
            case Obfuscated():
                return deobfuscate(envelope)
            case LegacyPlaintext(text=text):
                return text
        raise TypeError(f"Unknown envelope: {envelope!r}")

    async def seal(self, text: str) -> str:
        """Encrypt text into a storable string."""
        envelope = await asyncio.to_thread(self.seal_sync, text)
        return encode_envelope(envelope)

    async def open(self, raw: str) -> str:
        """Open a stored string. Raises DecryptionError when it cannot be read."""
        envelope = decode_envelope(raw)
        return await asyncio.to_thread(self.open_sync, envelope)
