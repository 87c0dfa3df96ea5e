"""
Durable persistence of AppState in the key-value store.

Layout:
    msamiati.state  sealed envelope of the version-tagged JSON state
    msamiati.hash   SHA-256 of the plaintext JSON (advisory integrity tag)
    msamiati.key    base64 AES key (owned by CryptoBox)

Load paths:
    load_sync()   best-effort first paint; never raises, cannot decrypt.
    load_async()  authoritative; encrypted -> plain JSON -> None.
"""

import json
import logging
from collections.abc import Callable
from typing import Any

from pydantic import TypeAdapter, ValidationError

from msamiati.application.state import IdFactory, ensure_default_decks, generate_id
from msamiati.application.utils.clock import wall_clock_ms
from msamiati.consts import STATE_SCHEMA_VERSION
from msamiati.domain.constants import ALL_WORDS_DECK, HASH_KEY, KEY_STORAGE_KEY, STATE_KEY
from msamiati.domain.errors import DecryptionError, PersistenceError
from msamiati.domain.interfaces import KeyValueStore
from msamiati.domain.models import AppSettings, AppState, Deck, VocabItem
from msamiati.domain.srs import create_initial_srs
from msamiati.infrastructure.crypto import (
    CryptoBox,
    Encrypted,
    LegacyPlaintext,
    Obfuscated,
    content_hash,
    decode_envelope,
    deobfuscate,
)

logger = logging.getLogger(__name__)

_state_adapter = TypeAdapter(AppState)
_items_adapter = TypeAdapter(list[VocabItem])
_v1_items_adapter = TypeAdapter(list[dict[str, Any]])
_v1_settings_adapter = TypeAdapter(dict[str, Any])


def encode_state(state: AppState) -> str:
    payload = {"version": STATE_SCHEMA_VERSION, **_state_adapter.dump_python(state, mode="json")}
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


def migrate_v1_to_v2(data: dict[str, Any], now: float, new_id: IdFactory) -> AppState:
    """
    Version 1 had no decks and no wrong-notes, and a single `last_tab` setting.

    Every item moves into one "all words" deck; items without scheduling
    state get a fresh one.
    """
    deck = Deck(id=new_id(), name=ALL_WORDS_DECK, created_at=now, updated_at=now)

    raw_items = []
    for item in _v1_items_adapter.validate_python(data.get("items") or []):
        item["deck_id"] = deck.id
        if not item.get("srs"):
            item["srs"] = create_initial_srs(now)
        raw_items.append(item)
    items = _items_adapter.validate_python(raw_items)

    settings = _v1_settings_adapter.validate_python(data.get("settings") or {})
    last_tab = settings.get("last_tab")
    bottom_tab = "quiz" if last_tab == "study" else "wordbook"
    top_tab = "settings" if last_tab == "settings" else "home"

    migrated = {
        "now": now,
        "decks": [deck],
        "items": items,
        "wrong": [],
        "review_log": data.get("review_log") or [],
        "settings": AppSettings(
            due_only=settings.get("due_only", True),
            show_english=settings.get("show_english", True),
            meaning_lang="ko",
            top_tab=top_tab,
            bottom_tab=bottom_tab,
            quiz_count=10,
            quiz_source="all",
        ),
    }
    return _state_adapter.validate_python(migrated)


class StatePersistence:
    """
    Serializes AppState to an encrypted blob and reads it back.

    Decrypt and parse problems are recovered locally and end in None, the
    "no prior state" signal. Genuine storage I/O failures raise
    PersistenceError.
    """

    def __init__(
        self,
        kv: KeyValueStore,
        crypto: CryptoBox,
        clock: Callable[[], float] | None = None,
        new_id: IdFactory = generate_id,
    ):
        self._kv = kv
        self._crypto = crypto
        self._clock = clock or wall_clock_ms
        self._new_id = new_id

    # ---------- decoding ----------

    def decode_state(self, text: str) -> AppState | None:
        """
        Parse version-tagged JSON into AppState.

        Raises ValueError for text that is not JSON at all; returns None for
        JSON that is not a usable state (unknown version, wrong shape).
        """
        data = json.loads(text)
        if not isinstance(data, dict):
            logger.warning("Stored state is not a JSON object")
            return None

        version = data.get("version")
        if not isinstance(version, int) or isinstance(version, bool):
            logger.warning(f"Stored state has no usable version tag: {version!r}")
            return None

        now = self._clock()
        try:
            if version == STATE_SCHEMA_VERSION:
                body = {k: v for k, v in data.items() if k != "version"}
                state = _state_adapter.validate_python(body)
            elif version == 1:
                logger.info("Migrating stored state from version 1")
                state = migrate_v1_to_v2(data, now, self._new_id)
            else:
                logger.warning(f"Unsupported stored state version: {version!r}")
                return None
        except ValidationError as e:
            logger.warning(f"Stored state failed validation: {e.error_count()} errors")
            return None

        return ensure_default_decks(state, now, self._new_id)

    # ---------- load ----------

    def load_sync(self) -> AppState | None:
        """Best-effort synchronous read. Encrypted blobs need load_async()."""
        try:
            raw = self._kv.get_item(STATE_KEY)
            if not raw:
                return None
            match decode_envelope(raw):
                case LegacyPlaintext(text=text):
                    pass
                case Obfuscated() as envelope:
                    text = deobfuscate(envelope)
                case Encrypted():
                    return None
            return self.decode_state(text)
        except Exception as e:
            logger.debug(f"Synchronous state load skipped: {e}")
            return None

    async def load_async(self) -> AppState | None:
        """Authoritative load. None means "seed a fresh state"."""
        try:
            raw = self._kv.get_item(STATE_KEY)
        except OSError as e:
            raise PersistenceError(f"Could not read stored state: {e}") from e
        if not raw:
            return None

        try:
            text = await self._crypto.open(raw)
        except DecryptionError as e:
            logger.warning(f"Could not decrypt stored state ({e}); trying plain JSON")
            text = raw

        try:
            stored_hash = self._kv.get_item(HASH_KEY)
        except OSError as e:
            raise PersistenceError(f"Could not read state hash: {e}") from e
        if stored_hash and stored_hash != content_hash(text):
            logger.warning("State integrity check failed; the stored data may be damaged")

        try:
            return self.decode_state(text)
        except ValueError as e:
            logger.error(f"Stored state is not recoverable, starting fresh: {e}")
            return None

    # ---------- save ----------

    async def save(self, state: AppState) -> None:
        text = encode_state(state)
        try:
            sealed = await self._crypto.seal(text)
            self._kv.set_item(STATE_KEY, sealed)
            self._kv.set_item(HASH_KEY, content_hash(text))
        except OSError as e:
            raise PersistenceError(f"Could not save state: {e}") from e
        logger.debug(f"Saved state ({len(state.items)} items, {len(state.decks)} decks)")

    def clear(self) -> None:
        """Remove every persisted trace of the state, including the key."""
        try:
            for key in (STATE_KEY, HASH_KEY, KEY_STORAGE_KEY):
                self._kv.remove_item(key)
        except OSError as e:
            raise PersistenceError(f"Could not clear stored state: {e}") from e
