"""
Actions and the pure reducer over AppState.

The reducer never reads the clock or generates randomness itself: the
caller passes `now` and an id factory once per dispatch, so every
transition is deterministic and testable. Inputs are never mutated;
every state-changing transition returns a new AppState.
"""

from collections.abc import Callable
from dataclasses import dataclass, field, fields, replace
from typing import Any

from ulid import ULID

from msamiati.domain.constants import ALL_WORDS_DECK, DEFAULT_DECK_NAMES, REVIEW_LOG_LIMIT
from msamiati.domain.models import (
    EDITABLE_ITEM_FIELDS,
    AppSettings,
    AppState,
    Deck,
    Grade,
    NewVocab,
    ReviewLogItem,
    VocabItem,
    WrongNoteItem,
)
from msamiati.domain.srs import apply_review, create_initial_srs

IdFactory = Callable[[], str]


def generate_id() -> str:
    """Generate a sortable unique id using ULID."""
    return str(ULID())


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Hydrate:
    state: AppState


@dataclass(frozen=True)
class DeckAdd:
    name: str


@dataclass(frozen=True)
class DeckRename:
    id: str
    name: str


@dataclass(frozen=True)
class DeckDelete:
    id: str


@dataclass(frozen=True)
class AddItem:
    item: NewVocab


@dataclass(frozen=True)
class UpdateItem:
    id: str
    patch: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class DeleteItem:
    id: str


@dataclass(frozen=True)
class Review:
    id: str
    grade: Grade


@dataclass(frozen=True)
class QuizAnswer:
    id: str
    correct: bool


@dataclass(frozen=True)
class FlashcardMark:
    """Flashcard flow: "known"/"mastered" clears the wrong-note, "unknown" records one."""

    id: str
    known: bool


@dataclass(frozen=True)
class WrongRemove:
    id: str


@dataclass(frozen=True)
class WrongClear:
    pass


@dataclass(frozen=True)
class UpdateSettings:
    patch: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ResetForCloudAllWords:
    """Drop all local study data, keeping a single deck."""

    keep_deck_id: str | None = None


Action = (
    Hydrate
    | DeckAdd
    | DeckRename
    | DeckDelete
    | AddItem
    | UpdateItem
    | DeleteItem
    | Review
    | QuizAnswer
    | FlashcardMark
    | WrongRemove
    | WrongClear
    | UpdateSettings
    | ResetForCloudAllWords
)

_SETTINGS_FIELDS = frozenset(f.name for f in fields(AppSettings))


# ---------------------------------------------------------------------------
# Seed state
# ---------------------------------------------------------------------------


def create_seed_state(now: float, new_id: IdFactory = generate_id) -> AppState:
    """Fresh state: the reserved decks and no local items."""
    decks = tuple(
        # Slightly different timestamps keep the display order stable
        Deck(id=new_id(), name=name, created_at=now - i, updated_at=now - i)
        for i, name in enumerate(DEFAULT_DECK_NAMES)
    )
    return AppState(now=now, decks=decks)


def ensure_default_decks(
    state: AppState, now: float, new_id: IdFactory = generate_id
) -> AppState:
    """Append any reserved deck the state is missing."""
    existing = {d.name for d in state.decks}
    missing = tuple(
        Deck(id=new_id(), name=name, created_at=now, updated_at=now)
        for name in DEFAULT_DECK_NAMES
        if name not in existing
    )
    if not missing:
        return state
    return replace(state, decks=state.decks + missing)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _append_log(
    log: tuple[ReviewLogItem, ...], entry: ReviewLogItem
) -> tuple[ReviewLogItem, ...]:
    return (log + (entry,))[-REVIEW_LOG_LIMIT:]


def _upsert_wrong(
    wrong: tuple[WrongNoteItem, ...], item_id: str, now: float
) -> tuple[WrongNoteItem, ...]:
    if any(w.id == item_id for w in wrong):
        return tuple(
            replace(w, wrong_count=w.wrong_count + 1, last_wrong_at=now)
            if w.id == item_id
            else w
            for w in wrong
        )
    return (WrongNoteItem(id=item_id, wrong_count=1, last_wrong_at=now),) + wrong


def _drop_wrong(
    wrong: tuple[WrongNoteItem, ...], item_id: str
) -> tuple[WrongNoteItem, ...]:
    return tuple(w for w in wrong if w.id != item_id)


def _review_items(
    items: tuple[VocabItem, ...], item_id: str, grade: Grade, now: float
) -> tuple[VocabItem, ...]:
    return tuple(
        replace(x, srs=apply_review(x.srs, grade, now), updated_at=now)
        if x.id == item_id
        else x
        for x in items
    )


def _normalize_patch(patch: dict[str, Any], allowed: frozenset[str]) -> dict[str, Any]:
    clean = {k: v for k, v in patch.items() if k in allowed}
    if "tags" in clean and clean["tags"] is not None:
        clean["tags"] = tuple(clean["tags"])
    return clean


# ---------------------------------------------------------------------------
# Reducer
# ---------------------------------------------------------------------------


def reduce(
    state: AppState, action: Action, now: float, new_id: IdFactory = generate_id
) -> AppState:
    match action:
        case Hydrate(state=loaded):
            return loaded

        case DeckAdd(name=name):
            name = name.strip()
            if not name:
                return state
            deck = Deck(id=new_id(), name=name, created_at=now, updated_at=now)
            return replace(state, now=now, decks=(deck,) + state.decks)

        case DeckRename(id=deck_id, name=name):
            name = name.strip()
            if not name:
                return state
            decks = tuple(
                replace(d, name=name, updated_at=now) if d.id == deck_id else d
                for d in state.decks
            )
            return replace(state, now=now, decks=decks)

        case DeckDelete(id=deck_id):
            # Decks that still own words are never deleted
            if any(x.deck_id == deck_id for x in state.items):
                return state
            decks = tuple(d for d in state.decks if d.id != deck_id)
            return replace(state, now=now, decks=decks)

        case AddItem(item=new):
            item = VocabItem(
                id=new_id(),
                deck_id=new.deck_id,
                sw=new.sw,
                ko=new.ko,
                en=new.en,
                pos=new.pos,
                tags=tuple(new.tags),
                example=new.example,
                note=new.note,
                created_at=now,
                updated_at=now,
                srs=create_initial_srs(now),
            )
            return replace(state, now=now, items=(item,) + state.items)

        case UpdateItem(id=item_id, patch=patch):
            if state.find_item(item_id) is None:
                return state
            clean = _normalize_patch(patch, EDITABLE_ITEM_FIELDS)
            items = tuple(
                replace(x, **clean, updated_at=now) if x.id == item_id else x
                for x in state.items
            )
            return replace(state, now=now, items=items)

        case DeleteItem(id=item_id):
            return replace(
                state,
                now=now,
                items=tuple(x for x in state.items if x.id != item_id),
                wrong=_drop_wrong(state.wrong, item_id),
            )

        case Review(id=item_id, grade=grade):
            return replace(
                state,
                now=now,
                items=_review_items(state.items, item_id, grade, now),
                review_log=_append_log(
                    state.review_log, ReviewLogItem(id=item_id, at=now, grade=grade)
                ),
            )

        case QuizAnswer(id=item_id, correct=correct):
            grade = Grade.GOOD if correct else Grade.AGAIN
            # A correct quiz answer keeps an existing wrong-note entry;
            # only the flashcard flow or an explicit removal clears it.
            wrong = state.wrong if correct else _upsert_wrong(state.wrong, item_id, now)
            return replace(
                state,
                now=now,
                items=_review_items(state.items, item_id, grade, now),
                review_log=_append_log(
                    state.review_log, ReviewLogItem(id=item_id, at=now, grade=grade)
                ),
                wrong=wrong,
            )

        case FlashcardMark(id=item_id, known=known):
            if known:
                wrong = _drop_wrong(state.wrong, item_id)
            else:
                wrong = _upsert_wrong(state.wrong, item_id, now)
            return replace(state, now=now, wrong=wrong)

        case WrongRemove(id=item_id):
            return replace(state, now=now, wrong=_drop_wrong(state.wrong, item_id))

        case WrongClear():
            return replace(state, now=now, wrong=())

        case UpdateSettings(patch=patch):
            clean = {k: v for k, v in patch.items() if k in _SETTINGS_FIELDS}
            return replace(state, now=now, settings=replace(state.settings, **clean))

        case ResetForCloudAllWords(keep_deck_id=keep_id):
            keep = None
            if keep_id:
                keep = next((d for d in state.decks if d.id == keep_id), None)
            if keep is None:
                keep = state.find_deck_by_name(ALL_WORDS_DECK)
            if keep is None:
                keep = Deck(id=new_id(), name=ALL_WORDS_DECK, created_at=now, updated_at=now)
            return replace(
                state,
                now=now,
                decks=(replace(keep, updated_at=now),),
                items=(),
                wrong=(),
                review_log=(),
            )

    raise TypeError(f"Unknown action: {action!r}")
