import pytest

from msamiati.domain.constants import DAY_MS
from msamiati.domain.models import Grade, Srs
from msamiati.domain.srs import apply_review, create_initial_srs, due_items, is_due

NOW = 1_700_000_000_000


def test_initial_srs_is_due_immediately():
    srs = create_initial_srs(NOW)
    assert srs.due_at == NOW
    assert srs.interval_days == 0
    assert srs.ease == 2.2
    assert srs.correct_streak == 0
    assert srs.total_reviews == 0
    assert srs.last_reviewed_at is None
    assert is_due(srs, NOW)


def test_good_on_new_item_schedules_one_day():
    srs = apply_review(create_initial_srs(NOW), Grade.GOOD, NOW)
    assert srs.interval_days == 1
    assert srs.ease == pytest.approx(2.23)
    assert srs.due_at == NOW + DAY_MS
    assert srs.correct_streak == 1
    assert srs.total_reviews == 1
    assert srs.last_reviewed_at == NOW


def test_good_grows_interval_by_new_ease():
    prev = Srs(due_at=NOW, interval_days=1, ease=2.23, correct_streak=1, total_reviews=1)
    srs = apply_review(prev, Grade.GOOD, NOW)
    assert srs.ease == pytest.approx(2.26)
    assert srs.interval_days == pytest.approx(2.26)
    assert srs.correct_streak == 2


def test_again_on_new_item_uses_minimum_interval():
    srs = apply_review(create_initial_srs(NOW), Grade.AGAIN, NOW)
    assert srs.interval_days == pytest.approx(0.04)
    assert srs.ease == pytest.approx(2.0)
    assert srs.correct_streak == 0
    assert srs.due_at == pytest.approx(NOW + 0.04 * DAY_MS)


def test_again_resets_streak_and_shrinks_interval():
    prev = Srs(due_at=NOW, interval_days=10, ease=2.5, correct_streak=7, total_reviews=9)
    srs = apply_review(prev, Grade.AGAIN, NOW)
    assert srs.correct_streak == 0
    assert srs.interval_days == pytest.approx(3.5)
    assert srs.ease == pytest.approx(2.3)
    assert srs.total_reviews == 10


def test_hard_on_new_item_schedules_half_day():
    srs = apply_review(create_initial_srs(NOW), Grade.HARD, NOW)
    assert srs.interval_days == 0.5
    assert srs.ease == pytest.approx(2.15)
    assert srs.correct_streak == 1


def test_hard_grows_by_at_least_1_2():
    prev = Srs(due_at=NOW, interval_days=10, ease=1.3)
    srs = apply_review(prev, Grade.HARD, NOW)
    # ease clamps at 1.3; 1.3 * 0.9 < 1.2 so the floor factor applies
    assert srs.ease == pytest.approx(1.3)
    assert srs.interval_days == pytest.approx(12)


def test_bounds_hold_after_many_reviews():
    srs = create_initial_srs(NOW)
    for grade in [Grade.GOOD] * 40:
        srs = apply_review(srs, grade, NOW)
    assert srs.interval_days == 180
    assert srs.ease == pytest.approx(2.8)

    for grade in [Grade.AGAIN] * 40:
        srs = apply_review(srs, grade, NOW)
    assert srs.interval_days == pytest.approx(0.04)
    assert srs.ease == pytest.approx(1.3)


def test_apply_review_is_deterministic():
    prev = Srs(due_at=NOW, interval_days=3, ease=2.0, correct_streak=2, total_reviews=4)
    for grade in Grade:
        assert apply_review(prev, grade, NOW) == apply_review(prev, grade, NOW)


def test_good_review_is_never_due_immediately():
    srs = apply_review(create_initial_srs(NOW), Grade.GOOD, NOW)
    assert not is_due(srs, NOW)


def test_due_items_sorted_most_overdue_first():
    from msamiati.domain.models import VocabItem

    def item(i, due_at):
        return VocabItem(
            id=f"w{i}",
            deck_id="d",
            sw="s",
            ko="k",
            created_at=0,
            updated_at=0,
            srs=Srs(due_at=due_at),
        )

    items = [item(1, NOW - 10), item(2, NOW + 10), item(3, NOW - 100), item(4, NOW)]
    assert [i.id for i in due_items(items, NOW)] == ["w3", "w1", "w4"]
