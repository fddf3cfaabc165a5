"""Tests for the round engine."""
from typing import List

import pytest
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from drillbook.config import settings
from drillbook.errors import ConflictError, NotFoundError, ValidationError
from drillbook.models.base import SessionLocal
from drillbook.models.models import ROUND_ACTIVE, ROUND_DONE, Attempt, Round, RoundItem
from drillbook.owner import AuthenticatedOwner
from drillbook.services.dictionary_service import DictionaryService
from drillbook.services.round_service import RoundService, is_item_solved
from drillbook.services.word_service import WordService


@pytest.fixture
def round_service(db: Session) -> RoundService:
    """Create a round service instance."""
    return RoundService(db)


@pytest.fixture
def word_ids(db: Session, owner: AuthenticatedOwner) -> List[int]:
    """Two words in a fresh dictionary."""
    dictionary_id = DictionaryService(db).create(owner, "Spelling")
    words = WordService(db)
    return [words.add(owner, "alpha", dictionary_id), words.add(owner, "beta", dictionary_id)]


def _item(db: Session, round_id: int, word_id: int) -> RoundItem:
    db.expire_all()
    return db.query(RoundItem).filter_by(round_id=round_id, word_id=word_id).one()


def test_start_creates_round_and_items(round_service, db, owner, word_ids) -> None:
    """Test that starting a round creates one fresh item per word."""
    round_id = round_service.start(owner, word_ids, reps_per_word=2, max_time_ms=3000)

    round_ = db.get(Round, round_id)
    assert round_.status == ROUND_ACTIVE
    assert round_.reps_per_word == 2
    assert round_.max_time_ms == 3000
    assert round_.user_id == owner.user_id
    assert round_.session_id is None

    items = db.query(RoundItem).filter_by(round_id=round_id).order_by(RoundItem.id).all()
    assert [i.word_id for i in items] == word_ids
    for item in items:
        assert item.reps_done == 0
        assert item.best_time_ms is None
        assert item.solved is False


def test_start_uses_default_reps(round_service, db, owner, word_ids) -> None:
    """Test that reps per word falls back to the configured default."""
    round_id = round_service.start(owner, word_ids)
    assert db.get(Round, round_id).reps_per_word == settings.rounds.default_reps_per_word


def test_start_collapses_duplicate_word_ids(round_service, db, owner, word_ids) -> None:
    """Test that repeated word ids produce a single item."""
    round_id = round_service.start(owner, [word_ids[1], word_ids[0], word_ids[1]], reps_per_word=1)
    items = db.query(RoundItem).filter_by(round_id=round_id).order_by(RoundItem.id).all()
    assert [i.word_id for i in items] == [word_ids[1], word_ids[0]]


@pytest.mark.parametrize("reps", [0, -1])
def test_start_rejects_non_positive_reps(round_service, owner, word_ids, reps) -> None:
    """Test that a round needs at least one repetition per word."""
    with pytest.raises(ValidationError):
        round_service.start(owner, word_ids, reps_per_word=reps)


def test_start_rejects_non_positive_max_time(round_service, owner, word_ids) -> None:
    """Test that a time cap must be positive."""
    with pytest.raises(ValidationError):
        round_service.start(owner, word_ids, reps_per_word=1, max_time_ms=0)


def test_record_counts_correct_attempts_only(round_service, db, owner, word_ids) -> None:
    """Test that reps only grow on correct attempts."""
    round_id = round_service.start(owner, word_ids, reps_per_word=5)
    alpha = word_ids[0]

    round_service.record(owner, round_id, alpha, 900, True)
    round_service.record(owner, round_id, alpha, 700, False)
    round_service.record(owner, round_id, alpha, 800, True)

    item = _item(db, round_id, alpha)
    assert item.reps_done == 2
    assert item.solved is False


def test_best_time_includes_incorrect_attempts(round_service, db, owner, word_ids) -> None:
    """Test that the best time is the minimum over every recorded attempt."""
    round_id = round_service.start(owner, word_ids, reps_per_word=3)
    alpha = word_ids[0]

    round_service.record(owner, round_id, alpha, 1500, True)
    assert _item(db, round_id, alpha).best_time_ms == 1500

    round_service.record(owner, round_id, alpha, 400, False)
    round_service.record(owner, round_id, alpha, 1200, True)
    assert _item(db, round_id, alpha).best_time_ms == 400


def test_record_appends_attempt_row(round_service, db, owner, word_ids) -> None:
    """Test that round attempts also land in the attempt history."""
    round_id = round_service.start(owner, word_ids, reps_per_word=1)
    round_service.record(owner, round_id, word_ids[0], 1000, False)

    attempts = db.query(Attempt).all()
    assert len(attempts) == 1
    assert attempts[0].round_id == round_id
    assert attempts[0].word_id == word_ids[0]
    assert attempts[0].correct is False
    assert attempts[0].time_ms == 1000


def test_record_unknown_round(round_service, db, owner, word_ids) -> None:
    """Test that an unknown round fails and leaves no attempt behind."""
    with pytest.raises(NotFoundError):
        round_service.record(owner, 999, word_ids[0], 1000, True)
    assert db.query(Attempt).count() == 0


def test_record_word_outside_round(round_service, db, owner, word_ids) -> None:
    """Test that a word that is not part of the round fails."""
    round_id = round_service.start(owner, word_ids[:1], reps_per_word=1)
    with pytest.raises(NotFoundError):
        round_service.record(owner, round_id, word_ids[1], 1000, True)
    assert db.query(Attempt).count() == 0


def test_record_round_of_other_owner(round_service, owner, other_owner, word_ids) -> None:
    """Test that rounds are not visible to other owners."""
    round_id = round_service.start(owner, word_ids, reps_per_word=1)
    with pytest.raises(NotFoundError):
        round_service.record(other_owner, round_id, word_ids[0], 1000, True)
    assert round_service.get(other_owner, round_id) is None


def test_record_rejects_negative_time(round_service, owner, word_ids) -> None:
    """Test that negative stopwatch readings are rejected."""
    round_id = round_service.start(owner, word_ids, reps_per_word=1)
    with pytest.raises(ValidationError):
        round_service.record(owner, round_id, word_ids[0], -5, True)


def test_round_completes_when_all_items_solved(round_service, owner, word_ids) -> None:
    """Test the A,A,B,B scenario with two reps per word."""
    alpha, beta = word_ids
    round_id = round_service.start(owner, word_ids, reps_per_word=2)

    round_service.record(owner, round_id, alpha, 1000, True)
    round_service.record(owner, round_id, alpha, 1000, True)
    state = round_service.get(owner, round_id)
    assert state.round.status == ROUND_ACTIVE
    assert state.solved == 1

    round_service.record(owner, round_id, beta, 1000, True)
    round_service.record(owner, round_id, beta, 1000, True)

    state = round_service.get(owner, round_id)
    assert state.round.status == ROUND_DONE
    assert state.is_done
    assert state.solved == 2
    assert state.total == 2
    assert state.unsolved_items == []


def test_time_cap_blocks_solving_until_fast_enough(round_service, db, owner, word_ids) -> None:
    """Test that a capped round needs a best time under the cap."""
    alpha = word_ids[0]
    round_id = round_service.start(owner, [alpha], reps_per_word=2, max_time_ms=2000)

    round_service.record(owner, round_id, alpha, 2500, True)
    round_service.record(owner, round_id, alpha, 2600, True)
    item = _item(db, round_id, alpha)
    assert item.reps_done == 2
    assert item.solved is False
    assert db.get(Round, round_id).status == ROUND_ACTIVE

    # A fast miss still improves the best time
    round_service.record(owner, round_id, alpha, 1800, False)
    item = _item(db, round_id, alpha)
    assert item.best_time_ms == 1800
    assert item.solved is True
    assert db.get(Round, round_id).status == ROUND_DONE


def test_solved_item_stays_solved(round_service, db, owner, word_ids) -> None:
    """Test that later slow or wrong attempts do not unsolve an item."""
    alpha = word_ids[0]
    round_id = round_service.start(owner, word_ids, reps_per_word=1, max_time_ms=2000)

    round_service.record(owner, round_id, alpha, 1000, True)
    round_service.record(owner, round_id, alpha, 9000, False)

    item = _item(db, round_id, alpha)
    assert item.solved is True
    assert item.reps_done == 1
    assert item.best_time_ms == 1000


def test_reps_match_correct_attempts(round_service, db, owner, word_ids) -> None:
    """Test that serialized recording keeps reps equal to correct attempts."""
    alpha, beta = word_ids
    round_id = round_service.start(owner, word_ids, reps_per_word=10)
    sequence = [
        (alpha, True, 1200), (beta, False, 800), (alpha, False, 500),
        (beta, True, 950), (alpha, True, 1100), (beta, True, 700),
    ]
    for word_id, correct, time_ms in sequence:
        round_service.record(owner, round_id, word_id, time_ms, correct)

    for word_id in word_ids:
        recorded = [s for s in sequence if s[0] == word_id]
        item = _item(db, round_id, word_id)
        assert item.reps_done == sum(1 for s in recorded if s[1])
        assert item.best_time_ms == min(s[2] for s in recorded)


def test_get_without_round(round_service, owner) -> None:
    """Test that a missing id or round yields None."""
    assert round_service.get(owner, None) is None
    assert round_service.get(owner, 12345) is None


def test_get_active(round_service, owner, word_ids) -> None:
    """Test getting the latest active round."""
    assert round_service.get_active(owner) is None

    first = round_service.start(owner, word_ids[:1], reps_per_word=1)
    second = round_service.start(owner, word_ids, reps_per_word=1)
    assert round_service.get_active(owner).id == second

    for word_id in word_ids:
        round_service.record(owner, second, word_id, 500, True)
    assert round_service.get_active(owner).id == first


def test_pick_next_word_prefers_unsolved(round_service, owner, word_ids) -> None:
    """Test that the next word comes from the unsolved items."""
    alpha, beta = word_ids
    round_id = round_service.start(owner, word_ids, reps_per_word=1)
    round_service.record(owner, round_id, alpha, 500, True)

    for _ in range(10):
        assert round_service.pick_next_word(owner, round_id) == beta

    round_service.record(owner, round_id, beta, 500, True)
    assert round_service.pick_next_word(owner, round_id) in word_ids
    assert round_service.pick_next_word(owner, None) is None


def test_concurrent_item_update_is_detected(db, owner, word_ids) -> None:
    """Test that the item version stops a lost update."""
    service = RoundService(db)
    round_id = service.start(owner, word_ids, reps_per_word=3)

    first = SessionLocal()
    second = SessionLocal()
    try:
        stale = first.query(RoundItem).filter_by(round_id=round_id, word_id=word_ids[0]).one()
        fresh = second.query(RoundItem).filter_by(round_id=round_id, word_id=word_ids[0]).one()

        fresh.reps_done += 1
        second.commit()

        stale.reps_done += 1
        with pytest.raises(StaleDataError):
            first.commit()
        first.rollback()
    finally:
        first.close()
        second.close()

    assert _item(db, round_id, word_ids[0]).reps_done == 1


def test_records_on_different_items_take_turns(round_service, db, owner, word_ids, mocker) -> None:
    """Test that two sessions finishing different items still complete the round."""
    alpha, beta = word_ids
    round_id = round_service.start(owner, word_ids, reps_per_word=1)
    other = SessionLocal()
    original = round_service._get_owned
    calls = []

    def interleaved(*args, **kwargs):
        round_ = original(*args, **kwargs)
        calls.append(args)
        if len(calls) == 1:
            # The other session finishes beta while this one is mid-record
            RoundService(other).record(owner, round_id, beta, 400, True)
        return round_

    mocker.patch.object(round_service, "_get_owned", side_effect=interleaved)
    try:
        round_service.record(owner, round_id, alpha, 300, True)
    finally:
        other.close()

    assert len(calls) == 2
    db.expire_all()
    assert db.get(Round, round_id).status == ROUND_DONE
    assert all(item.solved for item in db.query(RoundItem).filter_by(round_id=round_id))
    assert db.query(Attempt).filter_by(round_id=round_id).count() == 2


def test_record_retries_after_stale_update(round_service, db, owner, word_ids, mocker) -> None:
    """Test that a stale flush is replayed without duplicating the attempt."""
    round_id = round_service.start(owner, word_ids, reps_per_word=3)
    original = round_service._record_once
    calls = []

    def flaky(*args, **kwargs):
        calls.append(args)
        if len(calls) == 1:
            raise StaleDataError("item changed underneath us")
        return original(*args, **kwargs)

    mocker.patch.object(round_service, "_record_once", side_effect=flaky)
    round_service.record(owner, round_id, word_ids[0], 1000, True)

    assert len(calls) == 2
    assert _item(db, round_id, word_ids[0]).reps_done == 1
    assert db.query(Attempt).count() == 1


def test_record_gives_up_after_max_retries(round_service, db, owner, word_ids, mocker) -> None:
    """Test that persistent contention surfaces as a conflict."""
    round_id = round_service.start(owner, word_ids, reps_per_word=3)
    mock = mocker.patch.object(
        round_service, "_record_once", side_effect=StaleDataError("always stale")
    )

    with pytest.raises(ConflictError):
        round_service.record(owner, round_id, word_ids[0], 1000, True)

    assert mock.call_count == settings.rounds.max_record_retries
    assert db.query(Attempt).count() == 0


@pytest.mark.parametrize(
    "reps_done, best_time_ms, max_time_ms, expected",
    [
        (3, 2500, 2000, False),
        (3, 1800, 2000, True),
        (3, 2000, 2000, True),
        (3, None, 2000, False),
        (3, 99999, None, True),
        (2, 100, None, False),
        (4, None, None, True),
    ],
)
def test_is_item_solved(reps_done, best_time_ms, max_time_ms, expected) -> None:
    """Test the solved rule with three reps per word."""
    assert is_item_solved(reps_done, best_time_ms, 3, max_time_ms) is expected
