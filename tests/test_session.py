# tests/test_session.py
import json
import random
from datetime import timedelta

import pytest

from conftest import NOW, make_question
from civics_tutor.models import Category, PresentationMode, QuestionType
from civics_tutor.selection import SessionMode
from civics_tutor.session import SessionController, SessionPhase, SessionStateError
from civics_tutor.sm2 import is_due, new_record, next_review
from civics_tutor.store import (
    INCORRECT_KEY, MARKED_KEY, SRS_KEY, STATS_KEY, MemoryKeyValueStore, ProgressStore,
)


class FakeTimer:
    def __init__(self):
        self.value = 100.0

    def __call__(self):
        return self.value

    def advance(self, seconds):
        self.value += seconds


class RecordingAudio:
    def __init__(self):
        self.cued = []

    def cue(self, question):
        self.cued.append(question.id)


class FailingKeyValueStore(MemoryKeyValueStore):
    async def set(self, key, value):
        raise OSError("quota exceeded")


def make_controller(questions, kv=None, **options):
    store = ProgressStore(kv if kv is not None else MemoryKeyValueStore())
    options.setdefault("rng", random.Random(7))
    options.setdefault("timer", FakeTimer())
    return SessionController(questions, store, clock=lambda: NOW, **options)


async def answer_all(controller, correct=True):
    while not controller.is_complete:
        answer = controller.current_question.answer if correct else "no idea"
        await controller.handle_answer(answer)
        controller.handle_next()


@pytest.mark.asyncio
async def test_start_presents_first_question(questions):
    controller = make_controller(questions)
    assert controller.phase is SessionPhase.LOADING
    assert controller.current_question is None
    await controller.start()
    assert controller.phase is SessionPhase.PRESENTING
    assert controller.current_question is not None
    assert controller.progress.current == 1
    assert controller.progress.total == 6


@pytest.mark.asyncio
async def test_start_twice_rejected(questions):
    controller = make_controller(questions)
    await controller.start()
    with pytest.raises(SessionStateError):
        await controller.start()


@pytest.mark.asyncio
async def test_answer_then_next_walks_all_slots(questions):
    controller = make_controller(questions)
    await controller.start()
    seen = []
    while not controller.is_complete:
        seen.append(controller.current_question.id)
        assert await controller.handle_answer(controller.current_question.answer) is True
        assert controller.phase is SessionPhase.ANSWERED
        controller.handle_next()
    assert sorted(seen) == [1, 2, 3, 4, 5, 6]
    assert controller.progress.current == 6
    assert controller.current_slot is None


@pytest.mark.asyncio
async def test_duplicate_answer_rejected(questions):
    controller = make_controller(questions)
    await controller.start()
    await controller.handle_answer("anything")
    with pytest.raises(SessionStateError):
        await controller.handle_answer("again")
    assert controller.stats.answered == 1


@pytest.mark.asyncio
async def test_next_before_answer_rejected(questions):
    controller = make_controller(questions)
    with pytest.raises(SessionStateError):
        controller.handle_next()
    await controller.start()
    with pytest.raises(SessionStateError):
        controller.handle_next()


@pytest.mark.asyncio
async def test_answer_after_completion_rejected(questions):
    controller = make_controller(questions[:1])
    await controller.start()
    await controller.handle_answer("Republic")
    controller.handle_next()
    assert controller.is_complete
    with pytest.raises(SessionStateError):
        await controller.handle_answer("Republic")


@pytest.mark.asyncio
async def test_incorrect_answer_persisted(questions):
    kv = MemoryKeyValueStore()
    controller = make_controller(questions, kv=kv, mode=SessionMode.CATEGORY, category=Category.HISTORY)
    await controller.start()
    qid = controller.current_question.id
    assert await controller.handle_answer("Abraham Lincoln") is False
    assert controller.is_incorrect(qid)
    assert json.loads(kv.data[INCORRECT_KEY]) == [qid]
    log = json.loads(kv.data[STATS_KEY])
    assert log[0]["questionId"] == qid
    assert log[0]["isCorrect"] is False
    assert log[0]["category"] == "history"


@pytest.mark.asyncio
async def test_correct_answer_leaves_incorrect_list_alone(questions):
    kv = MemoryKeyValueStore({INCORRECT_KEY: "[1]"})
    controller = make_controller(questions, kv=kv, mode=SessionMode.INCORRECT)
    await controller.start()
    assert controller.current_question.id == 1
    assert await controller.handle_answer("republic") is True
    assert json.loads(kv.data[INCORRECT_KEY]) == [1]


@pytest.mark.asyncio
async def test_stats_and_score(questions):
    controller = make_controller(questions)
    await controller.start()
    for i in range(6):
        answer = controller.current_question.answer if i % 2 == 0 else "wrong"
        await controller.handle_answer(answer)
        controller.handle_next()
    stats = controller.stats
    assert stats.correct == 3
    assert stats.incorrect == 3
    assert stats.total == 6
    assert stats.score == pytest.approx(50.0)


@pytest.mark.asyncio
async def test_score_zero_before_answers(questions):
    controller = make_controller(questions)
    await controller.start()
    assert controller.stats.score == 0.0


@pytest.mark.asyncio
async def test_empty_pool_completes_immediately(questions):
    controller = make_controller(questions, mode=SessionMode.MARKED)
    await controller.start()
    assert controller.is_complete
    assert controller.is_empty
    assert controller.stats.total == 0
    assert controller.progress.total == 0


@pytest.mark.asyncio
async def test_count_limits_session(questions):
    controller = make_controller(questions, count=4)
    await controller.start()
    assert controller.progress.total == 4


@pytest.mark.asyncio
async def test_question_type_mode(questions):
    controller = make_controller(questions, mode=SessionMode.QUESTION_TYPE, question_type=QuestionType.WHO)
    await controller.start()
    assert controller.progress.total == 1
    assert controller.current_question.id == 4


@pytest.mark.asyncio
async def test_spaced_repetition_fast_correct_answer(now):
    """A new question answered correctly in 3 seconds gets quality 5 and a one-day interval."""
    question = make_question(1, "Republic")
    kv = MemoryKeyValueStore()
    timer = FakeTimer()
    controller = make_controller([question], kv=kv, mode=SessionMode.SPACED_REPETITION, timer=timer)
    await controller.start()
    assert controller.srs_status_message(1) == "new"
    timer.advance(3)
    assert await controller.handle_answer("the republic") is True

    record = controller.srs_map[1]
    assert record.last_quality == 5
    assert record.repetitions == 1
    assert record.interval == 1
    assert record.next_review_date == now + timedelta(days=1)
    assert not is_due(record, now)
    assert controller.srs_status_message(1) == "review tomorrow"

    stored = json.loads(kv.data[SRS_KEY])["1"]
    assert stored["repetitions"] == 1
    assert stored["lastQuality"] == 5
    assert json.loads(kv.data[STATS_KEY])[0]["quality"] == 5


@pytest.mark.asyncio
async def test_spaced_repetition_wrong_answer_resets(now):
    question = make_question(1, "Republic")
    previous = next_review(next_review(new_record(1), 5, now=now - timedelta(days=10)), 5,
                           now=now - timedelta(days=7))
    kv = MemoryKeyValueStore({SRS_KEY: json.dumps({})})
    store = ProgressStore(kv)
    await store.save_srs_record(previous)
    controller = make_controller([question], kv=kv, mode=SessionMode.SPACED_REPETITION)
    await controller.start()
    assert controller.current_srs == previous
    await controller.handle_answer("monarchy")
    record = controller.srs_map[1]
    assert record.repetitions == 0
    assert record.interval == 1
    assert record.ease_factor == pytest.approx(previous.ease_factor - 0.2)


@pytest.mark.asyncio
async def test_spaced_repetition_explicit_elapsed(now):
    controller = make_controller([make_question(1, "Republic")], mode=SessionMode.SPACED_REPETITION)
    await controller.start()
    await controller.handle_answer("Republic", elapsed_seconds=12)
    assert controller.srs_map[1].last_quality == 3


@pytest.mark.asyncio
async def test_spaced_repetition_puts_due_before_waiting(now):
    questions = [make_question(i) for i in range(1, 5)]
    kv = MemoryKeyValueStore()
    store = ProgressStore(kv)
    await store.save_srs_record(next_review(new_record(1), 5, now=now))
    await store.save_srs_record(next_review(new_record(2), 5, now=now - timedelta(days=3)))
    controller = make_controller(questions, kv=kv, mode=SessionMode.SPACED_REPETITION)
    await controller.start()
    order = [slot.question_id for slot in controller.slots]
    assert order[0] == 2
    assert set(order[1:3]) == {3, 4}
    assert order[3] == 1


@pytest.mark.asyncio
async def test_other_modes_do_not_touch_srs(questions):
    kv = MemoryKeyValueStore()
    controller = make_controller(questions, kv=kv)
    await controller.start()
    await controller.handle_answer(controller.current_question.answer)
    assert SRS_KEY not in kv.data
    assert controller.current_srs is None


@pytest.mark.asyncio
async def test_toggle_marked(questions):
    kv = MemoryKeyValueStore()
    controller = make_controller(questions, kv=kv)
    with pytest.raises(SessionStateError):
        await controller.toggle_marked(1)
    await controller.start()
    assert await controller.toggle_marked(3) is True
    assert controller.is_marked(3)
    assert json.loads(kv.data[MARKED_KEY]) == [3]
    assert await controller.toggle_marked(3) is False
    assert json.loads(kv.data[MARKED_KEY]) == []


@pytest.mark.asyncio
async def test_marked_survives_into_next_session(questions):
    kv = MemoryKeyValueStore()
    first = make_controller(questions, kv=kv)
    await first.start()
    await first.toggle_marked(5)
    second = make_controller(questions, kv=kv, mode=SessionMode.MARKED)
    await second.start()
    assert [slot.question_id for slot in second.slots] == [5]


@pytest.mark.asyncio
async def test_write_failure_is_logged_not_raised(questions):
    controller = make_controller(questions, kv=FailingKeyValueStore(), mode=SessionMode.SPACED_REPETITION)
    await controller.start()
    qid = controller.current_question.id
    assert await controller.handle_answer("wrong") is False
    assert controller.phase is SessionPhase.ANSWERED
    assert controller.is_incorrect(qid)
    assert controller.srs_map[qid].repetitions == 0
    assert await controller.toggle_marked(qid) is True
    controller.handle_next()
    assert controller.phase is SessionPhase.PRESENTING


@pytest.mark.asyncio
async def test_presentation_modes_balanced(questions):
    controller = make_controller(questions)
    await controller.start()
    modes = [slot.mode for slot in controller.slots]
    assert modes.count(PresentationMode.TEXT) == 3
    assert modes.count(PresentationMode.AUDIO_CUE) == 3


@pytest.mark.asyncio
async def test_audio_cue_called_for_audio_slots(questions):
    audio = RecordingAudio()
    controller = make_controller(questions, audio=audio)
    await controller.start()
    expected = [s.question_id for s in controller.slots if s.mode is PresentationMode.AUDIO_CUE]
    await answer_all(controller)
    assert audio.cued == expected


@pytest.mark.asyncio
async def test_audio_failure_does_not_stop_session(questions):
    class BrokenAudio:
        def cue(self, question):
            raise RuntimeError("no speaker")

    controller = make_controller(questions, audio=BrokenAudio())
    await controller.start()
    await answer_all(controller)
    assert controller.stats.correct == 6


@pytest.mark.asyncio
async def test_final_stats_frozen(questions):
    controller = make_controller(questions[:2])
    await controller.start()
    await answer_all(controller)
    stats = controller.stats
    controller.correct_count = 99
    assert controller.stats is stats


@pytest.mark.asyncio
async def test_slow_answer_measured_from_zero_timer():
    """A timer that starts at 0.0 still measures elapsed time."""
    timer = FakeTimer()
    timer.value = 0.0
    controller = make_controller([make_question(1, "Republic")], mode=SessionMode.SPACED_REPETITION,
                                 timer=timer)
    await controller.start()
    timer.advance(30)
    assert await controller.handle_answer("Republic") is True
    record = controller.srs_map[1]
    assert record.last_quality == 2
    assert record.repetitions == 1
    assert record.ease_factor == pytest.approx(2.5 - 0.32)
