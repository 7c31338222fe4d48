"""Practice session state machine.

A controller owns one session: it builds the question order, checks answers,
updates recall state in spaced-repetition mode and persists progress through the
ProgressStore. Persistence failures are logged and the session carries on with
its in-memory state.
"""
import random
import time
from datetime import datetime
from enum import Enum
from typing import Callable, Protocol

from loguru import logger

from civics_tutor.answers import is_correct
from civics_tutor.models import (
    AnswerEvent, Category, PresentationMode, Question, QuestionType, SessionProgress,
    SessionSlot, SessionStats, SRSRecord,
)
from civics_tutor.selection import SessionMode, build_session
from civics_tutor.sm2 import new_record, next_review, quality_from_response, review_status_message, utcnow
from civics_tutor.store import ProgressStore


class SessionPhase(str, Enum):
    LOADING = "loading"
    PRESENTING = "presenting"
    ANSWERED = "answered"
    COMPLETED = "completed"


class SessionStateError(RuntimeError):
    """An operation was called in a phase that does not allow it."""


class AudioCue(Protocol):
    """Plays a question aloud. Supplied by the front-end; optional."""

    def cue(self, question: Question) -> None: ...


class SessionController:
    def __init__(
        self,
        questions: list[Question],
        store: ProgressStore,
        mode: SessionMode = SessionMode.RANDOM,
        count: int | None = None,
        category: Category | None = None,
        question_type: QuestionType | None = None,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] = utcnow,
        timer: Callable[[], float] = time.monotonic,
        audio: AudioCue | None = None,
    ):
        self.questions = {q.id: q for q in questions}
        self.store = store
        self.mode = SessionMode(mode)
        self.count = count
        self.category = category
        self.question_type = question_type
        self.rng = rng or random.Random()
        self.clock = clock
        self.timer = timer
        self.audio = audio

        self.phase = SessionPhase.LOADING
        self.slots: list[SessionSlot] = []
        self.current_index = 0
        self.correct_count = 0
        self.answered_count = 0
        self.incorrect_ids: set[int] = set()
        self.marked_ids: set[int] = set()
        self.srs_map: dict[int, SRSRecord] = {}
        self.last_result: bool | None = None
        self.final_stats: SessionStats | None = None
        self._presented_at: float | None = None

    # Lifecycle

    async def start(self) -> None:
        if self.phase is not SessionPhase.LOADING:
            raise SessionStateError(f"session already started ({self.phase.value})")
        self.incorrect_ids = await self.store.load_incorrect()
        self.marked_ids = await self.store.load_marked()
        if self.mode is SessionMode.SPACED_REPETITION:
            self.srs_map = await self.store.load_srs()

        self.slots = build_session(
            self.mode,
            list(self.questions.values()),
            srs_map=self.srs_map,
            incorrect_ids=self.incorrect_ids,
            marked_ids=self.marked_ids,
            count=self.count,
            category=self.category,
            question_type=self.question_type,
            rng=self.rng,
            now=self.clock(),
        )
        if not self.slots:
            logger.info(f"Nothing to practice in {self.mode.value} mode")
            self._complete()
            return
        self._present()

    def _present(self) -> None:
        self.phase = SessionPhase.PRESENTING
        self.last_result = None
        self._presented_at = self.timer()
        if self.audio is not None and self.current_mode is PresentationMode.AUDIO_CUE:
            try:
                self.audio.cue(self.current_question)
            except Exception as e:
                logger.error(f"Audio cue failed for question {self.current_slot.question_id}: {e}")

    def _complete(self) -> None:
        self.current_index = len(self.slots)
        self.phase = SessionPhase.COMPLETED
        self.final_stats = self._compute_stats()
        logger.debug(f"Session complete: {self.final_stats}")

    # Operations

    async def handle_answer(self, text: str, elapsed_seconds: float | None = None) -> bool:
        """Check an answer for the current question and record the outcome."""
        if self.phase is not SessionPhase.PRESENTING:
            raise SessionStateError(f"cannot answer while {self.phase.value}")
        question = self.current_question
        if elapsed_seconds is None:
            elapsed_seconds = self.timer() - self._presented_at
        correct = is_correct(text, question.answer)

        # In-memory state first; it stays authoritative if a write fails.
        self.answered_count += 1
        self.last_result = correct
        if correct:
            self.correct_count += 1
        else:
            self.incorrect_ids.add(question.id)
        updated = None
        quality = None
        if self.mode is SessionMode.SPACED_REPETITION:
            quality = quality_from_response(correct, elapsed_seconds)
            current = self.srs_map.get(question.id) or new_record(question.id)
            updated = next_review(current, quality, now=self.clock())
            self.srs_map[question.id] = updated
        self.phase = SessionPhase.ANSWERED

        if not correct:
            await self._persist("save incorrect", self.store.add_incorrect(question.id))
        if updated is not None:
            await self._persist("save SRS record", self.store.save_srs_record(updated))
        await self._persist("log answer", self.store.append_answer(AnswerEvent(
            question_id=question.id,
            answer=text,
            is_correct=correct,
            time_spent_ms=int(elapsed_seconds * 1000),
            timestamp=self.clock().isoformat(),
            mode=self.mode.value,
            category=question.category.value,
            quality=quality,
        )))
        return correct

    def handle_next(self) -> None:
        if self.phase is not SessionPhase.ANSWERED:
            raise SessionStateError(f"cannot advance while {self.phase.value}")
        if self.current_index + 1 < len(self.slots):
            self.current_index += 1
            self._present()
        else:
            self._complete()

    async def toggle_marked(self, question_id: int) -> bool:
        """Mark or unmark a question; returns the new state."""
        if self.phase is SessionPhase.LOADING:
            raise SessionStateError("cannot mark questions while loading")
        marked = question_id not in self.marked_ids
        if marked:
            self.marked_ids.add(question_id)
        else:
            self.marked_ids.discard(question_id)
        await self._persist("save marked", self.store.set_marked(question_id, marked))
        return marked

    async def _persist(self, what: str, write) -> None:
        try:
            await write
        except Exception as e:
            logger.error(f"Failed to {what}: {e}")

    # Read surface

    @property
    def current_slot(self) -> SessionSlot | None:
        if self.phase in (SessionPhase.LOADING, SessionPhase.COMPLETED):
            return None
        return self.slots[self.current_index]

    @property
    def current_question(self) -> Question | None:
        slot = self.current_slot
        return self.questions[slot.question_id] if slot else None

    @property
    def current_mode(self) -> PresentationMode | None:
        slot = self.current_slot
        return slot.mode if slot else None

    @property
    def current_srs(self) -> SRSRecord | None:
        slot = self.current_slot
        return self.srs_map.get(slot.question_id) if slot else None

    @property
    def is_complete(self) -> bool:
        return self.phase is SessionPhase.COMPLETED

    @property
    def is_empty(self) -> bool:
        return self.phase is SessionPhase.COMPLETED and not self.slots

    @property
    def progress(self) -> SessionProgress:
        total = len(self.slots)
        if self.phase is SessionPhase.LOADING:
            return SessionProgress(current=0, total=0)
        return SessionProgress(current=min(self.current_index + 1, total), total=total)

    @property
    def stats(self) -> SessionStats:
        if self.final_stats is not None:
            return self.final_stats
        return self._compute_stats()

    def _compute_stats(self) -> SessionStats:
        answered = self.answered_count
        return SessionStats(
            correct=self.correct_count,
            incorrect=answered - self.correct_count,
            total=len(self.slots),
            score=(self.correct_count / answered * 100) if answered else 0.0,
            answered=answered,
        )

    def is_marked(self, question_id: int) -> bool:
        return question_id in self.marked_ids

    def is_incorrect(self, question_id: int) -> bool:
        return question_id in self.incorrect_ids

    def srs_status_message(self, question_id: int) -> str:
        return review_status_message(self.srs_map.get(question_id), now=self.clock())
