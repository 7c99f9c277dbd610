import os
import sys
import unittest
from unittest.mock import MagicMock, patch

# Add the src directory to the Python path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), 'src'))

from quran_hafiz.alignment_engine import AlignmentStateError, Status
from quran_hafiz.session_controller import (
    MAX_RESTART_ATTEMPTS,
    RecitationSession,
    restart_delay,
)
from quran_hafiz.validation import COMPLETED, IN_PROGRESS, NEEDS_REVIEW

IKHLAS = [
    "قُلْ هُوَ ٱللَّهُ أَحَدٌ",
    "ٱللَّهُ ٱلصَّمَدُ",
    "لَمْ يَلِدْ وَلَمْ يُولَدْ",
    "وَلَمْ يَكُن لَّهُۥ كُفُوًا أَحَدٌ",
]


class FakeScheduler:
    """Collects scheduled callbacks instead of running them on a timer."""

    def __init__(self):
        self.calls = []

    def __call__(self, delay, callback):
        handle = MagicMock()
        self.calls.append((delay, callback, handle))
        return handle


class TestRestartDelay(unittest.TestCase):
    def test_backoff_grows_and_caps(self):
        self.assertEqual(restart_delay(0), 0.25)
        self.assertEqual(restart_delay(1), 0.5)
        self.assertEqual(restart_delay(4), 1.25)
        self.assertEqual(restart_delay(5), 1.5)
        self.assertEqual(restart_delay(MAX_RESTART_ATTEMPTS), 1.5)


class TestRecitationSession(unittest.TestCase):
    def setUp(self):
        self.session = RecitationSession(IKHLAS)

    def test_initial_state(self):
        self.assertFalse(self.session.is_listening)
        self.assertFalse(self.session.is_complete)
        self.assertEqual(len(self.session.snapshot()), 15)
        self.assertTrue(all(view.status == Status.PENDING for view in self.session.snapshot()))

    def test_transcript_ignored_until_started(self):
        self.assertFalse(self.session.on_transcript("قل هو"))
        self.assertEqual(self.session.cursor.consumed_hypothesis_count, 0)
        self.assertEqual(self.session.final_text, "")

    def test_transcript_updates_statuses(self):
        self.session.start()

        self.assertTrue(self.session.on_transcript("قُلْ هُوَ", interim_text="ٱللَّهُ"))

        self.assertEqual(self.session.cursor.ref_index, 2)
        self.assertEqual(self.session.hypothesis_tokens, ["قل", "هو"])
        self.assertEqual(self.session.interim_text, "ٱللَّهُ")
        statuses = [view.status for view in self.session.snapshot()]
        self.assertEqual(statuses[:2], [Status.CORRECT, Status.CORRECT])
        # Interim words are never aligned
        self.assertEqual(statuses[2], Status.PENDING)

    def test_append_final(self):
        self.session.start()

        self.session.append_final("قل هو")
        self.session.append_final("الله احد")

        self.assertEqual(self.session.final_text, "قل هو الله احد")
        self.assertEqual(self.session.cursor.ref_index, 4)

    def test_full_recitation_completes(self):
        self.session.start()

        self.session.on_transcript(" ".join(IKHLAS))

        self.assertTrue(self.session.is_complete)
        summary = self.session.summary()
        self.assertEqual(summary.correct_words, 15)
        self.assertEqual(summary.match_percentage, 100.0)
        self.assertTrue(summary.is_valid)
        self.assertEqual(summary.message_category, COMPLETED)

    def test_transcript_must_only_grow(self):
        self.session.start()
        self.session.on_transcript("قل هو الله")

        with self.assertRaises(AlignmentStateError):
            self.session.on_transcript("قل هو")

        with self.assertRaises(AlignmentStateError):
            self.session.on_transcript("قل هي الله احد")

        # The rejected updates left the attempt untouched
        self.assertEqual(self.session.hypothesis_tokens, ["قل", "هو", "الله"])

    def test_stop_freezes_statuses(self):
        self.session.start()
        self.session.on_transcript("قل هو")

        self.session.stop()

        self.assertFalse(self.session.is_listening)
        self.assertTrue(self.session.is_frozen)
        self.assertFalse(self.session.on_transcript("قل هو الله احد"))
        self.assertEqual(self.session.cursor.ref_index, 2)
        self.assertEqual(self.session.summary().message_category, IN_PROGRESS)

    def test_start_after_stop_begins_fresh_attempt(self):
        self.session.start()
        self.session.on_transcript("قل هو")
        self.session.stop()

        self.session.start()

        self.assertTrue(self.session.is_listening)
        self.assertFalse(self.session.is_frozen)
        self.assertEqual(self.session.cursor.ref_index, 0)
        self.assertEqual(self.session.final_text, "")
        self.assertTrue(self.session.on_transcript("قل"))

    def test_start_twice_is_noop(self):
        self.session.start()
        self.session.on_transcript("قل هو")

        self.session.start()

        self.assertEqual(self.session.cursor.ref_index, 2)

    def test_reset(self):
        self.session.start()
        self.session.on_transcript("قل هو الله احد ولم يكن")

        self.session.reset()

        self.assertEqual(self.session.cursor.ref_index, 0)
        self.assertEqual(self.session.cursor.consumed_hypothesis_count, 0)
        self.assertEqual(self.session.hypothesis_tokens, [])
        self.assertTrue(all(view.status == Status.PENDING for view in self.session.snapshot()))
        # Still listening; a fresh transcript starts over
        self.assertTrue(self.session.on_transcript("قل"))

    def test_load_passage(self):
        self.session.start()
        self.session.on_transcript("قل هو")

        self.session.load_passage([["بسم", "الله"]])

        self.assertEqual(len(self.session.snapshot()), 2)
        self.assertEqual(self.session.cursor.ref_index, 0)
        self.session.on_transcript("بسم الله")
        self.assertTrue(self.session.is_complete)

    def test_summary_counts_skipped_words(self):
        self.session.start()
        self.session.on_transcript("قل هو الله احد ولم يكن له كفوا احد")

        summary = self.session.summary()

        self.assertTrue(summary.is_complete)
        self.assertEqual(summary.skipped_words, 6)
        self.assertEqual(summary.correct_words, 9)
        self.assertEqual(summary.pending_words, 0)
        self.assertFalse(summary.is_valid)

    def test_summary_of_incomplete_attempt_with_skips(self):
        self.session.start()
        self.session.on_transcript("قل هو الله احد ولم يكن")

        self.assertEqual(self.session.summary().message_category, NEEDS_REVIEW)

    def test_recoverable_error_keeps_listening(self):
        self.session.start()

        self.assertTrue(self.session.on_source_error("no-speech"))

        self.assertTrue(self.session.wants_listening)
        self.assertIsNone(self.session.error)

    def test_fatal_error_stops_listening(self):
        self.session.start()

        self.assertFalse(self.session.on_source_error("not-allowed"))

        self.assertFalse(self.session.is_listening)
        self.assertFalse(self.session.wants_listening)
        self.assertEqual(self.session.error, "Error: not-allowed")

    def test_source_ended_without_local_source_returns_delay(self):
        self.session.start()

        delays = [self.session.on_source_ended() for _ in range(8)]

        self.assertEqual(delays[:3], [0.25, 0.5, 0.75])
        self.assertEqual(delays[-1], 1.5)
        self.assertTrue(self.session.is_listening)

    def test_source_ended_after_stop_does_not_restart(self):
        self.session.start()
        self.session.stop()

        self.assertIsNone(self.session.on_source_ended())
        self.assertFalse(self.session.is_listening)

    def test_start_after_fatal_error_begins_fresh_attempt(self):
        self.session.start()
        self.session.on_transcript("قل هو")
        self.session.on_source_error("not-allowed")

        self.session.start()

        # The restarted recognizer sends a shorter buffer than before the error
        self.assertTrue(self.session.on_transcript("قل"))
        self.assertEqual(self.session.cursor.consumed_hypothesis_count, 0)
        self.assertEqual(self.session.hypothesis_tokens, ["قل"])
        self.assertIsNone(self.session.error)

    def test_held_back_words_may_be_revised(self):
        self.session.start()
        # "لم" waits for confirmation as the opening of the third ayah
        self.session.on_transcript("قل هو الله احد لم")
        self.assertEqual(self.session.cursor.consumed_hypothesis_count, 4)

        self.assertTrue(self.session.on_transcript("قل هو الله احد الله الصمد"))

        self.assertEqual(self.session.cursor.ref_index, 6)
        self.assertEqual(self.session.summary().skipped_words, 0)

    def test_state_is_read_under_lock(self):
        self.session.start()
        self.session.on_transcript("قل هو", interim_text="الله")
        self.session._lock = MagicMock()

        state = self.session.state()

        self.session._lock.__enter__.assert_called_once()
        self.assertTrue(state.is_listening)
        self.assertEqual(state.cursor.ref_index, 2)
        self.assertEqual(state.final_text, "قل هو")
        self.assertEqual(state.interim_text, "الله")
        self.assertEqual(len(state.words), 15)

    def test_validate_after_stop(self):
        self.session.start()
        self.session.on_transcript("قل هو الله احد الله الصمد")

        self.assertIsNone(self.session.validate())
        self.session.stop()
        result = self.session.validate(ayah_number=1)

        self.assertEqual(result.ayah_number, 1)
        self.assertEqual(result.match_percentage, 6 / 15 * 100)
        self.assertFalse(result.is_valid)
        self.assertTrue(all(w.is_correct for w in result.word_results[:6]))

    def test_validate_complete_recitation(self):
        self.session.start()
        self.session.on_transcript(" ".join(IKHLAS))
        self.session.stop()

        result = self.session.validate()

        self.assertTrue(result.is_valid)
        self.assertEqual(result.message_category, COMPLETED)

    def test_validate_without_recitation(self):
        self.session.start()
        self.session.stop()

        self.assertIsNone(self.session.validate())


class TestRecitationSessionWithSource(unittest.TestCase):
    def setUp(self):
        self.source = MagicMock()
        self.scheduler = FakeScheduler()
        self.session = RecitationSession(IKHLAS, source=self.source, scheduler=self.scheduler)

    def test_start_starts_source(self):
        self.session.start()

        self.source.start.assert_called_once()
        # Listening only once the source reports it started
        self.assertFalse(self.session.is_listening)
        self.session.on_source_started()
        self.assertTrue(self.session.is_listening)

    def test_restart_scheduled_when_source_ends(self):
        self.session.start()
        self.session.on_source_started()

        delay = self.session.on_source_ended()

        self.assertEqual(delay, 0.25)
        self.assertEqual(len(self.scheduler.calls), 1)
        scheduled_delay, callback, _ = self.scheduler.calls[0]
        self.assertEqual(scheduled_delay, 0.25)

        callback()
        self.assertEqual(self.source.start.call_count, 2)

    def test_backoff_resets_once_source_restarts(self):
        self.session.start()
        self.session.on_source_ended()
        self.session.on_source_ended()

        self.session.on_source_started()

        self.assertEqual(self.session.on_source_ended(), 0.25)

    def test_stop_cancels_pending_restart(self):
        self.session.start()
        self.session.on_source_started()
        self.session.on_source_ended()
        _, callback, handle = self.scheduler.calls[0]

        self.session.stop()

        handle.cancel.assert_called_once()
        self.source.stop.assert_called_once()
        # A timer that fires anyway must not bring the source back
        callback()
        self.assertEqual(self.source.start.call_count, 1)

    def test_source_refusing_to_start_is_logged(self):
        self.source.start.side_effect = RuntimeError("already started")

        with patch.object(self.session.logger, "warning") as warning:
            self.session.start()

        warning.assert_called_once()
        self.assertTrue(self.session.wants_listening)

    def test_fatal_error_cancels_pending_restart(self):
        self.session.start()
        self.session.on_source_ended()
        _, _, handle = self.scheduler.calls[0]

        self.session.on_source_error("service-not-allowed")

        handle.cancel.assert_called_once()
        self.assertEqual(self.session.error, "Error: service-not-allowed")


if __name__ == "__main__":
    unittest.main()
