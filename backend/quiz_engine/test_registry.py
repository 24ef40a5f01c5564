from __future__ import annotations

from unittest import TestCase

from .errors import (
    DuplicateAnswer,
    NoCurrentQuestion,
    RoomAlreadyStarted,
    RoomNotActive,
    RoomNotFound,
    UnknownParticipant,
)
from .fakes import FakeClock, FakeScheduler, make_question
from .registry import RoomRegistry


class _ScriptedRandom:
    def __init__(self, values):
        self._values = list(values)

    def randint(self, a, b):
        return self._values.pop(0)


class _RegistryTestCase(TestCase):
    def setUp(self) -> None:
        self.clock = FakeClock()
        self.scheduler = FakeScheduler(self.clock)
        self.registry = RoomRegistry(scheduler=self.scheduler, clock=self.clock)
        self.questions = [make_question(1, correct=0), make_question(2, correct=3)]
        self.code = self.registry.create_room("quiz-1", "host-session", self.questions)

    def join_two(self):
        self.registry.join(self.code, "c1", "P1", "Alice")
        self.registry.join(self.code, "c2", "P2", "Bob")


class RoomLifecycleTests(_RegistryTestCase):
    def test_create_room_defaults(self):
        room = self.registry.get_room(self.code)

        self.assertRegex(self.code, r"^\d{6}$")
        self.assertFalse(room.is_active)
        self.assertEqual(room.current_question_index, 0)
        self.assertEqual(room.host_session_id, "host-session")
        self.assertEqual(room.created_at, self.clock.now)
        self.assertIsNone(room.deadline_timer)

    def test_codes_retry_on_collision(self):
        registry = RoomRegistry(scheduler=self.scheduler, rng=_ScriptedRandom([123456, 123456, 654321]))

        first = registry.create_room("q", "h", self.questions)
        second = registry.create_room("q", "h", self.questions)

        self.assertEqual(first, "123456")
        self.assertEqual(second, "654321")

    def test_find_rooms_for_connection(self):
        self.join_two()
        other = self.registry.create_room("quiz-2", "other-session", self.questions)
        self.registry.join(other, "c1", "P9", "Alice")

        codes = {room.code for room in self.registry.find_rooms_for_connection("c1")}

        self.assertEqual(codes, {self.code, other})
        self.assertEqual(self.registry.find_rooms_for_connection("c2")[0].code, self.code)
        self.assertEqual(self.registry.find_rooms_for_connection("ghost"), [])

    def test_codes_are_unique_among_live_rooms(self):
        for _ in range(200):
            self.registry.create_room("q", "h", self.questions)

        codes = [room.code for room in self.registry.rooms()]
        self.assertEqual(len(codes), 201)
        self.assertEqual(len(set(codes)), 201)
        self.assertEqual(len(self.registry), 201)

    def test_create_room_requires_questions(self):
        with self.assertRaises(ValueError):
            self.registry.create_room("q", "h", [])

    def test_delete_room_is_idempotent(self):
        self.assertTrue(self.registry.delete_room(self.code))
        self.assertFalse(self.registry.delete_room(self.code))
        self.assertIsNone(self.registry.get_room(self.code))
        self.assertNotIn(self.code, self.registry)

    def test_delete_room_cancels_pending_timers(self):
        fired = []
        self.join_two()
        self.registry.start(self.code)
        deadline = self.registry.schedule_deadline(self.code, 20, fired.append)
        cleanup = self.registry.schedule_cleanup(self.code, 60, fired.append)

        self.registry.delete_room(self.code)
        self.scheduler.advance(120)

        self.assertTrue(deadline.cancelled)
        self.assertTrue(cleanup.cancelled)
        self.assertEqual(fired, [])


class MembershipTests(_RegistryTestCase):
    def test_join_unknown_room(self):
        with self.assertRaises(RoomNotFound):
            self.registry.join("000000", "c1", "P1", "Alice")

    def test_rejoin_before_start_updates_connection_and_name(self):
        self.registry.join(self.code, "c1", "P1", "Alice")
        player = self.registry.join(self.code, "c9", "P1", "Alice B.")
        room = self.registry.get_room(self.code)

        self.assertEqual(len(room.members), 1)
        self.assertEqual(player.connection_id, "c9")
        self.assertEqual(player.display_name, "Alice B.")
        self.assertEqual(room.connection_to_identity, {"c9": "P1"})

    def test_new_identity_cannot_join_active_room(self):
        self.join_two()
        self.registry.start(self.code)

        with self.assertRaises(RoomAlreadyStarted):
            self.registry.join(self.code, "c3", "P3", "Late")
        self.assertNotIn("P3", self.registry.get_room(self.code).ever_joined)

    def test_reconnect_after_start_keeps_progress(self):
        self.join_two()
        self.registry.start(self.code)
        self.registry.submit_answer(self.code, "c1", 0)
        score = self.registry.get_room(self.code).members["P1"].score

        dropped = self.registry.disconnect(self.code, "c1")
        self.assertIsNone(dropped.connection_id)
        player = self.registry.join(self.code, "c1b", "P1", "Alice")

        self.assertEqual(player.score, score)
        self.assertEqual(player.streak, 1)
        self.assertEqual(len(player.answers), 1)
        self.assertEqual(self.registry.get_room(self.code).connection_to_identity["c1b"], "P1")

    def test_join_before_start_disconnect_then_rejoin_after_start(self):
        self.registry.join(self.code, "c1", "P1", "Alice")
        self.registry.disconnect(self.code, "c1")
        self.registry.start(self.code)

        player = self.registry.join(self.code, "c1b", "P1", "Alice")
        result = self.registry.submit_answer(self.code, "c1b", 0)

        self.assertTrue(result.is_correct)
        self.assertEqual(player.score, result.total_score_after)

    def test_leave_removes_player_but_not_history(self):
        self.join_two()
        result = self.registry.leave(self.code, "c1")
        room = self.registry.get_room(self.code)

        self.assertTrue(result.removed)
        self.assertEqual(result.identity, "P1")
        self.assertNotIn("P1", room.members)
        self.assertNotIn("c1", room.connection_to_identity)
        self.assertIn("P1", room.ever_joined)

    def test_leave_unknown_connection_or_room(self):
        self.assertFalse(self.registry.leave(self.code, "nobody").removed)
        self.assertFalse(self.registry.leave("000000", "c1").removed)

    def test_identity_that_left_may_return_to_active_room(self):
        self.join_two()
        self.registry.leave(self.code, "c1")
        self.registry.start(self.code)

        player = self.registry.join(self.code, "c1b", "P1", "Alice")
        self.assertEqual(player.score, 0)

    def test_disconnect_unknown_connection(self):
        self.assertIsNone(self.registry.disconnect(self.code, "ghost"))
        self.assertIsNone(self.registry.disconnect("000000", "ghost"))


class QuestionFlowTests(_RegistryTestCase):
    def test_start_unknown_room(self):
        self.assertFalse(self.registry.start("000000"))

    def test_start_resets_players(self):
        self.join_two()
        self.registry.start(self.code)
        self.registry.submit_answer(self.code, "c1", 0)
        self.clock.tick(3)

        self.assertTrue(self.registry.start(self.code))
        room = self.registry.get_room(self.code)
        p1 = room.members["P1"]
        self.assertEqual((p1.score, p1.streak, p1.answers), (0, 0, []))
        self.assertTrue(room.is_active)
        self.assertEqual(room.current_question_index, 0)
        self.assertEqual(room.question_started_at, self.clock.now)

    def test_restart_cancels_stale_deadline(self):
        fired = []
        self.registry.start(self.code)
        task = self.registry.schedule_deadline(self.code, 20, fired.append)

        self.registry.start(self.code)
        self.scheduler.advance(30)

        self.assertTrue(task.cancelled)
        self.assertEqual(fired, [])

    def test_submit_before_start(self):
        self.join_two()
        with self.assertRaises(RoomNotActive):
            self.registry.submit_answer(self.code, "c1", 0)

    def test_submit_from_unknown_connection(self):
        self.registry.start(self.code)
        with self.assertRaises(UnknownParticipant):
            self.registry.submit_answer(self.code, "stranger", 0)

    def test_submit_after_last_question(self):
        self.join_two()
        self.registry.start(self.code)
        self.registry.advance(self.code)
        self.registry.advance(self.code)

        with self.assertRaises(NoCurrentQuestion):
            self.registry.submit_answer(self.code, "c1", 0)

    def test_submit_unknown_room(self):
        with self.assertRaises(RoomNotFound):
            self.registry.submit_answer("000000", "c1", 0)

    def test_second_answer_is_rejected_without_side_effects(self):
        self.join_two()
        self.registry.start(self.code)
        self.registry.submit_answer(self.code, "c1", 0)
        player = self.registry.get_room(self.code).members["P1"]
        before = (player.score, player.streak, len(player.answers))

        with self.assertRaises(DuplicateAnswer):
            self.registry.submit_answer(self.code, "c1", 1)
        self.assertEqual((player.score, player.streak, len(player.answers)), before)

    def test_elapsed_time_is_measured_from_question_start(self):
        self.join_two()
        self.registry.start(self.code)
        self.clock.tick(5)

        result = self.registry.submit_answer(self.code, "c1", 0)
        answer = self.registry.get_room(self.code).members["P1"].answers[0]

        self.assertEqual(answer.time_taken_seconds, 5)
        self.assertEqual(result.points_earned, 825)  # 1000 * 0.75 * 1.1

    def test_all_answered(self):
        self.join_two()
        self.registry.start(self.code)
        self.assertFalse(self.registry.all_answered(self.code))

        self.registry.submit_answer(self.code, "c1", 0)
        self.assertFalse(self.registry.all_answered(self.code))
        self.registry.submit_answer(self.code, "c2", 1)
        self.assertTrue(self.registry.all_answered(self.code))
        self.assertFalse(self.registry.all_answered("000000"))

    def test_end_question_fills_in_missing_answers(self):
        self.join_two()
        self.registry.start(self.code)
        self.registry.submit_answer(self.code, "c1", 0)
        self.registry.get_room(self.code).members["P2"].streak = 4

        results = self.registry.end_question(self.code)
        room = self.registry.get_room(self.code)

        for player in room.members.values():
            self.assertEqual(len([a for a in player.answers if a.question_id == 1]), 1)
        missed = room.members["P2"].answers[0]
        self.assertIsNone(missed.selected_option_index)
        self.assertFalse(missed.is_correct)
        self.assertEqual(missed.time_taken_seconds, 20)
        self.assertEqual(room.members["P2"].streak, 0)
        self.assertTrue(room.question_ended)
        self.assertIsNone(room.question_started_at)

        self.assertEqual(results.correct_option_index, 0)
        self.assertEqual(results.current_question_index, 0)
        self.assertEqual(results.total_questions, 2)
        by_identity = {r.identity: r for r in results.player_results}
        self.assertTrue(by_identity["P1"].is_correct)
        self.assertIsNone(by_identity["P2"].selected_option_index)

    def test_end_question_cancels_deadline(self):
        fired = []
        self.registry.start(self.code)
        task = self.registry.schedule_deadline(self.code, 20, fired.append)

        self.registry.end_question(self.code)
        self.scheduler.advance(25)

        self.assertTrue(task.cancelled)
        self.assertEqual(fired, [])
        self.assertIsNone(self.registry.end_question("000000"))

    def test_advance_requires_active_room(self):
        with self.assertRaises(RoomNotActive):
            self.registry.advance(self.code)
        with self.assertRaises(RoomNotFound):
            self.registry.advance("000000")

    def test_advance_reports_completion_after_last_question(self):
        code = self.registry.create_room("q", "h", [make_question(i) for i in range(1, 4)])
        self.registry.start(code)

        first = self.registry.advance(code)
        second = self.registry.advance(code)
        third = self.registry.advance(code)
        again = self.registry.advance(code)
        room = self.registry.get_room(code)

        self.assertEqual((first.completed, first.index, first.total), (False, 1, 3))
        self.assertEqual((second.completed, second.index), (False, 2))
        self.assertTrue(third.completed)
        self.assertTrue(again.completed)
        self.assertEqual(room.current_question_index, 3)
        self.assertTrue(room.is_completed)
        self.assertTrue(room.is_active)
        self.assertIsNone(self.registry.current_question(code))

    def test_advance_resets_question_clock(self):
        self.registry.start(self.code)
        self.registry.end_question(self.code)
        self.clock.tick(8)

        self.registry.advance(self.code)
        room = self.registry.get_room(self.code)

        self.assertEqual(room.question_started_at, self.clock.now)
        self.assertFalse(room.question_ended)
        self.assertEqual(self.registry.current_question(self.code).id, 2)

    def test_two_question_game(self):
        self.join_two()
        self.assertTrue(self.registry.start(self.code))

        p1 = self.registry.submit_answer(self.code, "c1", 0)
        p2 = self.registry.submit_answer(self.code, "c2", 2)
        self.assertTrue(self.registry.all_answered(self.code))

        results = self.registry.end_question(self.code)
        by_identity = {r.identity: r for r in results.player_results}
        self.assertTrue(p1.is_correct)
        self.assertFalse(p2.is_correct)
        self.assertTrue(by_identity["P1"].is_correct)
        self.assertGreater(by_identity["P1"].score, 0)
        self.assertEqual(by_identity["P1"].streak, 1)
        self.assertFalse(by_identity["P2"].is_correct)
        self.assertEqual(by_identity["P2"].score, 0)
        self.assertEqual(by_identity["P2"].streak, 0)

        step = self.registry.advance(self.code)
        self.assertFalse(step.completed)
        self.assertEqual(step.index, 1)

        self.registry.submit_answer(self.code, "c1", 3)
        self.registry.end_question(self.code)
        self.assertTrue(self.registry.advance(self.code).completed)


class DeadlineTimerTests(_RegistryTestCase):
    def test_deadline_fires_once(self):
        fired = []
        self.registry.start(self.code)
        task = self.registry.schedule_deadline(self.code, 20, fired.append)

        self.scheduler.advance(19)
        self.assertEqual(fired, [])
        self.scheduler.advance(1)
        self.scheduler.advance(60)

        self.assertEqual(fired, [self.code])
        self.assertTrue(task.fired)
        self.assertIsNone(self.registry.get_room(self.code).deadline_timer)

    def test_rescheduling_supersedes_previous_timer(self):
        fired = []
        self.registry.start(self.code)
        first = self.registry.schedule_deadline(self.code, 10, lambda code: fired.append("first"))
        self.registry.schedule_deadline(self.code, 20, lambda code: fired.append("second"))

        self.scheduler.advance(30)

        self.assertTrue(first.cancelled)
        self.assertEqual(fired, ["second"])

    def test_advance_cancels_deadline(self):
        fired = []
        self.registry.start(self.code)
        task = self.registry.schedule_deadline(self.code, 20, fired.append)

        self.registry.advance(self.code)
        self.scheduler.advance(30)

        self.assertTrue(task.cancelled)
        self.assertEqual(fired, [])

    def test_callback_for_replaced_room_is_ignored(self):
        fired = []
        self.registry.start(self.code)
        task = self.registry.schedule_deadline(self.code, 20, fired.append)
        # Bypass delete_room so the task is still live when the room disappears.
        self.registry._rooms.pop(self.code)

        self.scheduler.advance(30)

        self.assertTrue(task.fired)
        self.assertEqual(fired, [])

    def test_schedule_for_unknown_room(self):
        with self.assertRaises(RoomNotFound):
            self.registry.schedule_deadline("000000", 5, lambda code: None)

    def test_cleanup_timer_can_be_cancelled(self):
        fired = []
        self.registry.schedule_cleanup(self.code, 30, fired.append)

        self.assertTrue(self.registry.cancel_cleanup(self.code))
        self.assertFalse(self.registry.cancel_cleanup(self.code))
        self.scheduler.advance(60)
        self.assertEqual(fired, [])

    def test_start_cancels_pending_cleanup(self):
        fired = []
        task = self.registry.schedule_cleanup(self.code, 30, fired.append)

        self.registry.start(self.code)
        self.scheduler.advance(60)

        self.assertTrue(task.cancelled)
        self.assertIsNone(self.registry.get_room(self.code).cleanup_timer)
        self.assertEqual(fired, [])
