"""Tests for the operation layer against a fake connection."""

from datetime import datetime, timezone
from unittest import TestCase

import psycopg
from pydantic import ValidationError

from fakes import FakeConnection
from pgmq_tx import operations
from pgmq_tx.errors import EngineError, ProtocolError
from pgmq_tx.models import MessageRecord, QueueInfo, QueueMetrics

NOW = datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)


def message_row(msg_id=1, read_ct=1, message=None):
    return {
        "msg_id": msg_id,
        "read_ct": read_ct,
        "enqueued_at": NOW,
        "vt": NOW,
        "message": message if message is not None else {"id": 1, "data": "test"},
    }


def metrics_row(queue_name="test-queue", **overrides):
    row = {
        "queue_name": queue_name,
        "queue_length": 10,
        "newest_msg_age_sec": 5,
        "oldest_msg_age_sec": 60,
        "total_messages": 100,
        "scrape_time": NOW,
    }
    row.update(overrides)
    return row


class TestSend(TestCase):
    def test_send_without_delay(self):
        conn = FakeConnection([{"send": 123}])
        result = operations.send(conn, "test-queue", {"id": 1, "data": "test"})

        self.assertEqual(result, 123)
        self.assertEqual(len(conn.executed), 1)
        query, params = conn.executed[0]
        self.assertEqual(query, "SELECT pgmq.send(%s, %s::jsonb)")
        self.assertEqual(params[0], "test-queue")
        self.assertEqual(params[1].obj, {"id": 1, "data": "test"})
        self.assertEqual(len(params), 2)

    def test_send_with_numeric_delay(self):
        conn = FakeConnection([{"send": 124}])
        self.assertEqual(operations.send(conn, "test-queue", {"id": 1}, 5), 124)
        query, params = conn.executed[0]
        self.assertIn("%s::integer", query)
        self.assertEqual(params[2], 5)

    def test_send_with_datetime_delay(self):
        conn = FakeConnection([{"send": 125}])
        self.assertEqual(operations.send(conn, "test-queue", {"id": 1}, NOW), 125)
        query, params = conn.executed[0]
        self.assertIn("%s::timestamptz", query)
        self.assertEqual(params[2], NOW)

    def test_zero_delay_is_immediate(self):
        conn = FakeConnection([{"send": 1}])
        operations.send(conn, "q", {"a": 1}, 0)
        self.assertEqual(conn.executed[0][0], "SELECT pgmq.send(%s, %s::jsonb)")

    def test_negative_delay_rejected_before_round_trip(self):
        conn = FakeConnection()
        with self.assertRaises(ValueError):
            operations.send(conn, "q", {"a": 1}, -1)
        with self.assertRaises(ValueError):
            operations.send(conn, "q", {"a": 1}, True)
        self.assertEqual(conn.executed, [])

    def test_non_json_payload_rejected(self):
        conn = FakeConnection()
        with self.assertRaises(ValidationError):
            operations.send(conn, "q", {"when": object()})
        self.assertEqual(conn.executed, [])

    def test_send_without_row_is_protocol_error(self):
        conn = FakeConnection([])
        with self.assertRaises(ProtocolError) as ctx:
            operations.send(conn, "q", {"a": 1})
        self.assertEqual(ctx.exception.primitive, "send")
        self.assertIn("pgmq.send", str(ctx.exception))

    def test_engine_rejection_is_engine_error(self):
        cause = psycopg.errors.UndefinedTable('relation "pgmq.q_missing" does not exist')
        conn = FakeConnection(cause)
        with self.assertRaises(EngineError) as ctx:
            operations.send(conn, "missing", {"a": 1})
        self.assertIs(ctx.exception.__cause__, cause)
        self.assertEqual(ctx.exception.primitive, "send")
        self.assertIn("does not exist", str(ctx.exception))


class TestSendBatch(TestCase):
    def test_send_batch(self):
        conn = FakeConnection([{"send_batch": 123}, {"send_batch": 124}])
        result = operations.send_batch(conn, "test-queue", [{"id": 1}, {"id": 2}])

        self.assertEqual(result, [123, 124])
        query, params = conn.executed[0]
        self.assertEqual(query, "SELECT pgmq.send_batch(%s, %s::jsonb[])")
        self.assertEqual([p.obj for p in params[1]], [{"id": 1}, {"id": 2}])

    def test_send_batch_with_delay(self):
        conn = FakeConnection([{"send_batch": 1}])
        operations.send_batch(conn, "q", [{"id": 1}], 30)
        query, params = conn.executed[0]
        self.assertIn("%s::integer", query)
        self.assertEqual(params[2], 30)

    def test_empty_batch_returns_empty_list(self):
        conn = FakeConnection([])
        self.assertEqual(operations.send_batch(conn, "q", []), [])
        self.assertEqual(len(conn.executed), 1)
        self.assertEqual(conn.executed[0][1][1], [])


class TestRead(TestCase):
    def test_read(self):
        conn = FakeConnection([message_row(1), message_row(2)])
        result = operations.read(conn, "test-queue", 30, 2, {"type": "urgent"})

        self.assertEqual([r.msg_id for r in result], [1, 2])
        self.assertIsInstance(result[0], MessageRecord)
        query, params = conn.executed[0]
        self.assertIn("FROM pgmq.read(%s, %s::integer, %s::integer, %s::jsonb)", query)
        self.assertEqual(params[:3], ("test-queue", 30, 2))
        self.assertEqual(params[3].obj, {"type": "urgent"})

    def test_read_defaults(self):
        conn = FakeConnection([])
        self.assertEqual(operations.read(conn, "test-queue", 30), [])
        _, params = conn.executed[0]
        self.assertEqual(params[2], 1)
        self.assertEqual(params[3].obj, {})

    def test_read_with_poll(self):
        conn = FakeConnection([message_row(7)])
        result = operations.read_with_poll(conn, "test-queue", 30, 1, 10, 250, {"kind": "a"})

        self.assertEqual(result[0].msg_id, 7)
        query, params = conn.executed[0]
        self.assertIn("pgmq.read_with_poll(", query)
        self.assertEqual(params[:5], ("test-queue", 30, 1, 10, 250))
        self.assertEqual(params[5].obj, {"kind": "a"})

    def test_read_with_poll_defaults(self):
        conn = FakeConnection([])
        self.assertEqual(operations.read_with_poll(conn, "q", 30), [])
        _, params = conn.executed[0]
        self.assertEqual(params[2:5], (1, 5, 100))

    def test_pop(self):
        conn = FakeConnection([message_row(3)])
        result = operations.pop(conn, "test-queue")
        self.assertEqual(result[0].msg_id, 3)
        self.assertIn("FROM pgmq.pop(%s)", conn.executed[0][0])

    def test_pop_empty_queue(self):
        self.assertEqual(operations.pop(FakeConnection([]), "q"), [])


class TestDeleteArchive(TestCase):
    def test_delete_message(self):
        conn = FakeConnection([{"delete": True}])
        self.assertTrue(operations.delete_message(conn, "test-queue", 123))
        query, params = conn.executed[0]
        self.assertEqual(query, "SELECT pgmq.delete(%s, %s::bigint)")
        self.assertEqual(params, ("test-queue", 123))

    def test_delete_missing_message_is_false(self):
        conn = FakeConnection([{"delete": False}])
        self.assertFalse(operations.delete_message(conn, "test-queue", 999))

    def test_delete_batch(self):
        conn = FakeConnection([{"delete": 1}, {"delete": 3}])
        self.assertEqual(operations.delete_batch(conn, "q", [1, 2, 3]), [1, 3])
        query, params = conn.executed[0]
        self.assertIn("%s::bigint[]", query)
        self.assertEqual(params[1], [1, 2, 3])

    def test_delete_batch_empty(self):
        conn = FakeConnection([])
        self.assertEqual(operations.delete_batch(conn, "q", []), [])
        self.assertEqual(len(conn.executed), 1)

    def test_purge_queue(self):
        conn = FakeConnection([{"purge_queue": 5}])
        self.assertEqual(operations.purge_queue(conn, "q"), 5)

    def test_purge_empty_queue(self):
        self.assertEqual(operations.purge_queue(FakeConnection([{"purge_queue": 0}]), "q"), 0)

    def test_archive(self):
        conn = FakeConnection([{"archive": True}])
        self.assertTrue(operations.archive(conn, "q", 123))
        self.assertEqual(conn.executed[0][0], "SELECT pgmq.archive(%s, %s::bigint)")

    def test_archive_batch(self):
        conn = FakeConnection([{"archive": 1}, {"archive": 2}])
        self.assertEqual(operations.archive_batch(conn, "q", (1, 2)), [1, 2])
        self.assertEqual(conn.executed[0][1][1], [1, 2])

    def test_archive_batch_empty(self):
        self.assertEqual(operations.archive_batch(FakeConnection([]), "q", []), [])

    def test_single_row_primitives_without_row(self):
        cases = [
            (operations.delete_message, ("q", 1), "delete"),
            (operations.archive, ("q", 1), "archive"),
            (operations.purge_queue, ("q",), "purge_queue"),
            (operations.drop_queue, ("q",), "drop_queue"),
        ]
        for fn, args, primitive in cases:
            with self.subTest(primitive=primitive):
                with self.assertRaises(ProtocolError) as ctx:
                    fn(FakeConnection([]), *args)
                self.assertEqual(ctx.exception.primitive, primitive)


class TestQueueManagement(TestCase):
    def test_create_queue(self):
        conn = FakeConnection([{"create": ""}])
        self.assertIsNone(operations.create_queue(conn, "q"))
        self.assertEqual(conn.executed[0], ("SELECT pgmq.create(%s)", ("q",)))

    def test_create_partitioned_queue(self):
        conn = FakeConnection()
        operations.create_partitioned_queue(conn, "q", "1 day", "7 days")
        self.assertEqual(conn.executed[0], ("SELECT pgmq.create_partitioned(%s, %s, %s)", ("q", "1 day", "7 days")))

    def test_create_partitioned_queue_defaults(self):
        conn = FakeConnection()
        operations.create_partitioned_queue(conn, "q")
        self.assertEqual(conn.executed[0][1], ("q", "10000", "100000"))

    def test_create_unlogged_queue(self):
        conn = FakeConnection()
        operations.create_unlogged_queue(conn, "q")
        self.assertEqual(conn.executed[0][0], "SELECT pgmq.create_unlogged(%s)")

    def test_recreate_surfaces_engine_error(self):
        conn = FakeConnection(psycopg.errors.DuplicateTable("already exists"))
        with self.assertRaises(EngineError):
            operations.create_queue(conn, "q")

    def test_detach_archive(self):
        conn = FakeConnection()
        operations.detach_archive(conn, "q")
        self.assertEqual(conn.executed[0][0], "SELECT pgmq.detach_archive(%s)")

    def test_drop_queue(self):
        conn = FakeConnection([{"drop_queue": True}])
        self.assertTrue(operations.drop_queue(conn, "q"))


class TestUtilities(TestCase):
    def test_set_vt(self):
        conn = FakeConnection([message_row(123)])
        record = operations.set_vt(conn, "q", 123, -10)
        self.assertEqual(record.msg_id, 123)
        query, params = conn.executed[0]
        self.assertIn("FROM pgmq.set_vt(%s, %s::bigint, %s::integer)", query)
        self.assertEqual(params, ("q", 123, -10))

    def test_set_vt_missing_message(self):
        with self.assertRaises(ProtocolError):
            operations.set_vt(FakeConnection([]), "q", 999, 30)

    def test_list_queues(self):
        conn = FakeConnection(
            [
                {"queue_name": "a", "created_at": NOW, "is_partitioned": False, "is_unlogged": False},
                {"queue_name": "b", "created_at": NOW, "is_partitioned": True, "is_unlogged": False},
            ]
        )
        result = operations.list_queues(conn)
        self.assertEqual([q.queue_name for q in result], ["a", "b"])
        self.assertIsInstance(result[1], QueueInfo)
        self.assertTrue(result[1].is_partitioned)
        self.assertEqual(conn.executed[0][1], ())

    def test_metrics(self):
        conn = FakeConnection([metrics_row()])
        result = operations.metrics(conn, "test-queue")
        self.assertIsInstance(result, QueueMetrics)
        self.assertEqual(result.total_messages, 100)

    def test_metrics_of_empty_queue_has_null_ages(self):
        conn = FakeConnection([metrics_row(queue_length=0, newest_msg_age_sec=None, oldest_msg_age_sec=None)])
        result = operations.metrics(conn, "q")
        self.assertIsNone(result.newest_msg_age_sec)
        self.assertIsNone(result.oldest_msg_age_sec)

    def test_metrics_missing_queue_is_protocol_error(self):
        with self.assertRaises(ProtocolError) as ctx:
            operations.metrics(FakeConnection([]), "missing")
        self.assertEqual(ctx.exception.primitive, "metrics")

    def test_metrics_all(self):
        conn = FakeConnection([metrics_row("a"), metrics_row("b")])
        self.assertEqual([m.queue_name for m in operations.metrics_all(conn)], ["a", "b"])
