import os
import tempfile
import unittest
from dataclasses import replace
from pathlib import Path
from unittest.mock import patch

from _support import collect_until, loopback_settings, make_tree

from lft.controller import TransferController
from lft.errors import SessionBusyError
from lft.events import OperationCompleted, StatsUpdated, StatusMessage
from lft.session import ReceiveSession
from lft.stats import Status


def _completed(event):
    return isinstance(event, OperationCompleted)


def _status_texts(events):
    return [e.text for e in events if isinstance(e, StatusMessage)]


class ControllerTestCase(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)
        self.src_dir = self.tmp / "src"
        self.dst_dir = self.tmp / "dst"
        self.src_dir.mkdir()
        self.dst_dir.mkdir()
        self.settings = loopback_settings(dest_dir=self.dst_dir)

    def tearDown(self):
        self._tmp.cleanup()

    def start_receiver(self) -> TransferController:
        receiver = TransferController(self.settings)
        receiver.start_receive()
        collect_until(receiver.events,
                      lambda e: isinstance(e, StatusMessage) and "to connect" in e.text)
        return receiver

    def send(self, path: Path):
        """Run a full send against a live receiver; return both sides' event lists."""
        receiver = self.start_receiver()
        sender = TransferController(replace(self.settings))
        sender.start_send(path)
        sent = collect_until(sender.events, _completed, timeout=30)
        received = collect_until(receiver.events, _completed, timeout=30)
        self.assertTrue(receiver.wait(5))
        self.assertTrue(sender.wait(5))
        return sender, receiver, sent, received


class TestEndToEnd(ControllerTestCase):

    def test_single_file(self):
        data = os.urandom(10 * 1024 * 1024)
        (self.src_dir / "movie.bin").write_bytes(data)

        sender, receiver, sent, received = self.send(self.src_dir / "movie.bin")

        self.assertTrue(sent[-1].ok, sender.last_error)
        self.assertTrue(received[-1].ok, receiver.last_error)
        out = self.dst_dir / "movie.bin"
        self.assertEqual(out.stat().st_size, 10 * 1024 * 1024)
        self.assertEqual(out.read_bytes(), data)

        stats = receiver.get_stats()
        self.assertEqual((stats.total_files, stats.completed_files), (1, 1))
        self.assertEqual(stats.progress, 100.0)
        self.assertEqual(stats.status, Status.COMPLETED)
        self.assertFalse(receiver.running)
        self.assertFalse(sender.running)

    def test_directory_with_three_files(self):
        make_tree(self.src_dir / "album", {
            "one.jpg": os.urandom(2000),
            "two.jpg": os.urandom(3000),
            "raw/three.cr2": os.urandom(70_000),
        })

        _sender, receiver, sent, received = self.send(self.src_dir / "album")

        self.assertTrue(sent[-1].ok)
        self.assertTrue(received[-1].ok)
        self.assertEqual(receiver.get_stats().total_files, 3)
        for rel in ("one.jpg", "two.jpg", "raw/three.cr2"):
            self.assertEqual((self.dst_dir / "album" / rel).read_bytes(),
                             (self.src_dir / "album" / rel).read_bytes())

    def test_stats_events_carry_snapshots(self):
        (self.src_dir / "f.txt").write_bytes(b"payload")
        _sender, _receiver, sent, _received = self.send(self.src_dir / "f.txt")
        updates = [e.stats for e in sent if isinstance(e, StatsUpdated)]
        self.assertEqual(updates[-1].status, Status.COMPLETED)
        statuses = [u.status for u in updates]
        self.assertIn(Status.SCANNING, statuses)
        self.assertIn(Status.TRANSFERRING, statuses)
        self.assertIn("Transferring files...", _status_texts(sent))


class TestFailures(ControllerTestCase):

    def test_no_receiver_reports_discovery_failure(self):
        (self.src_dir / "f.txt").write_bytes(b"x")
        self.settings.timeout = 0.3
        self.settings.broadcast_interval = 0.01
        sender = TransferController(self.settings)
        sender.start_send(self.src_dir / "f.txt")

        events = collect_until(sender.events, _completed)

        self.assertFalse(events[-1].ok)
        self.assertTrue(any(t.startswith("Receiver discovery failed")
                            for t in _status_texts(events)))
        self.assertFalse(sender.running)
        self.assertEqual(sender.get_stats().status, Status.FAILED)

    def test_missing_source(self):
        sender = TransferController(self.settings)
        sender.start_send(self.src_dir / "ghost")
        events = collect_until(sender.events, _completed)
        self.assertFalse(events[-1].ok)
        self.assertTrue(any("does not exist" in t for t in _status_texts(events)))
        self.assertFalse(sender.running)

    def test_second_operation_is_rejected(self):
        self.settings.accept_timeout = 0.5
        controller = TransferController(self.settings)
        controller.start_receive()
        with self.assertRaises(SessionBusyError):
            controller.start_send(self.src_dir)
        with self.assertRaises(SessionBusyError):
            controller.restart_receive()
        events = collect_until(controller.events, _completed)
        self.assertFalse(events[-1].ok)
        self.assertFalse(controller.running)

        # the slot is free again
        controller.restart_receive()
        collect_until(controller.events, _completed)
        self.assertFalse(controller.running)

    def test_disk_write_failure_marks_session_failed(self):
        (self.src_dir / "big.bin").write_bytes(os.urandom(512 * 1024))
        with patch.object(ReceiveSession, "_write_chunk",
                          side_effect=OSError(28, "No space left on device")):
            _sender, receiver, _sent, received = self.send(self.src_dir / "big.bin")

        self.assertFalse(received[-1].ok)
        self.assertFalse((self.dst_dir / "big.bin").exists())
        stats = receiver.get_stats()
        self.assertEqual(stats.status, Status.FAILED)
        self.assertNotEqual(stats.status, Status.COMPLETED)
        self.assertFalse(receiver.running)


class TestPathInfo(ControllerTestCase):

    def test_delegates_to_filesystem(self):
        make_tree(self.src_dir / "d", {"a": b"123"})
        info = TransferController(self.settings).get_path_info(str(self.src_dir / "d"))
        self.assertEqual(info.total_files, 1)
        self.assertTrue(info.is_dir)


if __name__ == "__main__":
    unittest.main()
