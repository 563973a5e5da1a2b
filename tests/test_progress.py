import io
import unittest

from rich.console import Console

from lft.events import OperationCompleted, StatsUpdated, StatusMessage
from lft.progress import NullView, ProgressView
from lft.stats import Status, TransferStats


class TestProgressView(unittest.TestCase):

    def setUp(self):
        self.out = io.StringIO()
        self.view = ProgressView(direction="↓ RECV",
                                 console=Console(file=self.out, force_terminal=False, width=120))

    def test_renders_snapshots_and_messages(self):
        stats = TransferStats(total_files=2, completed_files=1, total_bytes=2048,
                              transferred_bytes=1024, current_speed=1.5,
                              estimated_time="3s", current_file="a/b.txt",
                              progress=50.0, status=Status.TRANSFERRING)
        self.view.start()
        self.view.handle(StatusMessage("Connected to sender, receiving..."))
        self.view.handle(StatsUpdated(stats))
        self.view.handle(OperationCompleted(role="receive", ok=False, error="disk full"))
        self.view.stop()

        self.assertIs(self.view.last_stats, stats)
        text = self.out.getvalue()
        self.assertIn("Connected to sender", text)
        self.assertIn("disk full", text)

    def test_null_view_only_tracks_stats(self):
        view = NullView()
        view.start()
        stats = TransferStats(status=Status.COMPLETED)
        view.handle(StatusMessage("ignored"))
        view.handle(StatsUpdated(stats))
        view.stop()
        self.assertIs(view.last_stats, stats)


if __name__ == "__main__":
    unittest.main()
