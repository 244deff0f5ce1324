from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path
from typing import Any

from ghosttrace.analysis import FollowerAnalyzer, check_view_name, search
from ghosttrace.errors import ParseError, StorageUnavailable, ValidationError
from ghosttrace.records import UserRecord
from ghosttrace.run_log import RunLogger
from ghosttrace.storage import InMemorySnapshotStore, UnavailableSnapshotStore
from ghosttrace.whitelist import make_whitelist


def _followers(*names: str) -> list[dict[str, Any]]:
    return [{"string_list_data": [{"value": n, "timestamp": 1690000000}]} for n in names]


def _following(*names: str) -> dict[str, Any]:
    return {"relationships_following": [{"title": n} for n in names]}


def _names(records) -> list[str]:
    return [r.username for r in records]


class _RecordingStore(InMemorySnapshotStore):
    def __init__(self) -> None:
        super().__init__()
        self.calls: list[str] = []

    def list_all(self):
        self.calls.append("read")
        return super().list_all()

    def append(self, followers, following) -> int:
        self.calls.append("append")
        return super().append(followers, following)


class _BrokenAppendStore(InMemorySnapshotStore):
    def append(self, followers, following) -> int:
        raise StorageUnavailable("database is locked")


class TestFollowerAnalyzer(unittest.TestCase):
    def test_first_run_has_no_history(self) -> None:
        analyzer = FollowerAnalyzer(InMemorySnapshotStore())

        result = analyzer.analyze(_followers("a", "b"), _following("b", "c"))

        self.assertFalse(result.has_history)
        self.assertEqual(result.unfollowers, [])
        self.assertEqual(result.new_followers, [])
        self.assertEqual(_names(result.not_following_back), ["c"])
        self.assertEqual(result.snapshot_id, 1)
        self.assertTrue(result.captured_at)

    def test_second_run_compares_against_previous(self) -> None:
        analyzer = FollowerAnalyzer(InMemorySnapshotStore())
        analyzer.analyze(_followers("a", "b", "c"), _following("a"))

        result = analyzer.analyze(_followers("B", "c", "d"), _following("a"))

        self.assertTrue(result.has_history)
        self.assertEqual(result.previous_snapshot_id, 1)
        self.assertEqual(_names(result.unfollowers), ["a"])
        self.assertEqual(_names(result.new_followers), ["d"])
        self.assertEqual(_names(result.not_following_back), ["a"])

    def test_previous_is_read_before_append(self) -> None:
        store = _RecordingStore()
        FollowerAnalyzer(store).analyze(_followers("a"), _following("a"))
        self.assertLess(store.calls.index("read"), store.calls.index("append"))

    def test_storage_failure_still_returns_results(self) -> None:
        result = FollowerAnalyzer(_BrokenAppendStore()).analyze(
            _followers("a"), _following("a", "z")
        )
        self.assertIsNone(result.snapshot_id)
        self.assertIn("locked", result.storage_error or "")
        self.assertEqual(_names(result.not_following_back), ["z"])

    def test_unavailable_store(self) -> None:
        result = FollowerAnalyzer(UnavailableSnapshotStore()).analyze(
            _followers("a"), _following("b")
        )
        self.assertFalse(result.has_history)
        self.assertIsNotNone(result.storage_error)

    def test_completion_log_carries_snapshot_id(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            log_path = Path(td) / "run.log"
            with RunLogger.open(log_path) as log:
                FollowerAnalyzer(InMemorySnapshotStore(), log=log).analyze(
                    _followers("a"), _following("b")
                )

            records = [
                json.loads(ln) for ln in log_path.read_text(encoding="utf-8").splitlines() if ln.strip()
            ]

        completed = [r for r in records if r["event"] == "analysis_completed"]
        self.assertEqual(len(completed), 1)
        self.assertEqual(completed[0]["snapshot_id"], 1)
        self.assertEqual(completed[0]["data"]["not_following_back"], 1)

    def test_missing_input_is_validation_error(self) -> None:
        analyzer = FollowerAnalyzer(InMemorySnapshotStore())
        with self.assertRaises(ValidationError):
            analyzer.analyze(None, _following("a"))
        with self.assertRaises(ValidationError):
            analyzer.analyze(_followers("a"), None)

    def test_parse_error_leaves_store_untouched(self) -> None:
        store = InMemorySnapshotStore()
        with self.assertRaises(ParseError):
            FollowerAnalyzer(store).analyze({"foo": "bar"}, _following("a"))
        self.assertEqual(store.list_all(), [])

    def test_views_apply_whitelist(self) -> None:
        result = FollowerAnalyzer(InMemorySnapshotStore()).analyze(
            _followers("a"), _following("b", "C", "d")
        )
        wl = make_whitelist(["c"])

        self.assertEqual(_names(result.view("not_following_back", wl)), ["b", "d"])
        self.assertEqual(_names(result.view("whitelist", wl)), ["C"])
        counts = result.counts(wl)
        self.assertEqual(counts["not_following_back"], 2)
        self.assertEqual(counts["whitelist"], 1)
        self.assertEqual(counts["followers"], 1)
        self.assertEqual(counts["following"], 3)

        with self.assertRaises(ValidationError):
            result.view("blocked", wl)

    def test_load_snapshot_has_empty_change_lists(self) -> None:
        analyzer = FollowerAnalyzer(InMemorySnapshotStore())
        analyzer.analyze(_followers("a", "b"), _following("a"))
        analyzer.analyze(_followers("b"), _following("a", "x"))

        loaded = analyzer.load_snapshot_by_id(2)

        self.assertEqual(loaded.snapshot_id, 2)
        self.assertEqual(loaded.unfollowers, [])
        self.assertEqual(loaded.new_followers, [])
        self.assertEqual(_names(loaded.not_following_back), ["a", "x"])
        self.assertEqual(analyzer.load_latest().snapshot_id, 2)

        with self.assertRaises(ValidationError):
            analyzer.load_snapshot_by_id(99)

    def test_history_newest_first(self) -> None:
        analyzer = FollowerAnalyzer(InMemorySnapshotStore())
        self.assertEqual(analyzer.history(), [])

        analyzer.analyze(_followers("a"), _following("a"))
        analyzer.analyze(_followers("a", "b"), _following("a"))

        summaries = analyzer.history(5)
        self.assertEqual([s.snapshot_id for s in summaries], [2, 1])
        self.assertEqual(summaries[0].followers_count, 2)
        self.assertEqual(summaries[0].following_count, 1)


class TestAnalyzeFiles(unittest.TestCase):
    def _write(self, root: Path, name: str, data: Any) -> Path:
        path = root / name
        path.write_text(json.dumps(data), encoding="utf-8")
        return path

    def test_detects_kinds_in_any_order(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            root = Path(td)
            following = self._write(root, "following.json", _following("a", "b"))
            followers = self._write(root, "followers_1.json", _followers("a"))

            result = FollowerAnalyzer(InMemorySnapshotStore()).analyze_files([following, followers])

        self.assertEqual(_names(result.not_following_back), ["b"])

    def test_empty_followers_file_is_valid(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            root = Path(td)
            followers = self._write(root, "followers_1.json", [])
            following = self._write(root, "following.json", _following("a"))

            result = FollowerAnalyzer(InMemorySnapshotStore()).analyze_files([followers, following])

        self.assertEqual(result.followers, [])
        self.assertEqual(_names(result.not_following_back), ["a"])

    def test_empty_following_file_uses_filename(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            root = Path(td)
            followers = self._write(root, "followers_1.json", _followers("a"))
            following = self._write(root, "following.json", [])

            result = FollowerAnalyzer(InMemorySnapshotStore()).analyze_files([followers, following])

        self.assertEqual(_names(result.followers), ["a"])
        self.assertEqual(result.following, [])

    def test_split_exports_are_concatenated(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            root = Path(td)
            part1 = self._write(root, "followers_1.json", _followers("a"))
            part2 = self._write(root, "followers_2.json", _followers("b"))
            following = self._write(root, "following.json", _following("a", "b", "c"))

            store = InMemorySnapshotStore()
            result = FollowerAnalyzer(store).analyze_files([part1, part2, following])

        self.assertEqual(_names(result.followers), ["a", "b"])
        self.assertEqual(_names(result.not_following_back), ["c"])
        self.assertEqual(_names(store.get_latest().followers), ["a", "b"])

    def test_missing_kind_is_validation_error(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            followers = self._write(Path(td), "followers_1.json", _followers("a"))
            with self.assertRaises(ValidationError):
                FollowerAnalyzer(InMemorySnapshotStore()).analyze_files([followers])

    def test_unrecognized_file_is_parse_error(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            odd = self._write(Path(td), "odd.json", {"foo": "bar"})
            with self.assertRaises(ParseError):
                FollowerAnalyzer(InMemorySnapshotStore()).analyze_files([odd])


class TestHelpers(unittest.TestCase):
    def test_check_view_name(self) -> None:
        self.assertEqual(check_view_name(" unfollowers "), "unfollowers")
        with self.assertRaises(ValidationError):
            check_view_name("")

    def test_search_is_case_insensitive_substring(self) -> None:
        records = [UserRecord(username=n) for n in ("Alice", "malik", "bob")]
        self.assertEqual(_names(search(records, "ALI")), ["Alice", "malik"])
        self.assertEqual(_names(search(records, "  ")), ["Alice", "malik", "bob"])


if __name__ == "__main__":
    unittest.main()
