from __future__ import annotations

import json
import tempfile
import unittest
from pathlib import Path

from ghosttrace.errors import ParseError
from ghosttrace.normalize import (
    detect_export_kind,
    load_export_file,
    normalize_export,
    normalize_followers,
    normalize_following,
    parse_export_text,
)


class TestNormalizeFollowers(unittest.TestCase):
    def test_extracts_value_timestamp_and_href(self) -> None:
        raw = [
            {
                "title": "",
                "media_list_data": [],
                "string_list_data": [
                    {
                        "href": "https://www.instagram.com/Alice",
                        "value": "Alice",
                        "timestamp": 1690000000,
                    }
                ],
            },
            {"string_list_data": [{"value": "bob"}]},
        ]

        users = normalize_followers(raw)

        self.assertEqual([u.username for u in users], ["Alice", "bob"])
        self.assertEqual(users[0].normalized_key, "alice")
        self.assertEqual(users[0].timestamp, 1690000000)
        self.assertEqual(users[0].profile_url, "https://www.instagram.com/Alice")
        self.assertIsNone(users[1].timestamp)
        self.assertIsNone(users[1].profile_url)

    def test_accepts_camel_case_field_names(self) -> None:
        raw = [
            {"stringListData": [{"value": "a"}]},
            {"stringListData": [{"value": "b"}]},
        ]
        self.assertEqual([u.username for u in normalize_followers(raw)], ["a", "b"])

    def test_skips_entries_without_value(self) -> None:
        raw = [
            {"string_list_data": [{"href": "https://x"}, {"value": "kept"}, {"value": ""}]},
            {"string_list_data": []},
            "not-an-object",
        ]
        self.assertEqual([u.username for u in normalize_followers(raw)], ["kept"])

    def test_empty_array_is_valid(self) -> None:
        self.assertEqual(normalize_followers([]), [])

    def test_non_array_is_parse_error(self) -> None:
        with self.assertRaises(ParseError) as ctx:
            normalize_followers({"foo": "bar"})
        self.assertEqual(ctx.exception.reason, "not_an_array")

    def test_empty_input_is_parse_error(self) -> None:
        for raw in (None, "", 0, False):
            with self.assertRaises(ParseError) as ctx:
                normalize_followers(raw)
            self.assertEqual(ctx.exception.reason, "empty_file")

    def test_unrecognized_first_element(self) -> None:
        with self.assertRaises(ParseError) as ctx:
            normalize_followers([{"foo": 1}, {"string_list_data": [{"value": "a"}]}])
        self.assertEqual(ctx.exception.reason, "unrecognized_structure")

    def test_flat_value_elements(self) -> None:
        users = normalize_followers([{"value": "Zed", "timestamp": 5}])
        self.assertEqual(len(users), 1)
        self.assertEqual(users[0].username, "Zed")
        self.assertEqual(users[0].timestamp, 5)

    def test_zero_timestamp_is_absent(self) -> None:
        users = normalize_followers([{"string_list_data": [{"value": "a", "timestamp": 0}]}])
        self.assertIsNone(users[0].timestamp)

    def test_duplicates_are_kept(self) -> None:
        raw = [
            {"string_list_data": [{"value": "x"}]},
            {"string_list_data": [{"value": "X"}]},
        ]
        self.assertEqual(len(normalize_followers(raw)), 2)

    def test_idempotent(self) -> None:
        raw = [{"string_list_data": [{"value": "a", "timestamp": 1}]}]
        self.assertEqual(normalize_followers(raw), normalize_followers(raw))


class TestNormalizeFollowing(unittest.TestCase):
    def test_bare_array_with_titles(self) -> None:
        raw = [
            {
                "title": "Bob",
                "string_list_data": [
                    {"href": "https://www.instagram.com/_u/bob", "timestamp": 1690000000}
                ],
            }
        ]
        users = normalize_following(raw)
        self.assertEqual(len(users), 1)
        self.assertEqual(users[0].username, "Bob")
        self.assertEqual(users[0].normalized_key, "bob")
        self.assertEqual(users[0].timestamp, 1690000000)
        self.assertEqual(users[0].profile_url, "https://www.instagram.com/_u/bob")

    def test_wrapped_object(self) -> None:
        raw = {"relationships_following": [{"title": "a"}, {"title": "c"}]}
        self.assertEqual([u.username for u in normalize_following(raw)], ["a", "c"])

    def test_wrapped_camel_case(self) -> None:
        raw = {"relationshipsFollowing": [{"title": "a"}]}
        self.assertEqual([u.username for u in normalize_following(raw)], ["a"])

    def test_title_wins_over_string_list_value(self) -> None:
        raw = [
            {
                "title": "from_title",
                "string_list_data": [
                    {"value": "from_value", "timestamp": 7, "href": "https://h"},
                    {"value": "second"},
                ],
            }
        ]
        users = normalize_following(raw)
        self.assertEqual(len(users), 1)
        self.assertEqual(users[0].username, "from_title")
        self.assertEqual(users[0].timestamp, 7)
        self.assertEqual(users[0].profile_url, "https://h")

    def test_legacy_string_list_elements(self) -> None:
        raw = [{"string_list_data": [{"value": "old1"}, {"value": "old2"}]}]
        self.assertEqual([u.username for u in normalize_following(raw)], ["old1", "old2"])

    def test_mixed_elements(self) -> None:
        raw = [
            {"title": "new"},
            {"string_list_data": [{"value": "old"}]},
        ]
        self.assertEqual([u.username for u in normalize_following(raw)], ["new", "old"])

    def test_other_top_level_is_parse_error(self) -> None:
        for raw in ({"foo": []}, "text", 42, {"relationships_following": "nope"}):
            with self.assertRaises(ParseError):
                normalize_following(raw)

    def test_unrecognized_first_element(self) -> None:
        with self.assertRaises(ParseError) as ctx:
            normalize_following([{"name": "x"}])
        self.assertEqual(ctx.exception.reason, "unrecognized_structure")

    def test_empty_array_is_valid(self) -> None:
        self.assertEqual(normalize_following([]), [])
        self.assertEqual(normalize_following({"relationships_following": []}), [])

    def test_normalize_export_dispatch(self) -> None:
        self.assertEqual(len(normalize_export("following", [{"title": "a"}])), 1)
        with self.assertRaises(ValueError):
            normalize_export("blocked", [])  # type: ignore[arg-type]


class TestDetectAndLoad(unittest.TestCase):
    def test_detect_export_kind(self) -> None:
        self.assertEqual(detect_export_kind([{"string_list_data": [{"value": "a"}]}]), "followers")
        self.assertEqual(detect_export_kind({"relationships_following": []}), "following")
        self.assertEqual(
            detect_export_kind([{"title": "b", "string_list_data": [{"timestamp": 1}]}]),
            "following",
        )
        self.assertIsNone(detect_export_kind({"foo": "bar"}))
        self.assertEqual(detect_export_kind([]), "followers")
        self.assertIsNone(detect_export_kind([{"foo": 1}]))

    def test_parse_export_text_errors(self) -> None:
        with self.assertRaises(ParseError) as ctx:
            parse_export_text("   ")
        self.assertEqual(ctx.exception.reason, "empty_file")

        with self.assertRaises(ParseError) as ctx:
            parse_export_text("{not json")
        self.assertEqual(ctx.exception.reason, "invalid_json")

    def test_load_export_file(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "followers_1.json"
            path.write_text(json.dumps([{"string_list_data": [{"value": "a"}]}]), encoding="utf-8")
            data = load_export_file(path)
            self.assertEqual([u.username for u in normalize_followers(data)], ["a"])

            with self.assertRaises(ParseError) as ctx:
                load_export_file(Path(td) / "missing.json")
            self.assertEqual(ctx.exception.reason, "unreadable_file")


if __name__ == "__main__":
    unittest.main()
