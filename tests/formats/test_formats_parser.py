import json
import tempfile
import unittest
from pathlib import Path

from guildsync.errors import FormatError, FormatErrorCode
from guildsync.formats import parse, parse_file, validate
from guildsync.models import EntityKind, Plan, Snapshot


def _doc(**fields) -> str:
    return json.dumps(fields)


DUMP = {
    "format": "dump",
    "version": 1,
    "entities": [
        {"kind": "guild", "id": "g", "attributes": {"name": "G"}, "children": ["c1", "r1"]},
        {"kind": "channel", "id": "c1", "attributes": {"name": "general", "topic": None}},
        {"kind": "role", "id": "r1", "attributes": {"name": "mod"}},
    ],
}


class TestParse(unittest.TestCase):
    def test_parse_dump_json(self) -> None:
        doc = parse(json.dumps(DUMP))
        self.assertIsInstance(doc, Snapshot)
        self.assertEqual(doc.format, "dump")
        self.assertEqual(doc.version, 1)
        self.assertEqual(doc.ids(), ["g", "c1", "r1"])
        self.assertEqual(doc.parent_of("c1"), "g")
        self.assertIsNone(doc.get("c1").attributes["topic"])
        # Snapshots always carry a children list.
        self.assertEqual(doc.get("c1").children, [])

    def test_parse_accepts_bytes_and_bom(self) -> None:
        doc = parse(b"\xef\xbb\xbf" + json.dumps(DUMP).encode("utf-8"))
        self.assertIsInstance(doc, Snapshot)

    def test_parse_yaml(self) -> None:
        text = (
            "format: upload\n"
            "entities:\n"
            "  - kind: channel\n"
            "    id: c1\n"
            "    attributes: {name: general}\n"
        )
        doc = parse(text)
        self.assertIsInstance(doc, Plan)
        self.assertEqual(doc.get("c1").kind, EntityKind.CHANNEL)
        self.assertIsNone(doc.get("c1").children)

    def test_yaml_binary_attribute_is_rejected(self) -> None:
        text = (
            "format: dump\n"
            "entities:\n"
            "- kind: role\n"
            "  id: r1\n"
            "  attributes: {icon: !!binary aGVsbG8=}\n"
        )
        with self.assertRaises(FormatError) as ctx:
            parse(text)
        self.assertEqual(ctx.exception.code, FormatErrorCode.INVALID_ENTITY)

    def test_numeric_ids_become_strings(self) -> None:
        doc = parse(_doc(format="dump", entities=[
            {"kind": "guild", "id": 81384788765712384, "children": [81384788765712385]},
            {"kind": "channel", "id": 81384788765712385},
        ]))
        self.assertEqual(doc.parent_of("81384788765712385"), "81384788765712384")

    def test_missing_format_inferred_from_absent(self) -> None:
        doc = parse(_doc(entities=[{"kind": "role", "id": "r1", "absent": True}]))
        self.assertIsInstance(doc, Plan)
        doc = parse(_doc(entities=[{"kind": "role", "id": "r1"}]))
        self.assertIsInstance(doc, Snapshot)

    def test_missing_format_uses_expected(self) -> None:
        doc = parse(_doc(entities=[]), expected_format="upload")
        self.assertIsInstance(doc, Plan)

    def test_declared_format_wins_over_expected(self) -> None:
        doc = parse(json.dumps(DUMP), expected_format="upload")
        self.assertIsInstance(doc, Snapshot)

    def test_plan_may_reference_external_parent(self) -> None:
        doc = parse(_doc(format="upload", entities=[
            {"kind": "channel", "id": "c9", "parent": "cat-on-target"},
        ]))
        self.assertEqual(doc.parent_of("c9"), "cat-on-target")

    def test_invalid_expected_format_is_value_error(self) -> None:
        with self.assertRaises(ValueError):
            parse(json.dumps(DUMP), expected_format="backup")

    def test_non_text_input_is_type_error(self) -> None:
        with self.assertRaises(TypeError):
            parse(123)  # type: ignore[arg-type]


class TestParseErrors(unittest.TestCase):
    def assertCode(self, data, code: FormatErrorCode, **kwargs) -> FormatError:
        with self.assertRaises(FormatError) as ctx:
            parse(data, **kwargs)
        self.assertEqual(ctx.exception.code, code)
        return ctx.exception

    def test_not_an_object(self) -> None:
        self.assertCode("[1, 2]", FormatErrorCode.NOT_AN_OBJECT)
        self.assertCode("", FormatErrorCode.NOT_AN_OBJECT)
        self.assertCode(b"\xff\xfe\x00", FormatErrorCode.NOT_AN_OBJECT)
        self.assertCode("key: [unclosed", FormatErrorCode.NOT_AN_OBJECT)

    def test_unknown_format(self) -> None:
        err = self.assertCode(_doc(format="backup"), FormatErrorCode.UNKNOWN_FORMAT)
        self.assertEqual(err.details, {"format": "backup"})
        self.assertTrue(str(err).startswith("UnknownFormat: "))

    def test_invalid_version(self) -> None:
        self.assertCode(_doc(format="dump", version=-1), FormatErrorCode.INVALID_VERSION)
        self.assertCode(_doc(format="dump", version="v2"), FormatErrorCode.INVALID_VERSION)
        self.assertCode(_doc(format="dump", version=True), FormatErrorCode.INVALID_VERSION)
        self.assertCode(_doc(format="dump", version=1.5), FormatErrorCode.INVALID_VERSION)

    def test_version_accepts_integral_values(self) -> None:
        self.assertEqual(parse(_doc(format="dump", version="2")).version, 2)
        self.assertEqual(parse(_doc(format="dump", version=0)).version, 0)
        self.assertEqual(parse(_doc(format="dump", version=1.0)).version, 1)

    def test_strict_rejects_dump_where_upload_required(self) -> None:
        self.assertCode(
            json.dumps(DUMP),
            FormatErrorCode.FORMAT_MISMATCH,
            expected_format="upload",
            strict=True,
        )

    def test_strict_allows_upload_where_dump_expected(self) -> None:
        doc = parse(_doc(format="upload", entities=[]), expected_format="dump", strict=True)
        self.assertIsInstance(doc, Plan)

    def test_invalid_entity(self) -> None:
        self.assertCode(_doc(format="dump", entities={}), FormatErrorCode.INVALID_ENTITY)
        self.assertCode(_doc(format="dump", entities=["x"]), FormatErrorCode.INVALID_ENTITY)
        self.assertCode(
            _doc(format="dump", entities=[{"kind": "thread", "id": "t"}]),
            FormatErrorCode.INVALID_ENTITY,
        )
        self.assertCode(
            _doc(format="dump", entities=[{"kind": "role", "id": ""}]),
            FormatErrorCode.INVALID_ENTITY,
        )
        self.assertCode(
            _doc(format="dump", entities=[{"kind": "role", "id": "r", "attributes": []}]),
            FormatErrorCode.INVALID_ENTITY,
        )
        self.assertCode(
            _doc(format="dump", entities=[{"kind": "role", "id": "r", "absent": True}]),
            FormatErrorCode.INVALID_ENTITY,
        )

    def test_duplicate_id(self) -> None:
        err = self.assertCode(
            _doc(format="dump", entities=[
                {"kind": "role", "id": "r1"},
                {"kind": "channel", "id": "r1"},
            ]),
            FormatErrorCode.DUPLICATE_ID,
        )
        self.assertEqual(err.details["id"], "r1")

    def test_dangling_parent(self) -> None:
        self.assertCode(
            _doc(format="dump", entities=[{"kind": "guild", "id": "g", "children": ["zz"]}]),
            FormatErrorCode.DANGLING_PARENT,
        )
        self.assertCode(
            _doc(format="dump", entities=[{"kind": "channel", "id": "c", "parent": "zz"}]),
            FormatErrorCode.DANGLING_PARENT,
        )

    def test_multiple_parents(self) -> None:
        self.assertCode(
            _doc(format="dump", entities=[
                {"kind": "channel", "id": "a", "children": ["c"]},
                {"kind": "channel", "id": "b", "children": ["c"]},
                {"kind": "channel", "id": "c"},
            ]),
            FormatErrorCode.MULTIPLE_PARENTS,
        )

    def test_cyclic_structure(self) -> None:
        err = self.assertCode(
            _doc(format="dump", entities=[
                {"kind": "channel", "id": "a", "children": ["b"]},
                {"kind": "channel", "id": "b", "children": ["a"]},
            ]),
            FormatErrorCode.CYCLIC_STRUCTURE,
        )
        self.assertIn("cycle", err.details)


class TestValidate(unittest.TestCase):
    def test_ok_report(self) -> None:
        report = validate(json.dumps(DUMP))
        self.assertTrue(report.ok)
        self.assertEqual(report.format, "dump")
        self.assertEqual(report.version, 1)
        self.assertEqual(report.entity_count, 3)
        self.assertEqual(report.warnings, [])
        self.assertIsNone(report.error)

    def test_missing_format_warns(self) -> None:
        report = validate(_doc(entities=[]))
        self.assertTrue(report.ok)
        self.assertEqual(report.format, "missing")
        self.assertIn("format=missing", report.warnings)

    def test_newer_version_warns(self) -> None:
        report = validate(_doc(format="dump", version=7, entities=[]))
        self.assertTrue(report.ok)
        self.assertTrue(any("newer" in w for w in report.warnings))

    def test_unknown_top_level_field_warns(self) -> None:
        report = validate(_doc(format="dump", entities=[], exported_by="bot"))
        self.assertTrue(report.ok)
        self.assertTrue(any("exported_by" in w for w in report.warnings))

    def test_mismatch_warns_when_not_strict(self) -> None:
        report = validate(json.dumps(DUMP), "upload")
        self.assertTrue(report.ok)
        self.assertTrue(any("does not match" in w for w in report.warnings))

    def test_failed_report(self) -> None:
        report = validate(_doc(format="dump", entities=[{"kind": "nope", "id": "x"}]))
        self.assertFalse(report.ok)
        self.assertEqual(report.format, "dump")
        self.assertEqual(report.error.code, FormatErrorCode.INVALID_ENTITY)
        data = report.to_dict()
        self.assertEqual(data["error"]["code"], "InvalidEntity")
        self.assertEqual(data["entities"], 0)

    def test_failed_report_on_garbage(self) -> None:
        report = validate(b"\x00\x01")
        self.assertFalse(report.ok)
        self.assertEqual(report.format, "missing")


class TestParseFile(unittest.TestCase):
    def test_parse_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "guild.json"
            path.write_text(json.dumps(DUMP), encoding="utf-8")
            doc = parse_file(path)
            self.assertIsInstance(doc, Snapshot)
            self.assertEqual(len(doc), 3)

    def test_parse_file_missing(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            with self.assertRaises(OSError):
                parse_file(Path(tmp) / "nope.json")


if __name__ == "__main__":
    unittest.main()
