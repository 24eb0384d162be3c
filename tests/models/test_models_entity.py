import copy
import unittest

from guildsync.models import UNSPECIFIED, Entity, EntityKind
from guildsync.models.document import entity_kind_of


class TestEntity(unittest.TestCase):
    def test_missing_attribute_is_unspecified(self) -> None:
        e = Entity(kind=EntityKind.CHANNEL, id="c1", attributes={"topic": None})
        self.assertIs(e.get_attribute("name"), UNSPECIFIED)
        self.assertIsNone(e.get_attribute("topic"))
        self.assertIsNot(e.get_attribute("topic"), UNSPECIFIED)

    def test_unspecified_is_a_falsy_singleton(self) -> None:
        self.assertFalse(UNSPECIFIED)
        self.assertIs(copy.copy(UNSPECIFIED), UNSPECIFIED)
        self.assertIs(copy.deepcopy(UNSPECIFIED), UNSPECIFIED)
        self.assertEqual(repr(UNSPECIFIED), "UNSPECIFIED")

    def test_subject_of_overwrite(self) -> None:
        ow = Entity(
            kind=EntityKind.PERMISSION_OVERWRITE,
            id="ow1",
            attributes={"subject": "r1", "allow": "1024"},
        )
        self.assertTrue(ow.is_overwrite)
        self.assertEqual(ow.subject, "r1")

        no_subject = Entity(kind=EntityKind.PERMISSION_OVERWRITE, id="ow2")
        self.assertIsNone(no_subject.subject)

    def test_copy_is_deep(self) -> None:
        e = Entity(
            kind=EntityKind.MEMBER,
            id="m1",
            attributes={"roles": ["r1"]},
            children=[],
        )
        c = e.copy()
        c.attributes["roles"].append("r2")
        c.children.append("x")  # type: ignore[union-attr]
        self.assertEqual(e.attributes["roles"], ["r1"])
        self.assertEqual(e.children, [])

    def test_copy_keeps_unspecified_children(self) -> None:
        e = Entity(kind=EntityKind.CHANNEL, id="c1", children=None)
        self.assertIsNone(e.copy().children)

    def test_entity_kind_of(self) -> None:
        self.assertIs(entity_kind_of("channel"), EntityKind.CHANNEL)
        self.assertIs(entity_kind_of("permission-overwrite"), EntityKind.PERMISSION_OVERWRITE)
        self.assertIs(entity_kind_of(EntityKind.ROLE), EntityKind.ROLE)
        self.assertIsNone(entity_kind_of("thread"))
        self.assertIsNone(entity_kind_of(None))
        self.assertIsNone(entity_kind_of(["channel"]))


if __name__ == "__main__":
    unittest.main()
