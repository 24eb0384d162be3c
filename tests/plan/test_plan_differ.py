import unittest

from guildsync.errors import DiffError
from guildsync.models import Entity, EntityKind, Plan, Snapshot
from guildsync.plan import OperationKind, diff, is_noop

K = OperationKind


def _source() -> Snapshot:
    return Snapshot.from_entities(
        [
            Entity(kind=EntityKind.GUILD, id="g", attributes={"name": "G"}, children=["cat", "c2", "r1"]),
            Entity(kind=EntityKind.CHANNEL, id="cat", attributes={"name": "Text"}, children=["c1"]),
            Entity(kind=EntityKind.CHANNEL, id="c1", attributes={"name": "general"}, children=["ow1"]),
            Entity(
                kind=EntityKind.PERMISSION_OVERWRITE,
                id="ow1",
                attributes={"subject": "r1", "allow": "0", "deny": "0"},
            ),
            Entity(kind=EntityKind.CHANNEL, id="c2", attributes={"name": "random"}),
            Entity(kind=EntityKind.ROLE, id="r1", attributes={"name": "mod"}),
        ],
        format="dump",
    )


def _plan(*entities: Entity) -> Plan:
    return Plan.from_entities(list(entities), format="upload")


def _e(kind: EntityKind, eid: str, children=None, **kwargs) -> Entity:
    return Entity(kind=kind, id=eid, children=children, **kwargs)


def _kinds(ops) -> list[tuple[OperationKind, str]]:
    return [(op.kind, op.target_id) for op in ops]


class TestDiffBasics(unittest.TestCase):
    def test_identical_documents_produce_nothing(self) -> None:
        self.assertEqual(diff(_source(), _source()), [])
        self.assertTrue(is_noop(_source(), _source()))

    def test_empty_plan_produces_nothing(self) -> None:
        self.assertEqual(diff(_source(), _plan()), [])

    def test_update_only_mentioned_attributes(self) -> None:
        ops = diff(_source(), _plan(_e(EntityKind.CHANNEL, "c1", attributes={"name": "chat"})))
        self.assertEqual(_kinds(ops), [(K.UPDATE_ATTRIBUTES, "c1")])
        self.assertEqual(ops[0].before, {"name": "general"})
        self.assertEqual(ops[0].after, {"name": "chat"})
        self.assertFalse(ops[0].is_move)
        self.assertFalse(is_noop(_source(), _plan(_e(EntityKind.CHANNEL, "c1", attributes={"name": "chat"}))))

    def test_null_is_not_unspecified(self) -> None:
        ops = diff(_source(), _plan(_e(EntityKind.CHANNEL, "c1", attributes={"topic": None})))
        self.assertEqual(len(ops), 1)
        self.assertEqual(ops[0].after, {"topic": None})
        self.assertEqual(ops[0].before, {})

    def test_seq_and_op_ids(self) -> None:
        plan = _plan(
            _e(EntityKind.CHANNEL, "c1", attributes={"name": "chat"}),
            _e(EntityKind.CHANNEL, "c2", attributes={"name": "lobby"}),
        )
        ops = diff(_source(), plan)
        self.assertEqual([op.seq for op in ops], [0, 1])
        self.assertEqual(len({op.op_id for op in ops}), 2)
        # Operation ids are stable for the same diff.
        self.assertEqual([op.op_id for op in diff(_source(), plan)], [op.op_id for op in ops])

    def test_member_roles_compare_as_a_set(self) -> None:
        source = Snapshot.from_entities(
            [Entity(kind=EntityKind.MEMBER, id="u1", attributes={"roles": ["r1", "r2"]})],
            format="dump",
        )
        self.assertEqual(diff(source, _plan(_e(EntityKind.MEMBER, "u1", attributes={"roles": ["r2", "r1"]}))), [])
        ops = diff(source, _plan(_e(EntityKind.MEMBER, "u1", attributes={"roles": ["r2"]})))
        self.assertEqual(ops[0].after, {"roles": ["r2"]})

    def test_kind_change_is_rejected(self) -> None:
        with self.assertRaises(DiffError):
            diff(_source(), _plan(_e(EntityKind.ROLE, "c1")))


class TestDiffCreates(unittest.TestCase):
    def test_create_under_existing_parent(self) -> None:
        ops = diff(
            _source(),
            _plan(_e(EntityKind.CHANNEL, "c3", parent="cat", attributes={"name": "news"})),
        )
        self.assertEqual(_kinds(ops), [(K.CREATE_ENTITY, "c3")])
        op = ops[0]
        self.assertEqual(op.parent_id, "cat")
        self.assertEqual(op.after, {"name": "news"})
        self.assertTrue(op.placeholder)
        self.assertEqual(op.depends_on, [])
        self.assertFalse(op.blocking)

    def test_nested_creates_parent_first(self) -> None:
        ops = diff(
            _source(),
            _plan(
                _e(EntityKind.CHANNEL, "c4", attributes={"name": "inner"}),
                _e(EntityKind.CHANNEL, "cat2", children=["c4"], parent="g", attributes={"name": "Voice"}),
            ),
        )
        self.assertEqual(_kinds(ops), [(K.CREATE_ENTITY, "cat2"), (K.CREATE_ENTITY, "c4")])
        self.assertTrue(ops[0].blocking)
        self.assertEqual(ops[1].depends_on, ["cat2"])
        self.assertEqual(ops[1].parent_id, "cat2")

    def test_new_siblings_follow_listed_children(self) -> None:
        ops = diff(
            _source(),
            _plan(
                _e(EntityKind.CHANNEL, "cat2", children=["c9", "c8"], parent="g", attributes={"name": "Voice"}),
                _e(EntityKind.CHANNEL, "c8", attributes={"name": "b"}),
                _e(EntityKind.CHANNEL, "c9", attributes={"name": "a"}),
            ),
        )
        self.assertEqual(
            _kinds(ops),
            [(K.CREATE_ENTITY, "cat2"), (K.CREATE_ENTITY, "c9"), (K.CREATE_ENTITY, "c8")],
        )

    def test_new_overwrite_depends_on_new_channel_and_role(self) -> None:
        ops = diff(
            _source(),
            _plan(
                _e(EntityKind.CHANNEL, "c9", children=["x9"], parent="g", attributes={"name": "ops"}),
                _e(EntityKind.PERMISSION_OVERWRITE, "x9", attributes={"subject": "r9", "allow": "8"}),
                _e(EntityKind.ROLE, "r9", parent="g", attributes={"name": "oncall"}),
            ),
        )
        self.assertEqual(
            _kinds(ops),
            [(K.CREATE_ENTITY, "c9"), (K.CREATE_ENTITY, "r9"), (K.SET_OVERWRITE, "x9")],
        )
        overwrite = ops[2]
        self.assertEqual(overwrite.parent_id, "c9")
        self.assertEqual(overwrite.subject_id, "r9")
        self.assertEqual(overwrite.depends_on, ["c9", "r9"])
        self.assertTrue(overwrite.placeholder)
        self.assertTrue(ops[0].blocking)
        self.assertTrue(ops[1].blocking)

    def test_nonexistent_parent_is_rejected(self) -> None:
        with self.assertRaises(DiffError):
            diff(_source(), _plan(_e(EntityKind.CHANNEL, "c3", parent="zz")))


class TestDiffOverwrites(unittest.TestCase):
    def test_overwrite_matched_by_channel_and_subject(self) -> None:
        ops = diff(
            _source(),
            _plan(
                _e(EntityKind.CHANNEL, "c1", children=["x1"]),
                _e(EntityKind.PERMISSION_OVERWRITE, "x1", attributes={"subject": "r1", "allow": "8"}),
            ),
        )
        self.assertEqual(_kinds(ops), [(K.SET_OVERWRITE, "ow1")])
        self.assertEqual(ops[0].before, {"allow": "0"})
        self.assertEqual(ops[0].after, {"allow": "8"})
        self.assertFalse(ops[0].placeholder)

    def test_unchanged_overwrite_produces_nothing(self) -> None:
        ops = diff(
            _source(),
            _plan(
                _e(EntityKind.CHANNEL, "c1", children=["x1"]),
                _e(EntityKind.PERMISSION_OVERWRITE, "x1", attributes={"subject": "r1", "allow": "0"}),
            ),
        )
        self.assertEqual(ops, [])

    def test_overwrite_id_reused_for_other_pair(self) -> None:
        with self.assertRaises(DiffError):
            diff(
                _source(),
                _plan(
                    _e(EntityKind.CHANNEL, "c2", children=["ow1"]),
                    _e(EntityKind.PERMISSION_OVERWRITE, "ow1", attributes={"subject": "r1"}),
                ),
            )

    def test_overwrite_without_subject(self) -> None:
        with self.assertRaises(DiffError):
            diff(
                _source(),
                _plan(
                    _e(EntityKind.CHANNEL, "c2", children=["x1"]),
                    _e(EntityKind.PERMISSION_OVERWRITE, "x1", attributes={"allow": "8"}),
                ),
            )

    def test_absent_overwrite_by_key(self) -> None:
        ops = diff(
            _source(),
            _plan(
                _e(EntityKind.CHANNEL, "c1", children=["x1"]),
                _e(EntityKind.PERMISSION_OVERWRITE, "x1", attributes={"subject": "r1"}, absent=True),
            ),
        )
        self.assertEqual(_kinds(ops), [(K.DELETE_ENTITY, "ow1")])
        self.assertEqual(ops[0].subject_id, "r1")
        self.assertEqual(ops[0].parent_id, "c1")


class TestDiffDeletes(unittest.TestCase):
    def test_absent_entity_is_deleted(self) -> None:
        ops = diff(_source(), _plan(_e(EntityKind.ROLE, "r1", absent=True)))
        self.assertEqual(_kinds(ops), [(K.DELETE_ENTITY, "r1")])
        self.assertEqual(ops[0].parent_id, "g")
        self.assertEqual(ops[0].before, {"name": "mod"})

    def test_absent_unknown_entity_is_ignored(self) -> None:
        self.assertEqual(diff(_source(), _plan(_e(EntityKind.ROLE, "r9", absent=True))), [])

    def test_absent_cascades_children_first(self) -> None:
        ops = diff(_source(), _plan(_e(EntityKind.CHANNEL, "cat", absent=True)))
        self.assertEqual(
            _kinds(ops),
            [(K.DELETE_ENTITY, "ow1"), (K.DELETE_ENTITY, "c1"), (K.DELETE_ENTITY, "cat")],
        )

    def test_kept_child_under_deleted_parent_is_rejected(self) -> None:
        with self.assertRaises(DiffError):
            diff(
                _source(),
                _plan(
                    _e(EntityKind.CHANNEL, "cat", absent=True),
                    _e(EntityKind.CHANNEL, "c1", attributes={"name": "general"}),
                ),
            )

    def test_child_moved_out_before_parent_delete(self) -> None:
        ops = diff(
            _source(),
            _plan(
                _e(EntityKind.CHANNEL, "cat", absent=True),
                _e(EntityKind.CHANNEL, "c1", parent="g"),
            ),
        )
        self.assertEqual(_kinds(ops), [(K.UPDATE_ATTRIBUTES, "c1"), (K.DELETE_ENTITY, "cat")])
        move = ops[0]
        self.assertTrue(move.is_move)
        self.assertEqual(move.parent_id, "g")
        self.assertEqual(move.move_from, "cat")
        self.assertEqual(move.after, {})

    def test_strict_prune_deletes_unmentioned(self) -> None:
        plan = _plan(_e(EntityKind.GUILD, "g"))
        self.assertEqual(diff(_source(), plan), [])
        ops = diff(_source(), plan, strict_prune=True)
        self.assertEqual(
            [op.target_id for op in ops],
            ["ow1", "c1", "cat", "c2", "r1"],
        )
        self.assertTrue(all(op.kind is K.DELETE_ENTITY for op in ops))


class TestDiffStructure(unittest.TestCase):
    def test_reorder_children(self) -> None:
        ops = diff(
            _source(),
            _plan(
                _e(EntityKind.GUILD, "g", children=["r1", "c2", "cat"]),
                _e(EntityKind.CHANNEL, "cat"),
                _e(EntityKind.CHANNEL, "c2"),
                _e(EntityKind.ROLE, "r1"),
            ),
        )
        self.assertEqual(_kinds(ops), [(K.REORDER_CHILDREN, "g")])
        self.assertEqual(ops[0].children, ["r1", "c2", "cat"])
        self.assertEqual(ops[0].before, {"children": ["cat", "c2", "r1"]})

    def test_move_into_own_child_is_a_cycle(self) -> None:
        with self.assertRaises(DiffError):
            diff(_source(), _plan(_e(EntityKind.CHANNEL, "cat", parent="c1")))

    def test_global_order(self) -> None:
        ops = diff(
            _source(),
            _plan(
                _e(EntityKind.GUILD, "g", children=["c2", "cat"]),
                _e(EntityKind.CHANNEL, "c2", attributes={"name": "random2"}),
                _e(EntityKind.CHANNEL, "cat"),
                _e(EntityKind.CHANNEL, "c3", parent="cat", attributes={"name": "news"}),
                _e(EntityKind.ROLE, "r1", absent=True),
            ),
        )
        self.assertEqual(
            _kinds(ops),
            [
                (K.CREATE_ENTITY, "c3"),
                (K.UPDATE_ATTRIBUTES, "c2"),
                (K.REORDER_CHILDREN, "g"),
                (K.DELETE_ENTITY, "r1"),
            ],
        )
        self.assertEqual([op.seq for op in ops], [0, 1, 2, 3])


if __name__ == "__main__":
    unittest.main()
