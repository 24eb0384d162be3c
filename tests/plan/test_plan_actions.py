import unittest

from guildsync.plan import ALL_OPERATION_KINDS, OperationKind


class TestOperationKind(unittest.TestCase):
    def test_values(self) -> None:
        self.assertEqual(OperationKind.CREATE_ENTITY.value, "CreateEntity")
        self.assertEqual(OperationKind("SetOverwrite"), OperationKind.SET_OVERWRITE)
        self.assertEqual(OperationKind.REORDER_CHILDREN, "ReorderChildren")

    def test_all_kinds(self) -> None:
        self.assertEqual(len(ALL_OPERATION_KINDS), 5)
        self.assertIn(OperationKind.DELETE_ENTITY, ALL_OPERATION_KINDS)


if __name__ == "__main__":
    unittest.main()
