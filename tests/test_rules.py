import unittest

from mmdmpl.quat import v3_len
from mmdmpl.rules import ACTIONS, DIRECTIONS, get_rule_table


class RuleTableTest(unittest.TestCase):
    def setUp(self):
        self.table = get_rule_table()

    def test_every_rule_has_usable_axis_and_limit(self):
        for bone in self.table.bones():
            for action, direction, rule in self.table.rules_for(bone):
                self.assertIn(action, ACTIONS)
                self.assertIn(direction, DIRECTIONS)
                self.assertGreater(v3_len(rule.axis), 0.0, f"{bone} {action} {direction}")
                self.assertGreaterEqual(rule.limit, 0.0)

    def test_head_rules(self):
        rule = self.table.rule("head", "bend", "backward")
        self.assertEqual(rule.axis, (1.0, 0.0, 0.0))
        self.assertEqual(rule.limit, 90.0)
        self.assertEqual(self.table.rule("head", "bend", "forward").limit, 60.0)
        self.assertEqual(self.table.rule("head", "turn", "left").axis, (0.0, -1.0, 0.0))

    def test_rules_for_keeps_table_order(self):
        pairs = [(a, d) for a, d, _ in self.table.rules_for("head")]
        self.assertEqual(
            pairs,
            [
                ("bend", "forward"), ("bend", "backward"),
                ("turn", "left"), ("turn", "right"),
                ("sway", "left"), ("sway", "right"),
            ],
        )

    def test_unknown_lookups_return_none(self):
        self.assertIsNone(self.table.bone("foot_l"))
        self.assertIsNone(self.table.actions("foot_l"))
        self.assertIsNone(self.table.directions("head", "jump"))
        self.assertIsNone(self.table.rule("knee_l", "bend", "forward"))
        self.assertIsNone(self.table.display_name("foot_l"))
        self.assertIsNone(self.table.display_name("head", "fr"))
        self.assertEqual(self.table.rules_for("foot_l"), [])

    def test_display_names(self):
        self.assertEqual(self.table.display_name("head"), "頭")
        self.assertEqual(self.table.display_name("head", "en"), "head")
        self.assertEqual(self.table.display_name("lower_body", "ja"), "下半身")

    def test_bone_for_name(self):
        self.assertEqual(self.table.bone_for_name("頭"), "head")
        self.assertEqual(self.table.bone_for_name("HEAD"), "head")
        self.assertEqual(self.table.bone_for_name(" arm_l "), "arm_l")
        self.assertIsNone(self.table.bone_for_name("foot_l"))

    def test_table_is_read_only(self):
        info = self.table.bone("head")
        with self.assertRaises(TypeError):
            info.actions["bend"]["forward"] = None
        with self.assertRaises(TypeError):
            info.actions["jump"] = {}

    def test_table_is_built_once(self):
        self.assertIs(get_rule_table(), self.table)


if __name__ == "__main__":
    unittest.main()
