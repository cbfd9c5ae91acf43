import unittest

from mmdmpl.errors import (
    CompileError,
    DegreeRangeError,
    DuplicateNameError,
    MplSyntaxError,
    TimelineOrderError,
    UnknownActionError,
    UnknownBoneError,
    UnknownDirectionError,
    UnresolvedReferenceError,
)
from mmdmpl.parser import is_block_script, make_statement, parse_script, parse_statement


GREETING = """\
@pose wave {
  arm_r bend backward 30;
  elbow_r bend forward 45;
}

@pose nod {
  head bend forward 20;
}

@animation greet {
  0.8: wave;
  0.9: nod;
  1.2: wave & nod;
}

main {
  greet;
}
"""


def errors_of(text):
    try:
        parse_script(text)
    except CompileError as e:
        return e.errors
    raise AssertionError("script was accepted")


class StatementTest(unittest.TestCase):
    def test_valid_statement(self):
        s = parse_statement("head bend forward 30")
        self.assertEqual((s.bone, s.action, s.direction, s.degrees), ("head", "bend", "forward", 30.0))
        self.assertEqual(s.text, "head bend forward 30")

    def test_tokens_are_case_insensitive(self):
        s = parse_statement("HEAD Bend FORWARD 12.5")
        self.assertEqual((s.bone, s.action, s.direction), ("head", "bend", "forward"))

    def test_token_count(self):
        with self.assertRaises(MplSyntaxError):
            parse_statement("head bend forward")
        with self.assertRaises(MplSyntaxError):
            parse_statement("head bend forward 10 20")

    def test_unknown_bone(self):
        with self.assertRaises(UnknownBoneError) as cm:
            parse_statement("foot_l bend forward 10", line=3)
        self.assertEqual(cm.exception.line, 3)
        self.assertEqual(cm.exception.token, "foot_l")
        self.assertIn("Line 3", str(cm.exception))

    def test_action_not_available(self):
        with self.assertRaises(UnknownActionError):
            parse_statement("head jump forward 10")
        with self.assertRaises(UnknownActionError):
            parse_statement("elbow_l sway left 5")

    def test_direction_not_available(self):
        with self.assertRaises(UnknownDirectionError):
            parse_statement("knee_l bend forward 10")
        with self.assertRaises(UnknownDirectionError):
            parse_statement("head bend up 10")

    def test_degree_bounds_are_inclusive(self):
        self.assertEqual(parse_statement("head bend forward 0").degrees, 0.0)
        self.assertEqual(parse_statement("head bend forward 60").degrees, 60.0)
        for bad in ("61", "-1", "abc", "nan", "inf"):
            with self.assertRaises(DegreeRangeError, msg=bad):
                parse_statement(f"head bend forward {bad}")

    def test_make_statement_validates_bone_first(self):
        with self.assertRaises(UnknownBoneError):
            make_statement("foot_l", "jump", "up", 999)


class FlatScriptTest(unittest.TestCase):
    def test_semicolons_and_newlines(self):
        script = parse_script("head bend forward 30; neck turn left 10\narm_l sway right 5;")
        self.assertTrue(script.flat)
        self.assertEqual(script.main, ("",))
        stmts = script.poses[""].statements
        self.assertEqual([s.bone for s in stmts], ["head", "neck", "arm_l"])
        self.assertEqual([s.line for s in stmts], [1, 1, 2])

    def test_empty_script(self):
        errs = errors_of("   \n ; ")
        self.assertIsInstance(errs[0], MplSyntaxError)

    def test_all_errors_are_collected(self):
        errs = errors_of("foot_l bend forward 10\nhead bend forward 30\nhead bend forward 100")
        self.assertEqual(len(errs), 2)
        self.assertIsInstance(errs[0], UnknownBoneError)
        self.assertIsInstance(errs[1], DegreeRangeError)
        self.assertEqual([e.line for e in errs], [1, 3])

    def test_compile_error_message(self):
        with self.assertRaises(CompileError) as cm:
            parse_script("foot_l bend forward 10; head bend forward 100")
        self.assertIn("and 1 more", str(cm.exception))
        report = cm.exception.report()
        self.assertIn("UnknownBoneError", report)
        self.assertIn("DegreeRangeError", report)


class BlockScriptTest(unittest.TestCase):
    def test_greeting(self):
        script = parse_script(GREETING)
        self.assertFalse(script.flat)
        self.assertEqual(set(script.poses), {"wave", "nod"})
        self.assertEqual(script.main, ("greet",))
        anim = script.animations["greet"]
        self.assertEqual([e.timestamp for e in anim.entries], [0.8, 0.9, 1.2])
        self.assertEqual(anim.entries[2].poses, ("wave", "nod"))
        self.assertEqual(anim.length, 1.2)
        self.assertEqual(script.poses["nod"].statements[0].line, 7)

    def test_detects_block_scripts(self):
        self.assertTrue(is_block_script(GREETING))
        self.assertFalse(is_block_script("head bend forward 30"))

    def test_references_may_come_before_declarations(self):
        script = parse_script("main { a; }\n@animation a { 0: p; }\n@pose p { head bend forward 5; }")
        self.assertEqual(script.main, ("a",))

    def test_main_may_reference_a_pose(self):
        script = parse_script("@pose p { head bend forward 5; }\nmain { p; }")
        self.assertEqual(script.main, ("p",))

    def test_missing_terminator(self):
        errs = errors_of("@pose p {\n  head bend forward 5\n}\nmain { p; }")
        self.assertIsInstance(errs[0], MplSyntaxError)
        self.assertEqual(errs[0].line, 2)

    def test_missing_main(self):
        errs = errors_of("@pose p { head bend forward 5; }")
        self.assertTrue(any("main" in e.message for e in errs))

    def test_duplicate_names(self):
        errs = errors_of(
            "@pose p { head bend forward 5; }\n@animation p { 0: p; }\nmain { p; }"
        )
        self.assertIsInstance(errs[0], DuplicateNameError)

    def test_unresolved_reference(self):
        errs = errors_of("@pose p { head bend forward 5; }\n@animation a { 0: p & q; }\nmain { a; b; }")
        self.assertEqual([type(e) for e in errs], [UnresolvedReferenceError, UnresolvedReferenceError])
        self.assertEqual({e.token for e in errs}, {"q", "b"})

    def test_timestamps_must_increase(self):
        errs = errors_of("@pose p { head bend forward 5; }\n@animation a {\n 1: p;\n 1: p;\n 0.5: p;\n}\nmain { a; }")
        self.assertEqual(len(errs), 2)
        self.assertTrue(all(isinstance(e, TimelineOrderError) for e in errs))
        self.assertEqual([e.line for e in errs], [4, 5])

    def test_structure_errors(self):
        for text in (
            "@pose p { head bend forward 5; \nmain { p; }",
            "@pose p { head bend forward 5; } }\nmain { p; }",
            "stray text\n@pose p { head bend forward 5; }\nmain { p; }",
            "@pose { head bend forward 5; }\nmain { x; }",
            "@pose p { }\nmain { p; }",
        ):
            errs = errors_of(text)
            self.assertIsInstance(errs[0], MplSyntaxError, text)

    def test_statement_errors_inside_blocks_are_collected(self):
        errs = errors_of("@pose p {\n head bend forward 500;\n foot_l bend forward 1;\n}\nmain { p; }")
        self.assertEqual([type(e) for e in errs], [DegreeRangeError, UnknownBoneError])
        self.assertEqual([e.line for e in errs], [2, 3])


if __name__ == "__main__":
    unittest.main()
