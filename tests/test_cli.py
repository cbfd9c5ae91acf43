import io
import json
import logging
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path
from unittest.mock import patch

from mmdmpl import cli
from mmdmpl.vmd import VMD_MAGIC


def run(argv):
    out, err = io.StringIO(), io.StringIO()
    with patch.object(cli, "_setup_logger", return_value=logging.getLogger("mmdmpl.test_cli")):
        with redirect_stdout(out), redirect_stderr(err):
            code = cli.main(argv)
    return code, out.getvalue(), err.getvalue()


class CliTest(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.dir = Path(self.tmp.name)

    def tearDown(self):
        self.tmp.cleanup()

    def write(self, name, text):
        path = self.dir / name
        path.write_text(text, encoding="utf-8")
        return path

    def test_compile_writes_vmd(self):
        src = self.write("nod.mpl", "head bend forward 30")
        out = self.dir / "nod.vmd"
        code, _, err = run(["compile", str(src), "-o", str(out)])
        self.assertEqual(code, 0)
        self.assertTrue(out.read_bytes().startswith(VMD_MAGIC))
        self.assertIn("1 bone frames", err)

    def test_compile_json(self):
        src = self.write("nod.mpl", "head bend forward 30")
        code, stdout, _ = run(["compile", str(src), "--json"])
        self.assertEqual(code, 0)
        doc = json.loads(stdout)
        self.assertEqual(doc["fps"], 60)
        self.assertEqual(doc["keyframes"][0]["bones"][0]["name"], "頭")
        self.assertFalse((self.dir / "nod.vmd").exists())

    def test_compile_errors_exit_1(self):
        src = self.write("bad.mpl", "foot_l bend forward 10\nhead bend forward 100")
        code, _, err = run(["compile", str(src)])
        self.assertEqual(code, 1)
        self.assertIn("UnknownBoneError: Line 1", err)
        self.assertIn("DegreeRangeError: Line 2", err)

    def test_missing_script_exit_2(self):
        code, _, _ = run(["compile", str(self.dir / "nope.mpl")])
        self.assertEqual(code, 2)

    def test_config_file(self):
        src = self.write("nod.mpl", "@pose p { head bend forward 5; }\n@animation a { 0: p; 1: p; }\nmain { a; }")
        cfg = self.write("config.json", json.dumps({"fps": 30}))
        code, stdout, _ = run(["--config", str(cfg), "compile", str(src), "--json"])
        self.assertEqual(code, 0)
        self.assertEqual([k["frame"] for k in json.loads(stdout)["keyframes"]], [0, 30])

    def test_bad_config_exit_2(self):
        cfg = self.write("config.json", json.dumps({"combine_policy": "blend"}))
        code, _, err = run(["--config", str(cfg), "bones"])
        self.assertEqual(code, 2)
        self.assertIn("combine_policy", err)

    def test_decompile(self):
        code, stdout, err = run(["decompile", "head", "0", "-0.25881904510252074", "0", "0.9659258262890683"])
        self.assertEqual(code, 0)
        self.assertEqual(stdout.strip(), "head turn left 30")
        self.assertIn("(ok)", err)

    def test_bones_and_rules(self):
        code, stdout, _ = run(["bones"])
        self.assertEqual(code, 0)
        self.assertIn("head\t頭", stdout.splitlines())

        code, stdout, _ = run(["rules", "頭"])
        self.assertEqual(code, 0)
        self.assertEqual(len(stdout.splitlines()), 6)
        self.assertTrue(stdout.startswith("head bend forward\tmax=60"))

        code, _, _ = run(["rules", "foot_l"])
        self.assertEqual(code, 2)


if __name__ == "__main__":
    unittest.main()
