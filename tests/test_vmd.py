import unittest

from mmdmpl.parser import parse_script
from mmdmpl.timeline import build_frame_stream
from mmdmpl.types import FrameStream
from mmdmpl.vmd import (
    BONE_RECORD,
    LINEAR_INTERPOLATION,
    MORPH_RECORD,
    U32,
    VMD_MAGIC,
    encode_name,
    write_vmd,
)


HEAD_OFFSET = 30 + 20


class VmdWriterTest(unittest.TestCase):
    def test_record_sizes(self):
        self.assertEqual(BONE_RECORD.size, 111)
        self.assertEqual(MORPH_RECORD.size, 23)
        self.assertEqual(len(LINEAR_INTERPOLATION), 64)
        self.assertEqual(list(LINEAR_INTERPOLATION[:4]), [20, 20, 0, 0])

    def test_empty_stream(self):
        data = write_vmd(FrameStream(fps=60))
        self.assertEqual(len(data), 30 + 20 + 4 * 5)
        self.assertTrue(data.startswith(VMD_MAGIC))
        self.assertEqual(data[HEAD_OFFSET:], b"\x00" * 20)

    def test_single_bone_frame(self):
        stream = build_frame_stream(parse_script("head bend forward 30"))
        data = write_vmd(stream, model_name="ミク")

        self.assertEqual(len(data), 30 + 20 + 4 + 111 + 4 + 12)
        self.assertEqual(data[30:50], encode_name("ミク", 20))
        self.assertEqual(U32.unpack_from(data, HEAD_OFFSET)[0], 1)

        name, frame, px, py, pz, x, y, z, w, interp = BONE_RECORD.unpack_from(data, HEAD_OFFSET + 4)
        self.assertEqual(name.rstrip(b"\x00").decode("shift_jis"), "頭")
        self.assertEqual(frame, 0)
        self.assertEqual((px, py, pz), (0.0, 0.0, 0.0))
        rot = stream.keyframes[0].bones[0].rotation
        for got, want in zip((x, y, z, w), rot):
            self.assertAlmostEqual(got, want, places=6)
        self.assertEqual(interp, LINEAR_INTERPOLATION)

        self.assertEqual(U32.unpack_from(data, HEAD_OFFSET + 4 + 111)[0], 0)

    def test_frames_in_stream_order(self):
        text = "@pose a { head bend forward 10; neck turn left 5; }\n@animation x { 0: a; 0.5: a; }\nmain { x; }"
        data = write_vmd(build_frame_stream(parse_script(text)))
        self.assertEqual(U32.unpack_from(data, HEAD_OFFSET)[0], 4)
        frames = [
            BONE_RECORD.unpack_from(data, HEAD_OFFSET + 4 + i * BONE_RECORD.size)[1]
            for i in range(4)
        ]
        self.assertEqual(frames, [0, 0, 30, 30])

    def test_name_truncation_keeps_whole_characters(self):
        raw = encode_name("右人指１右人指１", 15)
        self.assertEqual(len(raw), 15)
        self.assertEqual(raw[14:], b"\x00")
        raw.rstrip(b"\x00").decode("shift_jis")


if __name__ == "__main__":
    unittest.main()
