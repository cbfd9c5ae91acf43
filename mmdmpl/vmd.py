"""Vocaloid Motion Data (VMD 0002) writer.

Layout, all little-endian:
  header            30s  "Vocaloid Motion Data 0002", NUL padded
  model name        20s  Shift_JIS
  bone frame count  u32, then per record (111 bytes):
      name 15s Shift_JIS, frame u32, position 3f, rotation 4f (x,y,z,w),
      interpolation 64 bytes
  morph frame count u32, then per record (23 bytes):
      name 15s Shift_JIS, frame u32, weight f
  camera, light, self-shadow counts  u32 each (always 0 here)
"""
from __future__ import annotations

import struct
from typing import Optional

from .types import FrameStream

VMD_MAGIC = b"Vocaloid Motion Data 0002"
HEADER_SIZE = 30
MODEL_NAME_SIZE = 20
NAME_SIZE = 15

BONE_RECORD = struct.Struct("<15sI3f4f64s")
MORPH_RECORD = struct.Struct("<15sIf")
U32 = struct.Struct("<I")

# Linear bezier handles (20,20)-(107,107) for the X, Y, Z and rotation curves:
# x1 y1 x2 y2 per curve, interleaved as MMD writes them.
_LINEAR_ROW = [20] * 8 + [107] * 8


def _linear_interpolation() -> bytes:
    rows: list[int] = []
    for shift in range(4):
        # each row repeats the previous one shifted left by one byte
        rows.extend(_LINEAR_ROW[shift:] + [0] * shift)
    # bytes 2 and 3 of the first row are reserved by MMD
    rows[2] = 0
    rows[3] = 0
    return bytes(rows)


LINEAR_INTERPOLATION = _linear_interpolation()


def encode_name(name: str, size: int) -> bytes:
    """
    Shift_JIS, truncated to size bytes without splitting a double-byte character.
    """
    raw = b""
    for ch in name:
        enc = ch.encode("shift_jis", errors="replace")
        if len(raw) + len(enc) > size:
            break
        raw += enc
    return raw.ljust(size, b"\x00")


def write_vmd(stream: FrameStream, model_name: Optional[str] = None, logger=None) -> bytes:
    parts: list[bytes] = []
    parts.append(VMD_MAGIC.ljust(HEADER_SIZE, b"\x00"))
    parts.append(encode_name(model_name or "", MODEL_NAME_SIZE))

    parts.append(U32.pack(stream.bone_frame_count))
    for kf in stream.keyframes:
        for bf in kf.bones:
            px, py, pz = bf.position if bf.position is not None else (0.0, 0.0, 0.0)
            x, y, z, w = bf.rotation
            parts.append(
                BONE_RECORD.pack(
                    encode_name(bf.display_name, NAME_SIZE),
                    kf.frame,
                    px, py, pz,
                    x, y, z, w,
                    LINEAR_INTERPOLATION,
                )
            )

    parts.append(U32.pack(stream.morph_frame_count))
    for kf in stream.keyframes:
        for mf in kf.morphs:
            parts.append(MORPH_RECORD.pack(encode_name(mf.name, NAME_SIZE), kf.frame, mf.weight))

    # camera, light, self shadow
    parts.append(U32.pack(0) * 3)

    data = b"".join(parts)
    if logger:
        logger.info(
            "VMD encoded: %d bone frames, %d morph frames, %d bytes",
            stream.bone_frame_count, stream.morph_frame_count, len(data),
        )
    return data
