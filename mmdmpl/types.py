from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Optional


Vec3 = tuple[float, float, float]
Quat = tuple[float, float, float, float]  # (x,y,z,w)

IDENTITY: Quat = (0.0, 0.0, 0.0, 1.0)


@dataclass(frozen=True)
class ActionRule:
    axis: Vec3  # not necessarily unit length
    limit: float  # inclusive, degrees


@dataclass(frozen=True)
class BoneInfo:
    key: str
    name_en: str
    name_ja: str
    # action -> direction -> rule
    actions: Mapping[str, Mapping[str, ActionRule]]


@dataclass(frozen=True)
class Statement:
    bone: str
    action: str
    direction: str
    degrees: float
    line: Optional[int] = None

    @property
    def text(self) -> str:
        return f"{self.bone} {self.action} {self.direction} {_fmt_degrees(self.degrees)}"


@dataclass(frozen=True)
class Pose:
    name: str
    statements: tuple[Statement, ...]
    line: Optional[int] = None


@dataclass(frozen=True)
class AnimationEntry:
    timestamp: float  # seconds from animation start
    poses: tuple[str, ...]  # 2+ names means a combination
    line: Optional[int] = None


@dataclass(frozen=True)
class Animation:
    name: str
    entries: tuple[AnimationEntry, ...]
    line: Optional[int] = None

    @property
    def length(self) -> float:
        return self.entries[-1].timestamp if self.entries else 0.0


@dataclass(frozen=True)
class Script:
    poses: Mapping[str, Pose]
    animations: Mapping[str, Animation]
    main: tuple[str, ...] = ()
    # flat scripts have no blocks; everything lives in one anonymous pose
    flat: bool = False


@dataclass(frozen=True)
class BoneFrame:
    bone: str
    display_name: str
    rotation: Quat
    position: Optional[Vec3] = None


@dataclass(frozen=True)
class MorphFrame:
    name: str
    weight: float


@dataclass(frozen=True)
class Keyframe:
    time: float
    frame: int
    bones: tuple[BoneFrame, ...]
    morphs: tuple[MorphFrame, ...] = ()

    def bone(self, key: str) -> Optional[BoneFrame]:
        for b in self.bones:
            if b.bone == key:
                return b
        return None


@dataclass(frozen=True)
class FrameStream:
    fps: int
    keyframes: tuple[Keyframe, ...] = field(default_factory=tuple)

    @property
    def bone_frame_count(self) -> int:
        return sum(len(k.bones) for k in self.keyframes)

    @property
    def morph_frame_count(self) -> int:
        return sum(len(k.morphs) for k in self.keyframes)

    @property
    def duration(self) -> float:
        return self.keyframes[-1].time if self.keyframes else 0.0


@dataclass(frozen=True)
class Decomposition:
    bone: str
    statements: tuple[Statement, ...]
    residual: float
    tolerance: float

    @property
    def converged(self) -> bool:
        return self.residual <= self.tolerance

    @property
    def text(self) -> str:
        return "; ".join(s.text for s in self.statements)


def _fmt_degrees(d: float) -> str:
    # 30.0 -> "30", 12.3456 -> "12.346"
    s = f"{float(d):.3f}".rstrip("0").rstrip(".")
    return s if s not in ("", "-0") else "0"
