from __future__ import annotations

from typing import Iterable, Optional

from .config import CompilerConfig, default_config
from .errors import PoseConflictError, TimelineOrderError
from .quat import q_mul
from .rules import RuleTable, get_rule_table
from .synth import compose
from .types import BoneFrame, FrameStream, Keyframe, Pose, Quat, Script


def resolve_pose(pose: Pose, table: Optional[RuleTable] = None) -> dict[str, Quat]:
    return compose(pose.statements, table)


def combine_poses(
    names: Iterable[str],
    resolved: dict[str, dict[str, Quat]],
    policy: str = "compose",
) -> dict[str, Quat]:
    """
    Union of several resolved poses. When two poses set the same bone:
      compose  -> multiply in reference order (same as concatenating their statements)
      override -> the later reference wins
      error    -> PoseConflictError
    """
    out: dict[str, Quat] = {}
    owner: dict[str, str] = {}
    for name in names:
        for bone, q in resolved[name].items():
            if bone not in out:
                out[bone] = q
                owner[bone] = name
                continue
            if policy == "compose":
                out[bone] = q_mul(out[bone], q)
            elif policy == "override":
                out[bone] = q
            else:
                raise PoseConflictError(
                    f"Poses '{owner[bone]}' and '{name}' both set bone '{bone}'",
                    token=bone,
                )
            owner[bone] = name
    return out


def _frame_of(seconds: float, fps: int) -> int:
    return int(round(seconds * fps))


def _keyframe(time: float, frame: int, rotations: dict[str, Quat], table: RuleTable) -> Keyframe:
    bones = tuple(
        BoneFrame(bone=b, display_name=table.display_name(b, "ja") or b, rotation=q)
        for b, q in rotations.items()
    )
    return Keyframe(time=time, frame=frame, bones=bones)


def build_frame_stream(
    script: Script,
    config: Optional[CompilerConfig] = None,
    table: Optional[RuleTable] = None,
    logger=None,
) -> FrameStream:
    """
    Lay the main block out on one timeline. Each main reference starts
    sequence_gap_frames after the last frame of the previous one; an animation's
    timestamps are seconds from its own start, a pose is a single keyframe.
    """
    cfg = config or default_config()
    table = table or get_rule_table()
    fps = cfg.fps

    resolved = {name: resolve_pose(p, table) for name, p in script.poses.items()}

    keyframes: list[Keyframe] = []
    start_frame = 0
    for ref in script.main:
        anim = script.animations.get(ref)
        if anim is None:
            keyframes.append(_keyframe(start_frame / fps, start_frame, resolved[ref], table))
            last_frame = start_frame
        else:
            start_time = start_frame / fps
            last_frame = start_frame
            for entry in anim.entries:
                try:
                    rotations = combine_poses(entry.poses, resolved, cfg.combine_policy)
                except PoseConflictError as e:
                    e.line = entry.line
                    raise
                frame = start_frame + _frame_of(entry.timestamp, fps)
                if keyframes and frame <= keyframes[-1].frame:
                    raise TimelineOrderError(
                        f"Animation '{anim.name}' entry at {entry.timestamp:g}s lands on frame {frame}, "
                        f"which is not after frame {keyframes[-1].frame} at {fps} fps",
                        line=entry.line,
                        token=f"{entry.timestamp:g}",
                    )
                keyframes.append(_keyframe(start_time + entry.timestamp, frame, rotations, table))
                last_frame = frame

        start_frame = last_frame + cfg.sequence_gap_frames

    stream = FrameStream(fps=fps, keyframes=tuple(keyframes))
    if logger:
        logger.info(
            "Built frame stream: %d keyframes, %d bone frames, %.3fs",
            len(stream.keyframes), stream.bone_frame_count, stream.duration,
        )
    return stream
