from __future__ import annotations

from typing import Mapping, Optional

import numpy as np

from .config import CompilerConfig, default_config
from .decompose import decompose, decompose_pose
from .errors import CompileError, InternalInvariantError, MplError
from .parser import parse_script
from .rules import get_rule_table
from .synth import compose
from .timeline import build_frame_stream
from .types import Decomposition, FrameStream, Quat
from .vmd import write_vmd


def compile_script(text: str, config: Optional[CompilerConfig] = None, logger=None) -> FrameStream:
    """
    Flat statements or a block script -> frame stream.
    Rejects the whole input with CompileError on any problem.
    """
    cfg = config or default_config()
    table = get_rule_table()
    try:
        script = parse_script(text, table=table)
        return build_frame_stream(script, cfg, table, logger)
    except CompileError as e:
        if logger:
            logger.warning("Rejected script: %s", e)
        raise
    except InternalInvariantError:
        raise
    except MplError as e:
        if logger:
            logger.warning("Rejected script: %s", e)
        raise CompileError([e]) from e


def compile_vmd(text: str, config: Optional[CompilerConfig] = None, logger=None) -> bytes:
    cfg = config or default_config()
    stream = compile_script(text, cfg, logger)
    return write_vmd(stream, cfg.model_name, logger)


def compile_pose(text: str) -> dict[str, Quat]:
    """Flat statement list -> composed rotation per bone."""
    script = parse_script(text, table=get_rule_table())
    statements = [s for pose in script.poses.values() for s in pose.statements]
    return compose(statements, get_rule_table())


def decompile(
    bone: str,
    quat: Quat,
    tolerance: Optional[float] = None,
    *,
    seed: Optional[int] = None,
    rng: Optional[np.random.Generator] = None,
    config: Optional[CompilerConfig] = None,
    logger=None,
) -> Decomposition:
    return decompose(bone, quat, tolerance, rng=rng, seed=seed, config=config, logger=logger)


def decompile_pose(
    rotations: Mapping[str, Quat],
    tolerance: Optional[float] = None,
    *,
    seed: Optional[int] = None,
    config: Optional[CompilerConfig] = None,
    logger=None,
) -> str:
    """
    Per-bone rotations -> one MPL statement list, "; " separated, bones in input order.
    """
    parts = [
        d.text
        for d in decompose_pose(rotations, tolerance, seed=seed, config=config, logger=logger)
        if d.statements
    ]
    return "; ".join(parts)


def list_bones() -> list[str]:
    return get_rule_table().bones()


def list_actions(bone: str) -> Optional[list[str]]:
    return get_rule_table().actions(bone)


def list_directions(bone: str, action: str) -> Optional[list[str]]:
    return get_rule_table().directions(bone, action)


def degree_limit(bone: str, action: str, direction: str) -> Optional[float]:
    rule = get_rule_table().rule(bone, action, direction)
    return rule.limit if rule is not None else None


def display_name(bone: str, locale: str = "ja") -> Optional[str]:
    return get_rule_table().display_name(bone, locale)


def bone_for_name(name: str) -> Optional[str]:
    return get_rule_table().bone_for_name(name)
