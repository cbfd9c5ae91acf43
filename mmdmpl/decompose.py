from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

import numpy as np
from scipy.optimize import minimize

from .config import CompilerConfig, default_config
from .quat import q_distance, q_from_axis_angle, q_mul, q_norm, q_to_axis_angle, v3_dot, v3_normalize
from .rules import OPPOSING_PAIRS, RuleTable, get_rule_table
from .synth import statement_quat
from .types import IDENTITY, ActionRule, Decomposition, Quat, Statement


NEGLIGIBLE_DEG = 0.01  # rotations at or below this are dropped
AXIS_MATCH = 0.999     # |cos| between target axis and a rule axis for the single-axis shortcut
SIMPLEX_SCALE = 0.1    # initial simplex step, fraction of each rule's limit
POLISH_SCALE = 0.05

Candidate = tuple[str, str, ActionRule]  # (action, direction, rule)
Entry = tuple[str, str, float]           # (action, direction, degrees)


@dataclass(frozen=True)
class SearchResult:
    degrees: np.ndarray
    distance: float
    start_index: int
    iterations: int


class DegreeObjective:
    """
    Quaternion distance between the target and the composition of every
    candidate rotation, with degrees clamped to [0, limit] and applied in
    candidate order. Pure: safe to evaluate from several threads.
    """

    def __init__(self, candidates: Sequence[Candidate], target: Quat) -> None:
        self.candidates = list(candidates)
        self.target = target
        self.axes = [v3_normalize(rule.axis) for _, _, rule in self.candidates]
        self.limits = np.array([rule.limit for _, _, rule in self.candidates], dtype=float)

    @property
    def dim(self) -> int:
        return len(self.candidates)

    def clamp(self, degrees: np.ndarray) -> np.ndarray:
        return np.clip(np.asarray(degrees, dtype=float), 0.0, self.limits)

    def rotation(self, degrees: np.ndarray) -> Quat:
        q = IDENTITY
        for axis, d in zip(self.axes, self.clamp(degrees)):
            if d > NEGLIGIBLE_DEG:
                q = q_mul(q, q_from_axis_angle(axis, float(d)))
        return q

    def __call__(self, degrees: np.ndarray) -> float:
        return q_distance(self.rotation(degrees), self.target)


def start_points(limits: np.ndarray, rng: np.random.Generator, extra_random: int = 0) -> list[np.ndarray]:
    """
    zero, random (scaled to limits), 50% of limits, alternating 30%/70%, then extra random ones.
    """
    n = len(limits)
    alt = np.array([0.3 if i % 2 == 0 else 0.7 for i in range(n)])
    points = [
        np.zeros(n),
        rng.random(n) * limits,
        limits * 0.5,
        limits * alt,
    ]
    for _ in range(extra_random):
        points.append(rng.random(n) * limits)
    return points


def initial_simplex(x0: np.ndarray, limits: np.ndarray, scale: float = SIMPLEX_SCALE) -> np.ndarray:
    n = len(x0)
    sim = np.tile(np.asarray(x0, dtype=float), (n + 1, 1))
    for i in range(n):
        sim[i + 1, i] += limits[i] * scale
    return sim


def nelder_mead(
    objective,
    x0: np.ndarray,
    limits: np.ndarray,
    *,
    tolerance: float,
    max_iterations: int,
    scale: float = SIMPLEX_SCALE,
) -> tuple[np.ndarray, float, int]:
    """
    One simplex run. Stops after max_iterations or once the best/worst objective
    spread of the simplex drops to tolerance. Returns (x, f(x), iterations).
    """
    res = minimize(
        objective,
        np.asarray(x0, dtype=float),
        method="Nelder-Mead",
        options={
            "initial_simplex": initial_simplex(x0, limits, scale),
            "maxiter": int(max_iterations),
            "fatol": float(tolerance),
            "xatol": np.inf,  # converge on objective spread only
            "adaptive": False,  # fixed coefficients 1, 2, 0.5, 0.5
        },
    )
    x = np.clip(res.x, 0.0, limits)
    return x, float(objective(x)), int(res.nit)


def multi_start_search(
    objective: DegreeObjective,
    starts: Sequence[np.ndarray],
    *,
    tolerance: float,
    max_iterations: int,
    workers: int = 1,
) -> SearchResult:
    """
    Nelder-Mead from every start point, keep the lowest distance.
    Ties go to the earliest start, so threading never changes the answer.
    """
    def run(x0: np.ndarray) -> tuple[np.ndarray, float, int]:
        return nelder_mead(objective, x0, objective.limits, tolerance=tolerance, max_iterations=max_iterations)

    if workers > 1 and len(starts) > 1:
        with ThreadPoolExecutor(max_workers=workers) as ex:
            results = list(ex.map(run, starts))
    else:
        results = [run(x0) for x0 in starts]

    best_i = min(range(len(results)), key=lambda i: (results[i][1], i))
    x, f, nit = results[best_i]
    return SearchResult(degrees=x, distance=f, start_index=best_i, iterations=nit)


def sparsify(objective: DegreeObjective, degrees: np.ndarray, bound: float) -> np.ndarray:
    """
    Greedily zero the smallest rotations while the distance stays within bound.
    """
    out = objective.clamp(degrees).copy()
    for idx in np.argsort(out, kind="stable"):
        saved = out[idx]
        if saved <= NEGLIGIBLE_DEG:
            out[idx] = 0.0
            continue
        out[idx] = 0.0
        if objective(out) > bound:
            out[idx] = saved
    return out


def polish(objective: DegreeObjective, degrees: np.ndarray, tolerance: float, max_iterations: int) -> np.ndarray:
    """
    Second, tighter simplex run restricted to the axes still in use.
    """
    active = np.flatnonzero(degrees > NEGLIGIBLE_DEG)
    if active.size == 0:
        return degrees

    base = degrees.copy()

    def sub(values: np.ndarray) -> float:
        full = base.copy()
        full[active] = values
        return objective(full)

    x, f, _ = nelder_mead(
        sub,
        base[active],
        objective.limits[active],
        tolerance=max(tolerance * 1e-3, 1e-12),
        max_iterations=max_iterations * 3,
        scale=POLISH_SCALE,
    )
    if f < objective(base):
        base[active] = x
    return base


def collect_entries(candidates: Sequence[Candidate], degrees: np.ndarray) -> list[Entry]:
    out: list[Entry] = []
    for (action, direction, rule), d in zip(candidates, degrees):
        d = min(max(float(d), 0.0), rule.limit)
        if d > NEGLIGIBLE_DEG:
            out.append((action, direction, d))
    return out


def cancel_opposing(entries: Sequence[Entry]) -> list[Entry]:
    """
    Collapse forward+backward (or left+right) of one action into a single net
    rotation in the larger direction: net = |d1 - d2|. Order is preserved, the
    net entry takes the slot of the direction that won.
    """
    out = list(entries)
    for dir1, dir2 in OPPOSING_PAIRS:
        actions = list(dict.fromkeys(a for a, _, _ in out))
        for action in actions:
            i1 = next((i for i, e in enumerate(out) if e[0] == action and e[1] == dir1), None)
            i2 = next((i for i, e in enumerate(out) if e[0] == action and e[1] == dir2), None)
            if i1 is None or i2 is None:
                continue
            d1, d2 = out[i1][2], out[i2][2]
            net = abs(d1 - d2)
            keep, drop = (i1, i2) if d1 > d2 else (i2, i1)
            if net > NEGLIGIBLE_DEG:
                out[keep] = (action, out[keep][1], net)
                del out[drop]
            else:
                for i in sorted((i1, i2), reverse=True):
                    del out[i]
    return out


def residual_of(statements: Sequence[Statement], target: Quat, table: Optional[RuleTable] = None) -> float:
    q = IDENTITY
    for s in statements:
        q = q_mul(q, statement_quat(s, table))
    return q_distance(q, target)


def prune_statements(
    statements: Sequence[Statement],
    target: Quat,
    bound: float,
    table: Optional[RuleTable] = None,
) -> list[Statement]:
    """
    Drop statements (smallest first) whose removal keeps the distance within bound.
    Composition order of the survivors is unchanged.
    """
    current = list(statements)
    changed = True
    while changed and current:
        changed = False
        for s in sorted(current, key=lambda s: s.degrees):
            trial = [t for t in current if t is not s]
            if residual_of(trial, target, table) <= bound:
                current = trial
                changed = True
                break
    return current


def snap_degrees(
    statements: Sequence[Statement],
    target: Quat,
    tolerance: float,
    table: Optional[RuleTable] = None,
) -> list[Statement]:
    """
    Round to 0.1 degree when the snapped pose is still within tolerance.
    """
    snapped = [
        Statement(s.bone, s.action, s.direction, round(s.degrees, 1))
        for s in statements
        if round(s.degrees, 1) > 0.0
    ]
    if residual_of(snapped, target, table) <= tolerance:
        return snapped
    return list(statements)


def single_axis_match(candidates: Sequence[Candidate], target: Quat, tolerance: float) -> Optional[Entry]:
    """
    A target that is a pure rotation about one rule axis needs no search.
    The opposite direction's rule has the flipped axis, so it matches on its own.
    """
    axis, deg = q_to_axis_angle(target)
    if deg <= NEGLIGIBLE_DEG:
        return None
    for action, direction, rule in candidates:
        if v3_dot(axis, v3_normalize(rule.axis)) <= AXIS_MATCH:
            continue
        if deg > rule.limit:
            continue
        if q_distance(q_from_axis_angle(rule.axis, deg), target) <= tolerance:
            return (action, direction, deg)
    return None


def _to_statements(bone: str, entries: Sequence[Entry]) -> list[Statement]:
    return [Statement(bone, a, d, round(deg, 3)) for a, d, deg in entries if round(deg, 3) > 0.0]


def decompose(
    bone: str,
    target: Quat,
    tolerance: Optional[float] = None,
    *,
    rng: Optional[np.random.Generator] = None,
    seed: Optional[int] = None,
    config: Optional[CompilerConfig] = None,
    table: Optional[RuleTable] = None,
    logger=None,
) -> Decomposition:
    """
    Best-effort inverse of statement synthesis for one bone. Never raises for
    user data: an unknown bone or an unreachable target still returns a result
    with its residual distance.

    Randomness comes only from rng (or a generator seeded with seed, falling
    back to config.random_seed), so equal inputs give equal statements.
    """
    cfg = config or default_config()
    tol = float(tolerance) if tolerance is not None else cfg.decompile_tolerance
    table = table or get_rule_table()
    target = q_norm(tuple(float(c) for c in target))

    key = table.bone_for_name(bone) or bone
    candidates = table.rules_for(key)
    base = q_distance(IDENTITY, target)

    if not candidates or base <= tol:
        if logger and not candidates:
            logger.warning("Decompose: bone '%s' has no rules; residual %.6g", bone, base)
        return Decomposition(bone=key, statements=(), residual=base, tolerance=tol)

    hit = single_axis_match(candidates, target, tol)
    if hit is not None:
        stmts = snap_degrees(_to_statements(key, [hit]), target, tol, table)
        res = residual_of(stmts, target, table)
        if logger:
            logger.info("Decompose %s: single-axis match, residual %.6g", key, res)
        return Decomposition(bone=key, statements=tuple(stmts), residual=res, tolerance=tol)

    objective = DegreeObjective(candidates, target)
    if rng is None:
        rng = np.random.default_rng(seed if seed is not None else cfg.random_seed)
    starts = start_points(objective.limits, rng, cfg.extra_random_starts)

    best = multi_start_search(
        objective,
        starts,
        tolerance=tol,
        max_iterations=cfg.max_iterations,
        workers=cfg.workers,
    )

    degrees = sparsify(objective, best.degrees, max(tol, best.distance))
    degrees = polish(objective, degrees, tol, cfg.max_iterations)

    entries = cancel_opposing(collect_entries(candidates, degrees))
    stmts = _to_statements(key, entries)
    stmts = prune_statements(stmts, target, max(tol, residual_of(stmts, target, table)), table)
    stmts = snap_degrees(stmts, target, tol, table)
    res = residual_of(stmts, target, table)

    if logger:
        logger.info(
            "Decompose %s: %d statements, residual %.6g (search %.6g from start %d)",
            key, len(stmts), res, best.distance, best.start_index,
        )
    return Decomposition(bone=key, statements=tuple(stmts), residual=res, tolerance=tol)


def decompose_pose(
    rotations: Mapping[str, Quat],
    tolerance: Optional[float] = None,
    *,
    seed: Optional[int] = None,
    config: Optional[CompilerConfig] = None,
    table: Optional[RuleTable] = None,
    logger=None,
) -> list[Decomposition]:
    """
    Decompose every bone of a pose. Keys may be bone keys or MMD bone names;
    unknown bones are skipped. One generator is shared across bones in order.
    """
    cfg = config or default_config()
    table = table or get_rule_table()
    rng = np.random.default_rng(seed if seed is not None else cfg.random_seed)

    out: list[Decomposition] = []
    for name, q in rotations.items():
        key = table.bone_for_name(name)
        if key is None:
            if logger:
                logger.warning("Skipping unknown bone '%s'", name)
            continue
        out.append(decompose(key, q, tolerance, rng=rng, config=cfg, table=table, logger=logger))
    return out
