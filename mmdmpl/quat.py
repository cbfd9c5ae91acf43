#quat.py
from __future__ import annotations

import math
from typing import Iterable

from .errors import InternalInvariantError
from .types import IDENTITY, Quat, Vec3


def _clamp(x: float, lo: float, hi: float) -> float:
    return lo if x < lo else hi if x > hi else x


def v3_len(a: Vec3) -> float:
    return math.sqrt(a[0] * a[0] + a[1] * a[1] + a[2] * a[2])


def v3_dot(a: Vec3, b: Vec3) -> float:
    return a[0] * b[0] + a[1] * b[1] + a[2] * b[2]


def v3_normalize(a: Vec3) -> Vec3:
    n = v3_len(a)
    if n <= 0.0:
        raise InternalInvariantError(f"Zero-length rotation axis {a!r}")
    inv = 1.0 / n
    return (a[0] * inv, a[1] * inv, a[2] * inv)


def q_dot(a: Quat, b: Quat) -> float:
    return a[0]*b[0] + a[1]*b[1] + a[2]*b[2] + a[3]*b[3]


def q_norm(q: Quat) -> Quat:
    n = math.sqrt(q_dot(q, q))
    if n <= 0.0:
        return IDENTITY
    inv = 1.0 / n
    return (q[0]*inv, q[1]*inv, q[2]*inv, q[3]*inv)


def q_neg(q: Quat) -> Quat:
    return (-q[0], -q[1], -q[2], -q[3])


def q_mul(a: Quat, b: Quat) -> Quat:
    """
    Hamilton product a*b, (x,y,z,w) layout. Not commutative.
    """
    ax, ay, az, aw = a
    bx, by, bz, bw = b
    return (
        aw * bx + ax * bw + ay * bz - az * by,
        aw * by - ax * bz + ay * bw + az * bx,
        aw * bz + ax * by - ay * bx + az * bw,
        aw * bw - ax * bx - ay * by - az * bz,
    )


def q_chain(quats: Iterable[Quat]) -> Quat:
    out = IDENTITY
    for q in quats:
        out = q_mul(out, q)
    return out


def q_from_axis_angle(axis: Vec3, degrees: float) -> Quat:
    n = v3_normalize(axis)
    half = math.radians(degrees) / 2.0
    s = math.sin(half)
    return (n[0] * s, n[1] * s, n[2] * s, math.cos(half))


def q_distance(q: Quat, target: Quat) -> float:
    """
    0 = same rotation, 1 = maximally opposed. Sign-invariant (q and -q are one rotation).
    """
    d1 = q_dot(q, target)
    d2 = q_dot(q, q_neg(target))
    return 1.0 - max(abs(d1), abs(d2))


def q_angle_deg(a: Quat, b: Quat) -> float:
    """
    Angle between quaternions in degrees, sign-invariant.
    """
    d = abs(q_dot(q_norm(a), q_norm(b)))
    return math.degrees(2.0 * math.acos(_clamp(d, 0.0, 1.0)))


def q_to_axis_angle(q: Quat) -> tuple[Vec3, float]:
    """
    Returns (unit axis, degrees in [0, 180]). Identity gives ((0,0,0), 0).
    """
    x, y, z, w = q_norm(q)
    if w < 0.0:
        x, y, z, w = -x, -y, -z, -w
    s = math.sqrt(max(0.0, 1.0 - w * w))
    if s < 1e-9:
        return (0.0, 0.0, 0.0), 0.0
    deg = math.degrees(2.0 * math.acos(_clamp(w, -1.0, 1.0)))
    return (x / s, y / s, z / s), deg


def q_close(a: Quat, b: Quat, tol: float = 1e-9) -> bool:
    return q_distance(a, b) <= tol
