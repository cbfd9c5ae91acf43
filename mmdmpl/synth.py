from __future__ import annotations

from typing import Iterable, Optional

from .parser import make_statement
from .quat import q_from_axis_angle, q_mul
from .rules import RuleTable, get_rule_table
from .types import IDENTITY, Quat, Statement


def statement_quat(stmt: Statement, table: Optional[RuleTable] = None) -> Quat:
    """
    Axis-angle quaternion of one validated statement.
    A zero rule axis raises InternalInvariantError (corrupted table).
    """
    table = table or get_rule_table()
    rule = table.rule(stmt.bone, stmt.action, stmt.direction)
    if rule is None:
        # statements only come from make_statement, so this is a stale/foreign table
        raise KeyError(f"No rule for {stmt.bone} {stmt.action} {stmt.direction}")
    return q_from_axis_angle(rule.axis, stmt.degrees)


def synthesize(bone: str, action: str, direction: str, degrees: float, table: Optional[RuleTable] = None) -> Quat:
    stmt = make_statement(bone, action, direction, float(degrees), table=table)
    return statement_quat(stmt, table)


def compose(statements: Iterable[Statement], table: Optional[RuleTable] = None) -> dict[str, Quat]:
    """
    bone -> composed rotation, multiplying each bone's statements left-to-right
    in the order written. Bones keep first-touch order.
    """
    out: dict[str, Quat] = {}
    for stmt in statements:
        q = statement_quat(stmt, table)
        out[stmt.bone] = q_mul(out.get(stmt.bone, IDENTITY), q)
    return out


def bone_rotation(statements: Iterable[Statement], bone: str, table: Optional[RuleTable] = None) -> Quat:
    return compose((s for s in statements if s.bone == bone), table).get(bone, IDENTITY)
