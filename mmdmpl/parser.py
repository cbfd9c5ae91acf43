# mmdmpl/parser.py
from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import Optional

from .errors import (
    CompileError,
    DegreeRangeError,
    DuplicateNameError,
    MplError,
    MplSyntaxError,
    TimelineOrderError,
    UnknownActionError,
    UnknownBoneError,
    UnknownDirectionError,
    UnresolvedReferenceError,
)
from .rules import ACTIONS, DIRECTIONS, RuleTable, get_rule_table
from .types import Animation, AnimationEntry, Pose, Script, Statement


BLOCK_HEAD_RE = re.compile(
    r"(?P<kw>@pose\b|@animation\b|\bmain\b)(?P<rest>[^{;}]*)\{",
    re.I,
)
NAME_RE = re.compile(r"^[A-Za-z_][\w\-]*$")
# "<timestamp>: pose_a & pose_b"
ENTRY_RE = re.compile(r"^\s*(?P<ts>[^:\s]+)\s*:\s*(?P<refs>.*?)\s*$", re.S)


@dataclass
class _Fragment:
    text: str
    line: int


@dataclass
class _State:
    table: RuleTable
    errors: list[MplError] = field(default_factory=list)


def _line_at(text: str, index: int) -> int:
    return text.count("\n", 0, index) + 1


def _extract_balanced_block(text: str, open_brace_index: int) -> tuple[str, int]:
    """
    Given an index pointing at a '{', return (inner_text, end_index_exclusive).
    Nested braces are rejected; blocks never nest in MPL.
    """
    if open_brace_index < 0 or open_brace_index >= len(text) or text[open_brace_index] != "{":
        raise ValueError("open_brace_index must point at '{'")
    i = open_brace_index + 1
    while i < len(text):
        c = text[i]
        if c == "{":
            raise MplSyntaxError("Nested block is not allowed", line=_line_at(text, i), token="{")
        if c == "}":
            return text[open_brace_index + 1 : i], i + 1
        i += 1
    raise MplSyntaxError("Unclosed block", line=_line_at(text, open_brace_index), token="{")


def _split_statements(body: str, first_line: int, *, require_terminator: bool) -> list[_Fragment]:
    """
    Split on ';' (and newlines when terminators are optional), keeping source line numbers.
    """
    out: list[_Fragment] = []
    seps = ";" if require_terminator else ";\n"
    start = 0
    line = first_line
    for i, c in enumerate(body):
        if c in seps:
            chunk = body[start:i]
            stripped = chunk.strip()
            if stripped:
                lead = len(chunk) - len(chunk.lstrip())
                out.append(_Fragment(stripped, line + chunk.count("\n", 0, lead)))
            line += chunk.count("\n") + (1 if c == "\n" else 0)
            start = i + 1
    tail = body[start:]
    stripped = tail.strip()
    if stripped:
        lead = len(tail) - len(tail.lstrip())
        ln = line + tail.count("\n", 0, lead)
        if require_terminator:
            raise MplSyntaxError("Statement must end with ';'", line=ln, statement=stripped)
        out.append(_Fragment(stripped, ln))
    return out


def _parse_degrees(token: str) -> Optional[float]:
    try:
        v = float(token)
    except ValueError:
        return None
    if math.isnan(v) or math.isinf(v):
        return None
    return v


def make_statement(
    bone: str,
    action: str,
    direction: str,
    degrees: object,
    *,
    table: Optional[RuleTable] = None,
    line: Optional[int] = None,
    text: Optional[str] = None,
) -> Statement:
    """
    Validate one (bone, action, direction, degrees) tuple in the fixed order
    bone -> action -> direction -> degrees and build the Statement.
    """
    table = table or get_rule_table()
    bone_l = bone.lower()
    action_l = action.lower()
    direction_l = direction.lower()
    src = text if text is not None else f"{bone} {action} {direction} {degrees}"

    if table.bone(bone_l) is None:
        raise UnknownBoneError(f"Unknown bone '{bone}'", line=line, statement=src, token=bone)

    legal_actions = table.actions(bone_l) or []
    if action_l not in ACTIONS:
        raise UnknownActionError(f"Unknown action '{action}'", line=line, statement=src, token=action)
    if action_l not in legal_actions:
        raise UnknownActionError(
            f"Action '{action_l}' is not available for bone '{bone_l}' (allowed: {', '.join(legal_actions)})",
            line=line, statement=src, token=action,
        )

    legal_dirs = table.directions(bone_l, action_l) or []
    if direction_l not in DIRECTIONS:
        raise UnknownDirectionError(f"Unknown direction '{direction}'", line=line, statement=src, token=direction)
    if direction_l not in legal_dirs:
        raise UnknownDirectionError(
            f"Direction '{direction_l}' is not available for {bone_l} {action_l} (allowed: {', '.join(legal_dirs)})",
            line=line, statement=src, token=direction,
        )

    rule = table.rule(bone_l, action_l, direction_l)
    assert rule is not None

    deg = degrees if isinstance(degrees, float) else _parse_degrees(str(degrees))
    if deg is None or math.isnan(deg) or math.isinf(deg):
        raise DegreeRangeError(f"Invalid degrees number '{degrees}'", line=line, statement=src, token=str(degrees))
    if deg < 0.0 or deg > rule.limit:
        raise DegreeRangeError(
            f"Degrees must be within [0, {rule.limit:g}] for {bone_l} {action_l} {direction_l}, got {deg:g}",
            line=line, statement=src, token=str(degrees),
        )

    return Statement(bone=bone_l, action=action_l, direction=direction_l, degrees=deg, line=line)


def parse_statement(text: str, *, table: Optional[RuleTable] = None, line: Optional[int] = None) -> Statement:
    parts = text.split()
    if len(parts) != 4:
        raise MplSyntaxError(
            f"Expected 4 tokens '<bone> <action> <direction> <degrees>', got {len(parts)}",
            line=line, statement=text.strip(),
        )
    return make_statement(parts[0], parts[1], parts[2], parts[3], table=table, line=line, text=text.strip())


def _collect_statements(frags: list[_Fragment], st: _State) -> list[Statement]:
    out: list[Statement] = []
    for f in frags:
        try:
            out.append(parse_statement(f.text, table=st.table, line=f.line))
        except MplError as e:
            st.errors.append(e)
    return out


def _block_name(kind: str, rest: str, line: int) -> str:
    parts = rest.split()
    if not parts:
        raise MplSyntaxError(f"Missing {kind} name", line=line)
    if len(parts) > 1 or not NAME_RE.match(parts[0]):
        raise MplSyntaxError(f"Invalid {kind} name '{rest.strip()}'", line=line, token=rest.strip())
    return parts[0]


def _parse_pose_block(name: str, body: str, body_line: int, head_line: int, st: _State) -> Optional[Pose]:
    frags = _split_statements(body, body_line, require_terminator=True)
    if not frags:
        st.errors.append(MplSyntaxError(f"Pose '{name}' must contain at least one statement", line=head_line))
        return None
    stmts = _collect_statements(frags, st)
    return Pose(name=name, statements=tuple(stmts), line=head_line)


def _parse_entry(frag: _Fragment) -> AnimationEntry:
    m = ENTRY_RE.match(frag.text)
    if not m:
        raise MplSyntaxError(
            "Animation entry must look like '<seconds>: <pose>[ & <pose> ...]'",
            line=frag.line, statement=frag.text,
        )
    ts_tok = m.group("ts")
    ts = _parse_degrees(ts_tok)
    if ts is None or ts < 0.0:
        raise MplSyntaxError(
            f"Timestamp must be a non-negative number of seconds, got '{ts_tok}'",
            line=frag.line, statement=frag.text, token=ts_tok,
        )
    refs = [r.strip() for r in m.group("refs").split("&")]
    if not refs or any(not r for r in refs):
        raise MplSyntaxError("Empty pose reference", line=frag.line, statement=frag.text)
    for r in refs:
        if not NAME_RE.match(r):
            raise MplSyntaxError(f"Invalid pose reference '{r}'", line=frag.line, statement=frag.text, token=r)
    return AnimationEntry(timestamp=ts, poses=tuple(refs), line=frag.line)


def _parse_animation_block(name: str, body: str, body_line: int, head_line: int, st: _State) -> Optional[Animation]:
    frags = _split_statements(body, body_line, require_terminator=True)
    if not frags:
        st.errors.append(MplSyntaxError(f"Animation '{name}' must contain at least one entry", line=head_line))
        return None

    entries: list[AnimationEntry] = []
    for f in frags:
        try:
            entry = _parse_entry(f)
        except MplError as e:
            st.errors.append(e)
            continue
        if entries and entry.timestamp <= entries[-1].timestamp:
            st.errors.append(
                TimelineOrderError(
                    f"Timestamps must be strictly increasing in animation '{name}' "
                    f"({entry.timestamp:g} after {entries[-1].timestamp:g})",
                    line=f.line, statement=f.text, token=f"{entry.timestamp:g}",
                )
            )
            continue
        entries.append(entry)
    return Animation(name=name, entries=tuple(entries), line=head_line)


def _parse_main_block(body: str, body_line: int, head_line: int, st: _State) -> tuple[str, ...]:
    frags = _split_statements(body, body_line, require_terminator=True)
    if not frags:
        st.errors.append(MplSyntaxError("Main block must contain at least one reference", line=head_line))
        return ()
    out: list[str] = []
    for f in frags:
        if not NAME_RE.match(f.text):
            st.errors.append(MplSyntaxError(f"Invalid reference '{f.text}'", line=f.line, statement=f.text))
            continue
        out.append(f.text)
    return tuple(out)


def _check_outside(text: str, start: int, end: int) -> None:
    gap = text[start:end]
    stripped = gap.strip()
    if not stripped:
        return
    lead = len(gap) - len(gap.lstrip())
    line = _line_at(text, start + lead)
    if "}" in stripped:
        raise MplSyntaxError("Unexpected closing brace", line=line, token="}")
    raise MplSyntaxError("Invalid text outside of block", line=line, statement=stripped.splitlines()[0])


def _resolve_references(
    script_poses: dict[str, Pose],
    anims: dict[str, Animation],
    main: tuple[str, ...],
    main_line: Optional[int],
    st: _State,
) -> None:
    for anim in anims.values():
        for entry in anim.entries:
            for ref in entry.poses:
                if ref not in script_poses:
                    st.errors.append(
                        UnresolvedReferenceError(
                            f"Animation '{anim.name}' references unknown pose '{ref}'",
                            line=entry.line, token=ref,
                        )
                    )
    for ref in main:
        if ref not in anims and ref not in script_poses:
            st.errors.append(
                UnresolvedReferenceError(f"Main references unknown animation or pose '{ref}'", line=main_line, token=ref)
            )


def _parse_blocks(text: str, st: _State) -> Script:
    poses: dict[str, Pose] = {}
    anims: dict[str, Animation] = {}
    main: Optional[tuple[str, ...]] = None
    main_line: Optional[int] = None

    pos = 0
    while True:
        m = BLOCK_HEAD_RE.search(text, pos)
        if not m:
            _check_outside(text, pos, len(text))
            break
        _check_outside(text, pos, m.start())

        kw = m.group("kw").lower()
        head_line = _line_at(text, m.start())
        brace = m.end() - 1
        body, end = _extract_balanced_block(text, brace)
        body_line = _line_at(text, brace)
        pos = end

        try:
            if kw == "main":
                if m.group("rest").strip():
                    raise MplSyntaxError("Main block takes no name", line=head_line, token=m.group("rest").strip())
                if main is not None:
                    raise DuplicateNameError("Duplicate main block", line=head_line)
                main = _parse_main_block(body, body_line, head_line, st)
                main_line = head_line
                continue

            kind = "pose" if kw == "@pose" else "animation"
            name = _block_name(kind, m.group("rest"), head_line)
            if name in poses or name in anims:
                raise DuplicateNameError(f"Name '{name}' is already declared", line=head_line, token=name)

            if kind == "pose":
                pose = _parse_pose_block(name, body, body_line, head_line, st)
                if pose is not None:
                    poses[name] = pose
            else:
                anim = _parse_animation_block(name, body, body_line, head_line, st)
                if anim is not None:
                    anims[name] = anim
        except MplError as e:
            st.errors.append(e)

    if main is None:
        st.errors.append(MplSyntaxError("Script has no main block"))
        main = ()

    _resolve_references(poses, anims, main, main_line, st)
    return Script(poses=poses, animations=anims, main=main, flat=False)


def is_block_script(text: str) -> bool:
    return BLOCK_HEAD_RE.search(text) is not None or "{" in text or "}" in text


def parse_script(text: str, *, table: Optional[RuleTable] = None) -> Script:
    """
    Parse either a flat statement list or a block script (@pose / @animation / main).
    Any problem rejects the whole input with one CompileError listing every failure.
    """
    st = _State(table=table or get_rule_table())

    if not is_block_script(text):
        frags = _split_statements(text, 1, require_terminator=False)
        if not frags:
            raise CompileError([MplSyntaxError("Empty script")])
        stmts = _collect_statements(frags, st)
        if st.errors:
            raise CompileError(st.errors)
        pose = Pose(name="", statements=tuple(stmts), line=1)
        return Script(poses={"": pose}, animations={}, main=("",), flat=True)

    try:
        script = _parse_blocks(text, st)
    except MplSyntaxError as e:
        # structural errors (unbalanced braces) stop the scan
        st.errors.append(e)
        raise CompileError(st.errors) from e

    if st.errors:
        raise CompileError(st.errors)
    return script
