from __future__ import annotations

from functools import lru_cache
from types import MappingProxyType
from typing import Mapping, Optional

from .types import ActionRule, BoneInfo


ACTIONS = ("bend", "turn", "sway")
DIRECTIONS = ("forward", "backward", "left", "right")
OPPOSING_PAIRS = (("forward", "backward"), ("left", "right"))

LOCALES = ("en", "ja")


def _r(x: float, y: float, z: float, limit: float) -> ActionRule:
    return ActionRule(axis=(float(x), float(y), float(z)), limit=float(limit))


def _trunk(bend_f: float, bend_b: float, turn: float, sway: float) -> dict:
    return {
        "bend": {"forward": _r(-1, 0, 0, bend_f), "backward": _r(1, 0, 0, bend_b)},
        "turn": {"left": _r(0, -1, 0, turn), "right": _r(0, 1, 0, turn)},
        "sway": {"left": _r(0, 0, -1, sway), "right": _r(0, 0, 1, sway)},
    }


def _twist() -> dict:
    return {"turn": {"left": _r(0, -1, 0, 90), "right": _r(0, 1, 0, 90)}}


def _finger_l(sway_limit: Optional[float] = None) -> dict:
    out = {"bend": {"forward": _r(0, 0, -1, 90), "backward": _r(0, 0, 1, 15)}}
    if sway_limit is not None:
        out["sway"] = {"left": _r(-1, 0, 0, sway_limit), "right": _r(1, 0, 0, sway_limit)}
    return out


def _finger_r(sway_limit: Optional[float] = None) -> dict:
    out = {"bend": {"forward": _r(0, 0, 1, 90), "backward": _r(0, 0, -1, 15)}}
    if sway_limit is not None:
        out["sway"] = {"left": _r(1, 0, 0, sway_limit), "right": _r(-1, 0, 0, sway_limit)}
    return out


def _thumb_l(with_sway: bool = False) -> dict:
    out = {"bend": {"forward": _r(-1, -1, 0, 90), "backward": _r(1, 1, 0, 15)}}
    if with_sway:
        out["sway"] = {"left": _r(0, 0, 1, 45), "right": _r(0, 0, -1, 45)}
    return out


def _thumb_r(with_sway: bool = False) -> dict:
    out = {"bend": {"forward": _r(-1, 1, 0, 90), "backward": _r(1, -1, 0, 15)}}
    if with_sway:
        out["sway"] = {"left": _r(0, 0, 1, 45), "right": _r(0, 0, -1, 45)}
    return out


# bone -> action -> direction -> rule, in enumeration order
_BONE_RULES: dict[str, dict[str, dict[str, ActionRule]]] = {
    "base": _trunk(90, 90, 180, 180),
    "center": _trunk(180, 180, 180, 180),
    "upper_body": _trunk(45, 45, 45, 45),
    "upper_body2": _trunk(45, 45, 45, 45),
    "lower_body": _trunk(45, 45, 45, 45),
    "waist": _trunk(90, 90, 45, 30),
    "neck": _trunk(45, 60, 75, 30),
    "head": _trunk(60, 90, 90, 30),

    "shoulder_l": {
        "bend": {"forward": _r(0, 0, -1, 90), "backward": _r(0, 0, 1, 90)},
        "sway": {"left": _r(0, -1, 0, 90), "right": _r(0, 1, 0, 90)},
    },
    "shoulder_r": {
        "bend": {"forward": _r(0, 0, 1, 90), "backward": _r(0, 0, -1, 90)},
        "sway": {"left": _r(0, 1, 0, 90), "right": _r(0, -1, 0, 90)},
    },
    "arm_l": {
        "bend": {"forward": _r(0, 0, -1, 90), "backward": _r(0, 0, 1, 90)},
        "sway": {"left": _r(0, -1, 0, 90), "right": _r(0, 1, 0, 90)},
    },
    "arm_r": {
        "bend": {"forward": _r(0, 0, 1, 45), "backward": _r(0, 0, -1, 180)},
        "sway": {"left": _r(0, -1, 0, 90), "right": _r(0, 1, 0, 90)},
    },
    "arm_twist_l": _twist(),
    "arm_twist_r": _twist(),
    "elbow_l": {"bend": {"forward": _r(1, 1, 0, 135)}},
    "elbow_r": {"bend": {"forward": _r(1, -1, 0, 135)}},
    "wrist_l": {
        "bend": {"forward": _r(0, 0, -1, 60), "backward": _r(1, 0, -1, 30)},
        "sway": {"left": _r(-1, 1, 0, 15), "right": _r(1, 1, 0, 15)},
    },
    "wrist_r": {
        "bend": {"forward": _r(0, 0, 1, 60), "backward": _r(-1, 0, -1, 30)},
        "sway": {"left": _r(-1, -1, 0, 15), "right": _r(1, -1, 0, 15)},
    },
    "wrist_twist_l": _twist(),
    "wrist_twist_r": _twist(),

    "leg_l": {
        "bend": {"forward": _r(1, 0, 0, 90), "backward": _r(-1, 0, 0, 90)},
        "turn": {"left": _r(0, -1, 0, 90), "right": _r(0, 1, 0, 90)},
        "sway": {"left": _r(0, 0, 1, 180), "right": _r(0, 0, -1, 30)},
    },
    "leg_r": {
        "bend": {"forward": _r(1, 0, 0, 90), "backward": _r(-1, 0, 0, 90)},
        "turn": {"left": _r(0, -1, 0, 90), "right": _r(0, 1, 0, 90)},
        "sway": {"left": _r(0, 0, 1, 30), "right": _r(0, 0, -1, 180)},
    },
    "knee_l": {"bend": {"backward": _r(-1, 0, 0, 135)}},
    "knee_r": {"bend": {"backward": _r(-1, 0, 0, 135)}},
    "ankle_l": {
        "bend": {"forward": _r(-1, 0, 0, 60), "backward": _r(1, 0, 0, 60)},
        "turn": {"left": _r(0, -1, 0, 90), "right": _r(0, 1, 0, 90)},
        "sway": {"left": _r(0, 0, 1, 30), "right": _r(0, 0, -1, 30)},
    },
    "ankle_r": {
        "bend": {"forward": _r(-1, 0, 0, 60), "backward": _r(1, 0, 0, 60)},
        "turn": {"left": _r(0, -1, 0, 90), "right": _r(0, 1, 0, 90)},
        "sway": {"left": _r(0, 0, 1, 30), "right": _r(0, 0, -1, 30)},
    },
    "toe_l": {"bend": {"forward": _r(-1, 0, 0, 30), "backward": _r(1, 0, 0, 30)}},
    "toe_r": {"bend": {"forward": _r(-1, 0, 0, 30), "backward": _r(1, 0, 0, 30)}},

    "thumb_0_l": _thumb_l(with_sway=True),
    "thumb_1_l": _thumb_l(),
    "thumb_2_l": _thumb_l(),
    "index_0_l": _finger_l(sway_limit=15),
    "index_1_l": _finger_l(),
    "index_2_l": _finger_l(),
    "middle_0_l": _finger_l(sway_limit=45),
    "middle_1_l": _finger_l(),
    "middle_2_l": _finger_l(),
    "ring_0_l": _finger_l(sway_limit=45),
    "ring_1_l": _finger_l(),
    "ring_2_l": _finger_l(),
    "pinky_0_l": _finger_l(sway_limit=45),
    "pinky_1_l": _finger_l(),
    "pinky_2_l": _finger_l(),

    "thumb_0_r": _thumb_r(with_sway=True),
    "thumb_1_r": _thumb_r(),
    "thumb_2_r": _thumb_r(),
    "index_0_r": _finger_r(sway_limit=15),
    "index_1_r": _finger_r(),
    "index_2_r": _finger_r(),
    "middle_0_r": _finger_r(sway_limit=45),
    "middle_1_r": _finger_r(),
    "middle_2_r": _finger_r(),
    "ring_0_r": _finger_r(sway_limit=45),
    "ring_1_r": _finger_r(),
    "ring_2_r": _finger_r(),
    "pinky_0_r": _finger_r(sway_limit=45),
    "pinky_1_r": _finger_r(),
    "pinky_2_r": _finger_r(),
}

# English key -> MMD (Japanese) bone name; the VMD stream identifies bones by these
_BONE_NAMES_JA: dict[str, str] = {
    "base": "全ての親",
    "center": "センター",
    "upper_body": "上半身",
    "upper_body2": "上半身2",
    "lower_body": "下半身",
    "waist": "腰",
    "neck": "首",
    "head": "頭",
    "shoulder_l": "左肩",
    "shoulder_r": "右肩",
    "arm_l": "左腕",
    "arm_r": "右腕",
    "arm_twist_l": "左腕捩",
    "arm_twist_r": "右腕捩",
    "elbow_l": "左ひじ",
    "elbow_r": "右ひじ",
    "wrist_l": "左手首",
    "wrist_r": "右手首",
    "wrist_twist_l": "左手捩",
    "wrist_twist_r": "右手捩",
    "leg_l": "左足",
    "leg_r": "右足",
    "knee_l": "左ひざ",
    "knee_r": "右ひざ",
    "ankle_l": "左足首",
    "ankle_r": "右足首",
    "toe_l": "左足先EX",
    "toe_r": "右足先EX",
    "thumb_0_l": "左親指０",
    "thumb_1_l": "左親指１",
    "thumb_2_l": "左親指２",
    "index_0_l": "左人指１",
    "index_1_l": "左人指２",
    "index_2_l": "左人指３",
    "middle_0_l": "左中指１",
    "middle_1_l": "左中指２",
    "middle_2_l": "左中指３",
    "ring_0_l": "左薬指１",
    "ring_1_l": "左薬指２",
    "ring_2_l": "左薬指３",
    "pinky_0_l": "左小指１",
    "pinky_1_l": "左小指２",
    "pinky_2_l": "左小指３",
    "thumb_0_r": "右親指０",
    "thumb_1_r": "右親指１",
    "thumb_2_r": "右親指２",
    "index_0_r": "右人指１",
    "index_1_r": "右人指２",
    "index_2_r": "右人指３",
    "middle_0_r": "右中指１",
    "middle_1_r": "右中指２",
    "middle_2_r": "右中指３",
    "ring_0_r": "右薬指１",
    "ring_1_r": "右薬指２",
    "ring_2_r": "右薬指３",
    "pinky_0_r": "右小指１",
    "pinky_1_r": "右小指２",
    "pinky_2_r": "右小指３",
}


class RuleTable:
    """
    Read-only bone -> action -> direction -> ActionRule lookup.
    Every query returns None for an unknown key, never a default.
    """

    def __init__(
        self,
        rules: Mapping[str, Mapping[str, Mapping[str, ActionRule]]],
        names_ja: Mapping[str, str],
    ) -> None:
        bones: dict[str, BoneInfo] = {}
        for key, actions in rules.items():
            frozen_actions = MappingProxyType(
                {a: MappingProxyType(dict(dirs)) for a, dirs in actions.items()}
            )
            bones[key] = BoneInfo(
                key=key,
                name_en=key,
                name_ja=names_ja.get(key, key),
                actions=frozen_actions,
            )
        self._bones: Mapping[str, BoneInfo] = MappingProxyType(bones)
        self._key_by_ja: Mapping[str, str] = MappingProxyType(
            {info.name_ja: key for key, info in bones.items()}
        )

    def bones(self) -> list[str]:
        return list(self._bones.keys())

    def bone(self, bone: str) -> Optional[BoneInfo]:
        return self._bones.get(bone)

    def actions(self, bone: str) -> Optional[list[str]]:
        info = self._bones.get(bone)
        if info is None:
            return None
        return list(info.actions.keys())

    def directions(self, bone: str, action: str) -> Optional[list[str]]:
        info = self._bones.get(bone)
        if info is None:
            return None
        dirs = info.actions.get(action)
        if dirs is None:
            return None
        return list(dirs.keys())

    def rule(self, bone: str, action: str, direction: str) -> Optional[ActionRule]:
        info = self._bones.get(bone)
        if info is None:
            return None
        dirs = info.actions.get(action)
        if dirs is None:
            return None
        return dirs.get(direction)

    def rules_for(self, bone: str) -> list[tuple[str, str, ActionRule]]:
        """
        All (action, direction, rule) triples of a bone in table order.
        This order is also the composition order the decomposer optimises in.
        """
        info = self._bones.get(bone)
        if info is None:
            return []
        out: list[tuple[str, str, ActionRule]] = []
        for action, dirs in info.actions.items():
            for direction, rule in dirs.items():
                out.append((action, direction, rule))
        return out

    def display_name(self, bone: str, locale: str = "ja") -> Optional[str]:
        info = self._bones.get(bone)
        if info is None:
            return None
        loc = locale.lower()
        if loc == "en":
            return info.name_en
        if loc == "ja":
            return info.name_ja
        return None

    def bone_for_name(self, name: str) -> Optional[str]:
        """Accepts an internal key (any case) or an MMD display name."""
        key = name.strip()
        if key.lower() in self._bones:
            return key.lower()
        return self._key_by_ja.get(key)


@lru_cache(maxsize=1)
def get_rule_table() -> RuleTable:
    return RuleTable(_BONE_RULES, _BONE_NAMES_JA)
