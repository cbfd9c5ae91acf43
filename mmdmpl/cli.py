from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from .api import compile_script, decompile
from .config import CompilerConfig, default_config, load_config
from .errors import CompileError, MplError
from .rules import get_rule_table
from .types import FrameStream
from .vmd import write_vmd


def _setup_logger(log_path: Path) -> logging.Logger:
    log_path.parent.mkdir(parents=True, exist_ok=True)
    logger = logging.getLogger("mmdmpl")
    logger.setLevel(logging.INFO)
    if not logger.handlers:
        fh = logging.FileHandler(log_path, encoding="utf-8")
        fh.setLevel(logging.INFO)
        fmt = logging.Formatter("%(asctime)s %(levelname)s %(message)s")
        fh.setFormatter(fmt)
        logger.addHandler(fh)
    return logger


def stream_to_json(stream: FrameStream) -> dict:
    return {
        "fps": stream.fps,
        "duration": stream.duration,
        "keyframes": [
            {
                "time": kf.time,
                "frame": kf.frame,
                "bones": [
                    {
                        "bone": bf.bone,
                        "name": bf.display_name,
                        "rotation": list(bf.rotation),
                        "position": list(bf.position) if bf.position is not None else None,
                    }
                    for bf in kf.bones
                ],
            }
            for kf in stream.keyframes
        ],
    }


def _cmd_compile(args, cfg: CompilerConfig, logger: logging.Logger) -> int:
    src = Path(args.script)
    if not src.exists():
        print(f"[mmdmpl] script not found: {src}", file=sys.stderr)
        return 2
    text = src.read_text(encoding="utf-8")
    logger.info("Compiling %s", src)

    stream = compile_script(text, cfg, logger)

    if args.json:
        print(json.dumps(stream_to_json(stream), ensure_ascii=False, indent=2))

    if args.out or not args.json:
        out_path = Path(args.out) if args.out else src.with_suffix(".vmd")
        out_path.write_bytes(write_vmd(stream, cfg.model_name, logger))
        print(f"[mmdmpl] wrote: {out_path} ({stream.bone_frame_count} bone frames)", file=sys.stderr)
    return 0


def _cmd_decompile(args, cfg: CompilerConfig, logger: logging.Logger) -> int:
    q = (args.x, args.y, args.z, args.w)
    d = decompile(args.bone, q, args.tolerance, seed=args.seed, config=cfg, logger=logger)
    print(d.text)
    status = "ok" if d.converged else "approximate"
    print(f"[mmdmpl] residual={d.residual:.6g} tolerance={d.tolerance:g} ({status})", file=sys.stderr)
    return 0


def _cmd_bones(args, cfg: CompilerConfig, logger: logging.Logger) -> int:
    table = get_rule_table()
    for key in table.bones():
        print(f"{key}\t{table.display_name(key, 'ja')}")
    return 0


def _cmd_rules(args, cfg: CompilerConfig, logger: logging.Logger) -> int:
    table = get_rule_table()
    key = table.bone_for_name(args.bone)
    if key is None:
        print(f"[mmdmpl] unknown bone: {args.bone}", file=sys.stderr)
        return 2
    for action, direction, rule in table.rules_for(key):
        ax = ",".join(f"{c:g}" for c in rule.axis)
        print(f"{key} {action} {direction}\tmax={rule.limit:g}\taxis=({ax})")
    return 0


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="mmdmpl", description="MMD pose language compiler")
    ap.add_argument("--config", type=str, default="", help="JSON config file")
    sub = ap.add_subparsers(dest="command", required=True)

    p = sub.add_parser("compile", help="compile a script to VMD")
    p.add_argument("script", type=str)
    p.add_argument("-o", "--out", type=str, default="")
    p.add_argument("--json", action="store_true", help="print the frame stream as JSON")
    p.set_defaults(func=_cmd_compile)

    p = sub.add_parser("decompile", help="quaternion -> statements for one bone")
    p.add_argument("bone", type=str)
    p.add_argument("x", type=float)
    p.add_argument("y", type=float)
    p.add_argument("z", type=float)
    p.add_argument("w", type=float)
    p.add_argument("--tolerance", type=float, default=None)
    p.add_argument("--seed", type=int, default=None)
    p.set_defaults(func=_cmd_decompile)

    p = sub.add_parser("bones", help="list bones")
    p.set_defaults(func=_cmd_bones)

    p = sub.add_parser("rules", help="list actions and limits of a bone")
    p.add_argument("bone", type=str)
    p.set_defaults(func=_cmd_rules)

    return ap


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    if args.config:
        config_path = Path(args.config)
        if not config_path.exists():
            print(f"[mmdmpl] missing config: {config_path}", file=sys.stderr)
            return 2
        try:
            cfg = load_config(config_path)
        except (ValueError, json.JSONDecodeError) as e:
            print(f"[mmdmpl] bad config: {e}", file=sys.stderr)
            return 2
    else:
        cfg = default_config()

    logger = _setup_logger(cfg.log_path)

    try:
        return args.func(args, cfg, logger)
    except CompileError as e:
        print(e.report(), file=sys.stderr)
        return 1
    except MplError as e:
        print(f"{type(e).__name__}: {e}", file=sys.stderr)
        return 1
