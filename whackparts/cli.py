from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Sequence

from core.config import Settings, get_settings
from core.errors import ArrangementFailed, Diagnostic, ScoreLoadError, Severity
from core.pipeline import Arrangement, arrange, run_arrangement
from core.score_load import load_score
from core.tubes import INVENTORIES, get_inventory


# exit codes (keep stable)
EXIT_OK = 0
EXIT_ARRANGEMENT_FAILED = 2
EXIT_PART_FAILED = 3
EXIT_BAD_ARGS = 5


def _print_err(msg: str) -> None:
    print(msg, file=sys.stderr)


def _print_diagnostics(diags: Sequence[Diagnostic]) -> None:
    for d in diags:
        tag = "ERROR" if d.severity == Severity.error else "WARN"
        _print_err(f"[{tag}] {d.kind.value}: {d.message}")
        for n in d.notes:
            where = f"voice {n.voice} note {n.index + 1}"
            if n.measure is not None:
                where += f" m.{n.measure}"
            _print_err(f"    {n.pitch:<4} beat {n.onset:g}-{n.onset + n.duration:g} ({where})")


def _add_engine_args(p: argparse.ArgumentParser) -> None:
    # None defaults: settings (env/.env) decide unless the flag is given
    p.add_argument("--inventory", choices=sorted(INVENTORIES), default=None, help="Tube set to arrange for")
    p.add_argument("--copies", type=int, default=None, help="Physical copies owned per tube")
    fold = p.add_mutually_exclusive_group()
    fold.add_argument("--fold-octaves", dest="fold_octaves", action="store_true", default=None,
                      help="Map out-of-range octaves onto the nearest tube of the same pitch class")
    fold.add_argument("--no-fold-octaves", dest="fold_octaves", action="store_false", default=None,
                      help="Treat out-of-range octaves as unsupported")
    p.add_argument("--policy", choices=["fail", "flag"], default=None,
                   help="fail: stop on tube conflicts; flag: emit anyway and mark conflicting notes")
    p.add_argument("--packing", choices=["span", "note"], default=None,
                   help="span: one tube span at a time per performer; note: interleave tubes per note")
    p.add_argument("--switch-gap", dest="switch_gap", type=float, default=None,
                   help="Beats a performer needs to switch tubes")
    p.add_argument("--workers", type=int, default=None, help="Threads for per-tube resolution")
    p.add_argument("--grid-div", dest="grid_div", type=int, default=None,
                   help="Snap MIDI input to 1/N beat (0 keeps raw timing)")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="whackparts", description="Boomwhacker part arranger")
    p.add_argument("-v", "--verbose", action="store_true", help="Log pipeline progress")
    sub = p.add_subparsers(dest="cmd", required=True)

    # ------------------------------------------------------------
    # arrange: score -> per-performer MusicXML + manifest
    # ------------------------------------------------------------
    a = sub.add_parser("arrange", help="Assign tubes and performers, write parts + render manifest")
    a.add_argument("score", type=str, help="Input score (.musicxml/.xml/.mxl/.mid/.json)")
    a.add_argument("out_dir", type=str, help="Directory for part files and manifest")
    _add_engine_args(a)
    a.add_argument("--title", default=None, help="Title printed on every part")
    a.add_argument("--page-size", dest="page_size", default=None, help="Page size for the renderer")
    a.add_argument("--report", default=None, help="Also write the diagnostics report as JSON here")

    # ------------------------------------------------------------
    # plan: dry run, print the assignment only
    # ------------------------------------------------------------
    pl = sub.add_parser("plan", help="Print the tube/performer assignment without writing files")
    pl.add_argument("score", type=str, help="Input score")
    _add_engine_args(pl)

    # ------------------------------------------------------------
    # tubes: list an inventory
    # ------------------------------------------------------------
    t = sub.add_parser("tubes", help="List the tubes of an inventory")
    t.add_argument("--inventory", choices=sorted(INVENTORIES), default=None)

    return p


def _settings_from_args(args: argparse.Namespace) -> Settings:
    base = get_settings()
    update: dict[str, Any] = {}
    mapping = {
        "inventory": "tube_inventory",
        "copies": "copies_per_tube",
        "fold_octaves": "fold_octaves",
        "policy": "conflict_policy",
        "packing": "performer_packing",
        "switch_gap": "switch_gap_beats",
        "workers": "resolver_workers",
        "grid_div": "midi_grid_div",
        "title": "score_title",
        "page_size": "page_size",
    }
    for arg_name, field_name in mapping.items():
        v = getattr(args, arg_name, None)
        if v is not None:
            update[field_name] = v

    if update.get("copies_per_tube", 1) < 1:
        raise ValueError("--copies must be >= 1")
    if update.get("switch_gap_beats", 0.0) < 0:
        raise ValueError("--switch-gap must be >= 0")
    if update.get("resolver_workers", 1) < 1:
        raise ValueError("--workers must be >= 1")
    if update.get("midi_grid_div", 0) < 0:
        raise ValueError("--grid-div must be >= 0")
    return base.model_copy(update=update)


def format_plan(arr: Arrangement) -> str:
    lines: list[str] = []
    for res in arr.resolutions:
        flag = "" if res.ok else f"  CONFLICT ({res.required} needed, {res.available} owned)"
        lines.append(f"{res.tube.name:>4} {res.tube.colour:<14} {res.required} cop{'y' if res.required == 1 else 'ies'}{flag}")
    lines.append("")
    for part in arr.parts:
        tight = "" if part.tightest_switch is None else f", tightest switch {part.tightest_switch:g} beats"
        lines.append(
            f"{part.part_id:>4}: {', '.join(part.tubes)}  "
            f"({len(part.notes)} notes, {part.switches} switches{tight})"
        )
    lines.append("")
    lines.append(
        f"{len(arr.resolutions)} tubes, {arr.slot_count} tube copies, {len(arr.parts)} performers"
    )
    return "\n".join(lines)


# -------------------------------
# Commands
# -------------------------------
def cmd_arrange(args: argparse.Namespace) -> int:
    try:
        settings = _settings_from_args(args)
        score = load_score(args.score, grid_div=settings.midi_grid_div)
    except (ValueError, ScoreLoadError) as e:
        _print_err(str(e))
        return EXIT_BAD_ARGS

    out_dir = Path(args.out_dir).resolve()
    try:
        result = run_arrangement(score, out_dir, settings)
    except ArrangementFailed as e:
        _print_diagnostics(e.all_diagnostics)
        _print_err(str(e))
        if args.report:
            _write_report(Path(args.report), e.all_diagnostics)
        return EXIT_ARRANGEMENT_FAILED

    print(format_plan(result.arrangement))
    _print_diagnostics(result.diagnostics)
    if args.report:
        _write_report(Path(args.report), result.diagnostics)
    print(str(result.manifest_path))

    if not result.ok:
        _print_err(f"Parts not written: {', '.join(f'P{n}' for n in result.failed_parts)}")
        return EXIT_PART_FAILED
    return EXIT_OK


def cmd_plan(args: argparse.Namespace) -> int:
    try:
        settings = _settings_from_args(args)
        score = load_score(args.score, grid_div=settings.midi_grid_div)
    except (ValueError, ScoreLoadError) as e:
        _print_err(str(e))
        return EXIT_BAD_ARGS

    arr = arrange(score, settings)
    print(format_plan(arr))
    _print_diagnostics(arr.diagnostics)
    return EXIT_OK if arr.ok else EXIT_ARRANGEMENT_FAILED


def cmd_tubes(args: argparse.Namespace) -> int:
    inv = get_inventory(args.inventory or get_settings().tube_inventory)
    for t in inv.tubes:
        print(f"{t.name:>4}  {t.colour:<14} {t.hex_colour}  {t.range_tag}")
    return EXIT_OK


def _write_report(path: Path, diags: Sequence[Diagnostic]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps([d.model_dump(mode="json") for d in diags], ensure_ascii=False, indent=2),
        encoding="utf-8",
    )


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not logging.getLogger().handlers:
        logging.basicConfig(
            level=logging.INFO if args.verbose else logging.WARNING,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )

    if args.cmd == "arrange":
        return cmd_arrange(args)
    if args.cmd == "plan":
        return cmd_plan(args)
    if args.cmd == "tubes":
        return cmd_tubes(args)

    _print_err("Unknown command.")
    return EXIT_BAD_ARGS


if __name__ == "__main__":
    raise SystemExit(main())
