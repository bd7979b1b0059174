# core/pipeline.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from core.config import Settings, get_settings
from core.errors import ArrangementFailed, Diagnostic, DiagnosticKind, IrresolvableTubeConflict
from core.manifest import JobManifest, RenderConfig, emit_jobs, write_manifest
from core.notation import MusicXmlWriter, NotationWriter
from core.performers import Part, PerformerAssignment, assign_performers, build_parts
from core.resolver import TubeResolution, resolve_all
from core.score_models import ScoreDoc
from core.timeline import Timeline, build_timeline
from core.tubes import TubeInventory, get_inventory

logger = logging.getLogger(__name__)


@dataclass
class Arrangement:
    """Everything the engine decided for one score, before any file is written."""

    settings: Settings
    inventory: TubeInventory
    timeline: Timeline
    resolutions: List[TubeResolution]
    assignments: List[PerformerAssignment]
    parts: List[Part]

    @property
    def diagnostics(self) -> List[Diagnostic]:
        out = list(self.timeline.diagnostics)
        out.extend(r.conflict for r in self.resolutions if r.conflict is not None)
        return out

    @property
    def conflicts(self) -> List[Diagnostic]:
        return [r.conflict for r in self.resolutions if r.conflict is not None]

    def fatal(self) -> List[Diagnostic]:
        """
        Diagnostics that stop emission: malformed notes always, tube
        conflicts only under the "fail" policy.
        """
        out: List[Diagnostic] = []
        for d in self.diagnostics:
            if d.kind == DiagnosticKind.malformed_note:
                out.append(d)
            elif d.kind == DiagnosticKind.irresolvable_tube_conflict and self.settings.conflict_policy == "fail":
                out.append(d)
        return out

    @property
    def ok(self) -> bool:
        return not self.fatal()

    @property
    def slot_count(self) -> int:
        return sum(r.required for r in self.resolutions)


@dataclass
class RunResult:
    arrangement: Arrangement
    manifest: JobManifest
    manifest_path: Path
    diagnostics: List[Diagnostic] = field(default_factory=list)

    @property
    def failed_parts(self) -> List[int]:
        return [
            d.performer for d in self.diagnostics
            if d.kind == DiagnosticKind.part_serialization_failure and d.performer is not None
        ]

    @property
    def ok(self) -> bool:
        return not self.failed_parts


def arrange(score: ScoreDoc, settings: Optional[Settings] = None) -> Arrangement:
    """
    Pure part of the pipeline: timeline -> slots -> performers -> parts.
    Runs to completion even when conflicts or malformed voices are found so
    that every problem is reported at once.
    """
    s = settings or get_settings()
    inventory = get_inventory(s.tube_inventory)

    timeline = build_timeline(score, inventory, fold_octaves=s.fold_octaves)
    resolutions = resolve_all(timeline, copies=s.copies_per_tube, workers=s.resolver_workers)
    assignments = assign_performers(resolutions, packing=s.performer_packing, switch_gap=s.switch_gap_beats)
    conflicted = [r.tube for r in resolutions if not r.ok]
    parts = build_parts(assignments, conflicted)

    return Arrangement(
        settings=s,
        inventory=inventory,
        timeline=timeline,
        resolutions=resolutions,
        assignments=assignments,
        parts=parts,
    )


def run_arrangement(
    score: ScoreDoc,
    out_dir: Path,
    settings: Optional[Settings] = None,
    writer: Optional[NotationWriter] = None,
) -> RunResult:
    """
    arrange() + emission. Raises ArrangementFailed before writing anything
    when the arrangement has fatal diagnostics.
    """
    s = settings or get_settings()
    arrangement = arrange(score, s)

    fatal = arrangement.fatal()
    if fatal:
        logger.error("Arrangement failed: %d fatal diagnostic(s)", len(fatal))
        fatal_ids = {id(d) for d in fatal}
        rest = [d for d in arrangement.diagnostics if id(d) not in fatal_ids]
        if all(d.kind == DiagnosticKind.irresolvable_tube_conflict for d in fatal):
            raise IrresolvableTubeConflict(fatal, rest)
        raise ArrangementFailed(fatal, rest)

    title = s.score_title or score.title or "Boomwhackers"
    if writer is None:
        writer = MusicXmlWriter(
            title=title,
            tempo_bpm=score.tempo_bpm,
            time_signature=score.time_signature,
            part_label=s.part_label,
            page_size=s.page_size,
        )
    render = RenderConfig(page_size=s.page_size, title=title, part_label=s.part_label)

    manifest, emit_diags = emit_jobs(arrangement.parts, Path(out_dir), writer, render)
    manifest_path = write_manifest(manifest, Path(out_dir))

    return RunResult(
        arrangement=arrangement,
        manifest=manifest,
        manifest_path=manifest_path,
        diagnostics=arrangement.diagnostics + emit_diags,
    )
