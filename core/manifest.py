"""
core.manifest

Writes one notation file per part and records the batch for the external
renderer. Two files land in the output directory:

    manifest.json   full manifest (render settings + entries)
    jobs.json       MuseScore batch job list: [{"in": ..., "out": ...}]
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import List, Sequence, Tuple

from pydantic import BaseModel, Field

from core.errors import Diagnostic, DiagnosticKind, PartSerializationFailure, Severity
from core.notation import NotationWriter
from core.performers import Part

logger = logging.getLogger(__name__)

MANIFEST_NAME = "manifest.json"
JOBS_NAME = "jobs.json"


class RenderConfig(BaseModel):
    """Render settings for the batch. page_size is also written into each part's page layout."""

    page_size: str = "A4"
    title: str = "Boomwhackers"
    part_label: str = "Performer"
    output_format: str = "pdf"


class JobEntry(BaseModel):
    part_id: str
    performer: int = Field(..., ge=1)
    source: str = Field(..., min_length=1, description="Notation file written for this part")
    output: str = Field(..., min_length=1, description="Document the renderer should produce")


class JobManifest(BaseModel):
    render: RenderConfig = Field(default_factory=RenderConfig)
    jobs: List[JobEntry] = Field(default_factory=list)

    def musescore_jobs(self) -> list[dict[str, str]]:
        return [{"in": j.source, "out": j.output} for j in self.jobs]


def part_stem(part: Part, width: int = 2) -> str:
    # zero-padded: lexical order matches performer order
    return f"{part.performer:0{width}d}_performer-{part.performer}"


def emit_jobs(
    parts: Sequence[Part],
    out_dir: Path,
    writer: NotationWriter,
    render: RenderConfig | None = None,
) -> Tuple[JobManifest, List[Diagnostic]]:
    """
    Serialize every part. A part that fails is reported and left out of the
    manifest; the others are still written.
    """
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    manifest = JobManifest(render=render or RenderConfig())
    diagnostics: List[Diagnostic] = []
    width = max(2, len(str(len(parts))))

    for part in sorted(parts, key=lambda p: p.performer):
        stem = part_stem(part, width)
        src = out_dir / f"{stem}{writer.suffix}"
        dst = out_dir / f"{stem}.{manifest.render.output_format}"
        try:
            written = writer.write(part, src)
        except PartSerializationFailure as e:
            logger.error("Part %s not written: %s", part.part_id, e)
            diagnostics.append(
                Diagnostic(
                    kind=DiagnosticKind.part_serialization_failure,
                    severity=Severity.error,
                    message=str(e),
                    performer=part.performer,
                    path=str(src),
                )
            )
            continue
        manifest.jobs.append(
            JobEntry(part_id=part.part_id, performer=part.performer, source=str(written), output=str(dst.resolve()))
        )

    logger.info("Emitted %d/%d parts to %s", len(manifest.jobs), len(parts), out_dir)
    return manifest, diagnostics


def write_manifest(manifest: JobManifest, out_dir: Path) -> Path:
    out_dir = Path(out_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    p = out_dir / MANIFEST_NAME
    p.write_text(manifest.model_dump_json(indent=2), encoding="utf-8")
    (out_dir / JOBS_NAME).write_text(
        json.dumps(manifest.musescore_jobs(), ensure_ascii=False, indent=2), encoding="utf-8"
    )
    return p.resolve()
