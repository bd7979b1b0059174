from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query

from core.config import get_settings
from core.models import ArrangeRequest, ArrangeResponse, PartNoteOut, PerformerOut, TubeOut, TubeUsage
from core.pipeline import Arrangement, arrange
from core.tubes import TubeIdentity, get_inventory

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["Arrange"])


def _tube_out(t: TubeIdentity) -> dict:
    return {"tube": t.name, "colour": t.colour, "hex_colour": t.hex_colour, "range_tag": t.range_tag}


def arrangement_to_response(arr: Arrangement) -> ArrangeResponse:
    tubes = [
        TubeUsage(
            **_tube_out(r.tube),
            copies_required=r.required,
            copies_available=r.available,
            conflict=not r.ok,
        )
        for r in arr.resolutions
    ]
    performers = [
        PerformerOut(
            performer=part.performer,
            tubes=part.tubes,
            switches=part.switches,
            tightest_switch=part.tightest_switch,
            notes=[
                PartNoteOut(
                    voice=pn.note.voice,
                    index=pn.note.index,
                    pitch=pn.note.pitch.name,
                    onset=pn.note.onset,
                    duration=pn.note.duration,
                    tube=pn.tube.name,
                    copy_number=pn.slot_number,
                    conflict=pn.conflict,
                )
                for pn in part.notes
            ],
        )
        for part in arr.parts
    ]
    return ArrangeResponse(
        ok=arr.ok,
        inventory=arr.inventory.name,
        tubes=tubes,
        performers=performers,
        diagnostics=arr.diagnostics,
    )


@router.get("/tubes", response_model=List[TubeOut])
def list_tubes(inventory: Optional[str] = Query(None, description="diatonic | chromatic | extended")):
    name = inventory or get_settings().tube_inventory
    try:
        inv = get_inventory(name)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return [TubeOut(**_tube_out(t)) for t in inv.tubes]


@router.post("/arrange", response_model=ArrangeResponse)
def arrange_score(req: ArrangeRequest) -> ArrangeResponse:
    """
    Dry-run arrangement: the full assignment and diagnostics, no files.
    Fatal problems are reported with ok=false rather than an HTTP error so the
    caller sees every diagnostic.
    """
    settings = get_settings().model_copy(update=req.overrides())
    arr = arrange(req.score, settings)
    if not arr.ok:
        logger.info("Arrange request has %d fatal diagnostics", len(arr.fatal()))
    return arrangement_to_response(arr)
