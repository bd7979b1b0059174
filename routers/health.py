"""
Health check route, for deployment monitoring.
"""
from __future__ import annotations

import shutil
from pathlib import Path
from typing import Any, Dict

from fastapi import APIRouter

from core.config import get_settings

router = APIRouter(prefix="/api/v1", tags=["Health"])


@router.get("/health")
def health() -> Dict[str, Any]:
    """
    - always returns ok=True if API is alive
    - extra diagnostics: output dir, external render/merge tools
    """
    s = get_settings()
    outputs = Path(s.output_dir)

    musescore_ok = any(shutil.which(b) for b in ("mscore", "musescore", "musescore3", "musescore4"))
    pdftk_ok = bool(shutil.which("pdftk"))

    return {
        "ok": True,
        "env": s.app_env,
        "inventory": s.tube_inventory,
        "paths": {
            "output_dir": str(outputs),
        },
        "checks": {
            "output_dir_exists": outputs.exists(),
            "musescore": musescore_ok,
            "pdftk": pdftk_ok,
        },
    }
