"""
Field Triage — Local Case Server
================================
FastAPI backend exposing the case engine to the field UI.
Endpoints are async so every mutation runs on the event loop thread.

Run:
    pip install -e .
    python case_server.py

Then open: http://localhost:8002/docs
"""
from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Optional

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

# ── path setup ────────────────────────────────────────────────────────────────
ROOT = Path(__file__).parent
sys.path.insert(0, str(ROOT))

from fieldtriage.case_engine import TriageEngine
from fieldtriage.case_models import CaseInput
from fieldtriage.location_resolver import LocationResolver, default_provider
from fieldtriage.triage_rules import (
    KNOWN_SYMPTOMS,
    PRIORITIES,
    PRIORITY_DESCRIPTIONS,
    PRIORITY_LABELS,
    SUPPLY_OPTIONS,
)

load_dotenv()
logger = logging.getLogger(__name__)

PORT = int(os.getenv("CASE_SERVER_PORT", "8002"))


def create_app(engine: Optional[TriageEngine] = None) -> FastAPI:
    """Build the API around an engine instance.

    Args:
        engine: Optional pre-built TriageEngine (tests pass one backed by
            a temporary database).
    """
    if engine is None:
        engine = TriageEngine(location_resolver=LocationResolver(default_provider()))

    app = FastAPI(title="Field Triage Case Server", version="1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.engine = engine

    def _dump(case) -> dict:
        return case.model_dump(mode="json", by_alias=True)

    # ── catalogue ─────────────────────────────────────────────────────────

    @app.get("/api/catalogue")
    async def api_catalogue():
        """Symptom / supply identifiers and priority display text."""
        return {
            "symptoms": KNOWN_SYMPTOMS,
            "supplies": SUPPLY_OPTIONS,
            "priorities": [
                {"id": p, "label": PRIORITY_LABELS[p], "description": PRIORITY_DESCRIPTIONS[p]}
                for p in PRIORITIES
            ],
        }

    # ── cases ─────────────────────────────────────────────────────────────

    @app.get("/api/cases")
    async def api_cases(view: str = "all"):
        """Case list. view: all | red | blue | green | resolved."""
        if view == "all":
            cases = engine.list_cases()
        elif view == "resolved":
            cases = engine.resolved_cases()
        elif view in PRIORITIES:
            cases = engine.unresolved(view)
        else:
            raise HTTPException(400, f"Invalid view. Must be one of: all, resolved, {', '.join(PRIORITIES)}")
        return [_dump(c) for c in cases]

    @app.get("/api/cases/{case_id}")
    async def api_case_detail(case_id: str):
        case = engine.get_case(case_id)
        if case is None:
            raise HTTPException(404, "Case not found")
        return _dump(case)

    @app.post("/api/cases", status_code=201)
    async def api_create_case(body: CaseInput):
        """Submit a case. Location is resolved unless coordinates are given."""
        case = await engine.submit_case(body)
        return _dump(case)

    @app.post("/api/cases/{case_id}/resolve")
    async def api_resolve_case(case_id: str):
        case = engine.resolve_case(case_id)
        if case is None:
            raise HTTPException(404, "Case not found")
        return _dump(case)

    # ── consult queue ─────────────────────────────────────────────────────

    @app.get("/api/consult")
    async def api_consult_queue():
        return [_dump(c) for c in engine.list_consult_queue()]

    @app.post("/api/consult/{case_id}")
    async def api_enqueue_consult(case_id: str):
        if engine.get_case(case_id) is None:
            raise HTTPException(404, "Case not found")
        added = engine.enqueue_consult(case_id)
        return {"ok": True, "case_id": case_id, "added": added}

    @app.delete("/api/consult/{case_id}")
    async def api_dequeue_consult(case_id: str):
        removed = engine.dequeue_consult(case_id)
        return {"ok": True, "case_id": case_id, "removed": removed}

    # ── broadcast ─────────────────────────────────────────────────────────

    @app.get("/api/broadcast")
    async def api_broadcast():
        """Current broadcast, its advertised payload and elapsed seconds."""
        case = engine.current_broadcast()
        if case is None:
            return {"active": False, "case": None, "payload": None, "elapsed_seconds": None}
        return {
            "active": True,
            "case": _dump(case),
            "payload": engine.current_broadcast_payload(),
            "elapsed_seconds": engine.broadcast.elapsed_seconds(),
        }

    @app.post("/api/broadcast/{case_id}")
    async def api_start_broadcast(case_id: str):
        existing = engine.get_case(case_id)
        if existing is None:
            raise HTTPException(404, "Case not found")
        if existing.resolved:
            raise HTTPException(409, "Case is resolved")
        case = engine.start_broadcast(case_id)
        return _dump(case)

    @app.delete("/api/broadcast")
    async def api_stop_broadcast():
        stopped = engine.stop_broadcast()
        return {"ok": True, "stopped": stopped}

    # ── misc ──────────────────────────────────────────────────────────────

    @app.get("/api/location")
    async def api_location():
        coords = await engine.resolve_location()
        if coords is None:
            return {"available": False, "coordinates": None}
        return {"available": True, "coordinates": coords.model_dump()}

    @app.get("/api/stats")
    async def api_stats():
        return engine.stats()

    return app


# ── Entry point ───────────────────────────────────────────────────────────────
if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    app = create_app()
    print("\n" + "═" * 58)
    print("  Field Triage — Local Case Server")
    print("═" * 58)
    print(f"  ➜  API docs:   http://localhost:{PORT}/docs")
    print(f"  ➜  DB path:    {app.state.engine.store.db_path}")
    print("═" * 58 + "\n")
    uvicorn.run(app, host="0.0.0.0", port=PORT, reload=False, log_level="warning")
