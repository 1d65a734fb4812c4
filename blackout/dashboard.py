"""HTTP API for schedule snapshots, group history, and cache status.

Run with: python -m blackout serve --port 8777
"""

import logging
import os
from datetime import UTC, datetime
from pathlib import Path

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

from blackout.config.loader import load_config
from blackout.config.schema import BlackoutConfig
from blackout.errors import BlackoutError
from blackout.ingest.cache_manager import CacheManager, build_cache_manager
from blackout.ingest.staleness import snapshot_age_seconds
from blackout.models.common import format_group, normalize_group
from blackout.models.schedule import GroupSnapshot, Snapshot
from blackout.notify.render import render_schedule
from blackout.storage import cache_repo, history_repo, subscription_repo
from blackout.storage.database import open_store

logger = logging.getLogger(__name__)

DB_PATH = Path(os.environ.get("DB_PATH", "data/blackouts.db"))
CONFIG_PATH = Path("ops/configs/default.yaml")
FETCH_FAILED = "Failed to fetch data."

app = FastAPI(title="Blackout Schedule API", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

_cache: CacheManager | None = None


def configure(config_path: str | Path, db_path: str | Path) -> None:
    """Point the API at a config file and store. Drops any built cache manager."""
    global CONFIG_PATH, DB_PATH, _cache
    CONFIG_PATH = Path(config_path)
    DB_PATH = Path(db_path)
    _cache = None


def _config() -> BlackoutConfig:
    if CONFIG_PATH.exists():
        return load_config(CONFIG_PATH)
    return BlackoutConfig()


def _cache_manager() -> CacheManager:
    global _cache
    if _cache is None:
        _cache = build_cache_manager(_config(), DB_PATH)
    return _cache


def _snapshot(force_refresh: bool = False) -> Snapshot:
    try:
        return _cache_manager().get_snapshot(force_refresh=force_refresh)
    except BlackoutError:
        logger.exception("Snapshot request failed")
        raise HTTPException(status_code=503, detail=FETCH_FAILED)


def _group(code: str) -> GroupSnapshot:
    group_code = normalize_group(code)
    group = _snapshot().groups.get(group_code)
    if group is None:
        raise HTTPException(status_code=404, detail=f"No data found for group {code}")
    return group


def _group_json(group: GroupSnapshot, days: bool = False) -> dict:
    today = group.today()
    data = {
        "code": group.group_code,
        "label": format_group(group.group_code),
        "search_date": group.search_date,
        "today": [int(s) for s in today.hours] if today else None,
        "messages": group.messages,
    }
    if days:
        data["days"] = [
            {
                "day_no": d.day_no,
                "day_name": d.day_name,
                "is_today": d.is_today,
                "hours": [int(s) for s in d.hours],
            }
            for d in group.days
        ]
    return data


# ── Data endpoints ──────────────────────────────────────────────


@app.get("/api/status")
def get_status():
    """Cache freshness and store counts. Never contacts the portal."""
    try:
        with open_store(DB_PATH) as conn:
            subs = subscription_repo.count_subscriptions(conn)
            history = history_repo.count_history(conn)
            id_map = cache_repo.load_id_map(conn)
            snapshot = cache_repo.load_snapshot(conn)
    except BlackoutError:
        logger.exception("Status request failed")
        raise HTTPException(status_code=503, detail="Failed to retrieve status.")

    now = datetime.now(UTC)
    return {
        "subscriptions": subs,
        "history_rows": history,
        "resolved_groups": len(id_map) if id_map else 0,
        "captured_at": snapshot.captured_at.isoformat() if snapshot else None,
        "age_seconds": (
            round(snapshot_age_seconds(snapshot.captured_at, now), 1) if snapshot else None
        ),
        "timestamp": now.isoformat(),
    }


@app.get("/api/groups")
def get_groups():
    """Today's hour states for every group in the current snapshot."""
    snapshot = _snapshot()
    return {
        "captured_at": snapshot.captured_at.isoformat(),
        "groups": [_group_json(snapshot.groups[c]) for c in sorted(snapshot.groups)],
    }


@app.get("/api/groups/{code}")
def get_group(code: str):
    return _group_json(_group(code), days=True)


@app.get("/api/groups/{code}/image")
def get_group_image(code: str):
    group = _group(code)
    if not group.days:
        raise HTTPException(status_code=404, detail=f"Invalid schedule data for group {code}")
    return Response(content=render_schedule(group), media_type="image/png")


@app.get("/api/groups/{code}/history")
def get_group_history(code: str, limit: int = Query(20, ge=1, le=500)):
    """Raw captured rows for a group, newest first."""
    try:
        with open_store(DB_PATH) as conn:
            rows = history_repo.get_history(conn, normalize_group(code), limit=limit)
    except BlackoutError:
        logger.exception("History request failed")
        raise HTTPException(status_code=503, detail="Failed to retrieve history.")
    return [
        {"id": r["id"], "captured_at": r["captured_at"], "raw_json": r["raw_json"]}
        for r in rows
    ]


# ── Control endpoints ───────────────────────────────────────────


@app.post("/api/refresh")
def refresh():
    """Force a new acquisition cycle."""
    snapshot = _snapshot(force_refresh=True)
    return {
        "status": "refreshed",
        "captured_at": snapshot.captured_at.isoformat(),
        "groups": len(snapshot.groups),
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8777)
