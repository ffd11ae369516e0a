from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from fastapi.encoders import jsonable_encoder

from ..config import CONFIG_PAIRING_INTERVAL_DAYS, CONFIG_ROUND_CHANNEL_ID
from ..deps import get_store, require_admin_token
from ..schemas import AvoidPairRequest, ChannelUpdate, IntervalUpdate
from ..services.metrics import round_summary

router = APIRouter(dependencies=[Depends(require_admin_token)])


def _json(data: Any) -> Any:
    return jsonable_encoder(data)


@router.get("/admin/config")
def get_config(store=Depends(get_store)) -> dict[str, Any]:
    return _json({"config": store.list_config()})


@router.put("/admin/config/channel")
def update_channel(body: ChannelUpdate, store=Depends(get_store)) -> dict[str, Any]:
    channel_id = body.channel_id.strip()
    if not channel_id:
        raise HTTPException(status_code=400, detail="channel_id required")
    store.set_config(CONFIG_ROUND_CHANNEL_ID, channel_id)
    return {"ok": True, "channel_id": channel_id}


@router.put("/admin/config/interval")
def update_interval(body: IntervalUpdate, store=Depends(get_store)) -> dict[str, Any]:
    store.set_config(CONFIG_PAIRING_INTERVAL_DAYS, body.days)
    return {"ok": True, "interval_days": body.days}


@router.get("/admin/avoid")
def list_avoid(store=Depends(get_store)) -> dict[str, Any]:
    return _json({"entries": store.list_avoid_entries()})


@router.post("/admin/avoid")
def add_avoid(body: AvoidPairRequest, store=Depends(get_store)) -> dict[str, Any]:
    user_id = body.user_id.strip()
    avoid_user_id = body.avoid_user_id.strip()
    if user_id == avoid_user_id:
        raise HTTPException(status_code=400, detail="user_id and avoid_user_id must differ")
    if not store.add_avoid_pair(user_id, avoid_user_id):
        raise HTTPException(status_code=400, detail="Both users must exist before they can avoid each other")
    return {"ok": True, "user_id": user_id, "avoid_user_id": avoid_user_id}


@router.delete("/admin/avoid")
def remove_avoid(user_id: str, avoid_user_id: str, store=Depends(get_store)) -> dict[str, Any]:
    removed = store.remove_avoid_pair(user_id.strip(), avoid_user_id.strip())
    return {"ok": True, "removed": removed}


@router.get("/admin/rounds/latest/summary")
def latest_round_summary(store=Depends(get_store)) -> dict[str, Any]:
    latest = store.get_most_recent_round()
    if not latest:
        raise HTTPException(status_code=404, detail="No rounds found")
    return _json({"round_date": latest["round_date"], **round_summary(store, str(latest["id"]))})
