from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from ..config import PAIRING_SEED
from ..deps import get_slack_gateway, get_store, require_admin_token
from ..services.rounds import RoundOutcome, post_round_summary, send_meet_reminders, try_start_round

router = APIRouter(dependencies=[Depends(require_admin_token)])


def _outcome_response(outcome: RoundOutcome) -> JSONResponse:
    return JSONResponse(status_code=outcome.http_status, content=jsonable_encoder(outcome.to_dict()))


@router.post("/rounds/start")
def start_round(
    seed: int | None = None,
    store=Depends(get_store),
    gateway=Depends(get_slack_gateway),
) -> JSONResponse:
    outcome = try_start_round(
        store,
        gateway,
        datetime.now(timezone.utc),
        seed=seed if seed is not None else PAIRING_SEED,
    )
    return _outcome_response(outcome)


@router.post("/rounds/remind")
def remind_round(store=Depends(get_store), gateway=Depends(get_slack_gateway)) -> JSONResponse:
    return _outcome_response(send_meet_reminders(store, gateway))


@router.post("/rounds/summary")
def summarize_round(store=Depends(get_store), gateway=Depends(get_slack_gateway)) -> JSONResponse:
    return _outcome_response(post_round_summary(store, gateway))
