import argparse
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from app.config import PAIRING_SEED
from app.repo import SqlHistoryStore
from app.services.rounds import post_round_summary, send_meet_reminders, try_start_round
from app.services.slack import SlackError, get_gateway


def main() -> int:
    parser = argparse.ArgumentParser(description="Run one coffee-chat scheduler step")
    parser.add_argument("step", choices=["start", "remind", "summary"])
    parser.add_argument("--seed", type=int, default=PAIRING_SEED)
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO)

    try:
        gateway = get_gateway()
    except SlackError as exc:
        print(json.dumps({"status": "misconfigured", "message": str(exc)}))
        return 2

    store = SqlHistoryStore()
    with gateway:
        if args.step == "start":
            outcome = try_start_round(store, gateway, datetime.now(timezone.utc), seed=args.seed)
        elif args.step == "remind":
            outcome = send_meet_reminders(store, gateway)
        else:
            outcome = post_round_summary(store, gateway)

    print(json.dumps(outcome.to_dict(), default=str, indent=2))
    return 0 if outcome.ok else 1


if __name__ == "__main__":
    sys.exit(main())
