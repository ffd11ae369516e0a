import logging
import time
from pathlib import Path

from fastapi import FastAPI
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from .config import MIGRATIONS_DIR
from .database import SessionLocal
from .routes import include_modular_routers

logger = logging.getLogger(__name__)

app = FastAPI(title="Coffee Chat Pairing API")
include_modular_routers(app)


def run_migrations() -> None:
    docker_dir = Path("/app/migrations")
    local_dir = Path(__file__).resolve().parents[1] / "migrations"

    if MIGRATIONS_DIR:
        migrations_dir = Path(MIGRATIONS_DIR)
    elif docker_dir.exists():
        migrations_dir = docker_dir
    else:
        migrations_dir = local_dir

    if not migrations_dir.exists() or not migrations_dir.is_dir():
        raise FileNotFoundError(
            "Migrations directory not found. Checked: "
            f"MIGRATIONS_DIR={MIGRATIONS_DIR or '<unset>'}, {docker_dir}, {local_dir}"
        )

    files = sorted([f.name for f in migrations_dir.iterdir() if f.is_file() and f.suffix == ".sql"])
    with SessionLocal() as db:
        for fname in files:
            sql = (migrations_dir / fname).read_text(encoding="utf-8")
            db.execute(text(sql))
        db.commit()
    logger.info("[STARTUP] applied %s migration file(s) from %s", len(files), migrations_dir)


def wait_for_db(max_attempts: int = 20, delay_seconds: float = 1.5) -> None:
    last_err: Exception | None = None
    for _ in range(max_attempts):
        try:
            with SessionLocal() as db:
                db.execute(text("SELECT 1"))
                db.commit()
            return
        except OperationalError as exc:
            last_err = exc
            time.sleep(delay_seconds)
    if last_err:
        raise last_err


@app.on_event("startup")
def on_startup() -> None:
    wait_for_db()
    run_migrations()


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}
