import os

DATABASE_URL = os.getenv("DATABASE_URL", "postgresql+psycopg2://postgres:postgres@db:5432/coffee_chat")
DB_STATEMENT_TIMEOUT_MS = int(os.getenv("DB_STATEMENT_TIMEOUT_MS", "15000"))
MIGRATIONS_DIR = os.getenv("MIGRATIONS_DIR", "").strip()

ADMIN_TOKEN = os.getenv("ADMIN_TOKEN", "")

SLACK_BOT_TOKEN = os.getenv("SLACK_BOT_TOKEN", "")
SLACK_SIGNING_SECRET = os.getenv("SLACK_SIGNING_SECRET", "")
SLACK_API_BASE = os.getenv("SLACK_API_BASE", "https://slack.com/api").rstrip("/")
SLACK_HTTP_TIMEOUT_SECONDS = float(os.getenv("SLACK_HTTP_TIMEOUT_SECONDS", "10"))
SLACK_SIGNATURE_MAX_AGE_SECONDS = int(os.getenv("SLACK_SIGNATURE_MAX_AGE_SECONDS", "300"))
SLACK_MEMBERS_PAGE_SIZE = int(os.getenv("SLACK_MEMBERS_PAGE_SIZE", "200"))

# Keys of the runtime `config` table.
CONFIG_ROUND_CHANNEL_ID = "round_channel_id"
CONFIG_PAIRING_INTERVAL_DAYS = "pairing_interval_days"

DEFAULT_PAIRING_INTERVAL_DAYS = int(os.getenv("DEFAULT_PAIRING_INTERVAL_DAYS", "7"))

# Unset means a fresh shuffle per round.
PAIRING_SEED = int(os.environ["PAIRING_SEED"]) if os.getenv("PAIRING_SEED", "").strip() else None
