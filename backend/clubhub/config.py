import os

from dotenv import load_dotenv

# Load .env at repo root
load_dotenv(dotenv_path=os.path.join(os.path.dirname(os.path.dirname(__file__)), "..", ".env"))

ENVIRONMENT = os.getenv("ENVIRONMENT", "local")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./clubhub.db")
CORS_ORIGIN = os.getenv("CORS_ORIGIN", "http://localhost:3000")

# Default expiry (days) for grants restored by a re-consent; 0 disables expiry
GRANT_TTL_DAYS = int(os.getenv("GRANT_TTL_DAYS", "30"))

SEED_DEMO_DATA = os.getenv("SEED_DEMO_DATA", "false").lower() in {"1", "true", "yes"}
