import os
from urllib.parse import quote_plus

# --- Configuration ---
# It is highly recommended to use environment variables for production
DB_USER = os.getenv("DB_USER", "postgres")
DB_PASS = os.getenv("DB_PASS", "pass@123")
DB_HOST = os.getenv("DB_HOST", "localhost")
DB_PORT = os.getenv("DB_PORT", "5432")
DB_NAME = os.getenv("DB_NAME", "ayush_setu_db")

# A full DATABASE_URL wins over the individual DB_* settings.
# The password is URL-encoded to handle special characters like '@'
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql://{DB_USER}:{quote_plus(DB_PASS)}@{DB_HOST}:{DB_PORT}/{DB_NAME}",
)

APP_SECRET_KEY = os.getenv("APP_SECRET_KEY", "a_very_secret_key_for_sessions")
ABHA_TOKEN_SECRET = os.getenv("ABHA_TOKEN_SECRET", "mock_secret_key")
ABHA_TOKEN_TTL_SECONDS = int(os.getenv("ABHA_TOKEN_TTL_SECONDS", str(60 * 60 * 8)))

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",") if o.strip()]

# Bundles saved with a diagnosis session are forwarded here when set.
FHIR_SUBMIT_URL = os.getenv("FHIR_SUBMIT_URL", "")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

DATA_DIR = os.getenv("DATA_DIR", os.path.join(os.path.dirname(__file__), "..", "data"))
