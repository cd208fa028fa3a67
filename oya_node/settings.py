"""Django settings for the Oya settlement node.


The node runs a single process that:
- accepts signed intentions and resolves their proofs (deposits, vaults)
- batches processed intentions into nonce-ordered bundles on a fixed cadence
- publishes bundles to content-addressed storage, the chain, and an archival tier


Development and tests default to the in-process stubs (chain_stub, storage_stub).
"""

import os
import json
from pathlib import Path


BASE_DIR = Path(__file__).resolve().parent.parent
SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-only-insecure-key")
DEBUG = os.getenv("DEBUG", "1") in ("1", "true", "True", "yes")
ALLOWED_HOSTS = os.getenv("ALLOWED_HOSTS", "*").split(",")
CSRF_TRUSTED_ORIGINS = os.getenv("CSRF_TRUSTED_ORIGINS", "").split(",") if os.getenv("CSRF_TRUSTED_ORIGINS") else []

def env_bool(name, default=""):
    v = os.getenv(name, default)
    return v.lower() in ("1", "true", "yes", "on")

def env_int(name, default):
    v = os.getenv(name)
    return int(v) if v not in (None, "") else default

#######################
# Proposer identity. The key signs bundles and on-chain transactions.
PROPOSER_ADDRESS = os.getenv("PROPOSER_ADDRESS", "0x42fa5d9e5b0b1c039b08853cf62f8e869e8e5baf").lower()
PROPOSER_KEY = os.getenv("PROPOSER_KEY", "")
PROPOSER_VAULT_ID = os.getenv("PROPOSER_VAULT_ID", "")

# Chain: "stub" (chain_stub app) or "web3" (JSON-RPC)
CHAIN_BACKEND = os.getenv("CHAIN_BACKEND", "stub")
RPC_URL = os.getenv("RPC_URL", "")
CHAIN_ID = env_int("CHAIN_ID", 11155111)
VAULT_TRACKER_ADDRESS = os.getenv("VAULT_TRACKER_ADDRESS", "")
BUNDLE_TRACKER_ADDRESS = os.getenv("BUNDLE_TRACKER_ADDRESS", "")
DEPOSIT_CONTRACT_ADDRESS = os.getenv("DEPOSIT_CONTRACT_ADDRESS", "")
DEPOSIT_SCAN_BLOCKS = env_int("DEPOSIT_SCAN_BLOCKS", 5000)

# Content-addressed storage: "stub" (storage_stub app) or "ipfs" (pinning service)
STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "stub")
PINNER_ENDPOINT = os.getenv("PINNER_ENDPOINT", "")
PINNER_TOKEN = os.getenv("PINNER_TOKEN", "")

# Archival tier: "disabled", "stub" or "http"
ARCHIVAL_BACKEND = os.getenv("ARCHIVAL_BACKEND", "disabled")
ARCHIVAL_URL = os.getenv("ARCHIVAL_URL", "")
ARCHIVAL_TOKEN = os.getenv("ARCHIVAL_TOKEN", "")
ARCHIVAL_CALLBACK_SECRET = os.getenv("ARCHIVAL_CALLBACK_SECRET", "dev-secret-change-me")
ARCHIVAL_MAX_BYTES = env_int("ARCHIVAL_MAX_BYTES", 200 * 1024 * 1024)
ARCHIVAL_STUB_AUTO_CONFIRM = env_bool("ARCHIVAL_STUB_AUTO_CONFIRM", "1")

# Optional bundle notification webhook. Empty URL => disabled.
WEBHOOK_URL = os.getenv("WEBHOOK_URL", "")
WEBHOOK_SECRET = os.getenv("WEBHOOK_SECRET", "")
WEBHOOK_TIMEOUT_MS = env_int("WEBHOOK_TIMEOUT_MS", 6000)
WEBHOOK_MAX_RETRIES = env_int("WEBHOOK_MAX_RETRIES", 6)

# Cadence
BUNDLE_INTERVAL_SECONDS = float(os.getenv("BUNDLE_INTERVAL_SECONDS", "10"))
HEALTH_CHECK_INTERVAL_SECONDS = float(os.getenv("HEALTH_CHECK_INTERVAL_SECONDS", "30"))
DB_CONNECT_MAX_ATTEMPTS = env_int("DB_CONNECT_MAX_ATTEMPTS", 5)
DETACHED_WORKERS = env_int("DETACHED_WORKERS", 4)

# Initial token grants transferred from PROPOSER_VAULT_ID into every new vault.
# Amounts are base units (decimal strings).
SEED_CONFIG = json.loads(os.getenv("SEED_CONFIG", "null")) or [
    {"token": "0xe0ab3bac84af1f63719fe4b2e96d16505ec68842", "amount": "1000000000000000000"},  # OTWETH
    {"token": "0x69db14c05d012ff97a0f41e37e327970dea4f5ea", "amount": "1000000000"},  # OTUSDC
    {"token": "0x897292eaec4ef49948a36727a02fa0388e46c692", "amount": "1000000000"},  # OTUSDT
    {"token": "0xace171bf775107b491d9f4d4daa808be6515b2d0", "amount": "5000000000000000000000"},  # OTOYA
    {"token": "0xf55c9c1060e0b00b6feca4cf7ff7ac89b7dbde07", "amount": "100000000"},  # OTBTC
]
SEED_CHAIN_ID = env_int("SEED_CHAIN_ID", CHAIN_ID)
#######################


INSTALLED_APPS = [
	"django.contrib.admin",
	"django.contrib.auth",
	"django.contrib.contenttypes",
	"django.contrib.sessions",
	"django.contrib.messages",
	"django.contrib.staticfiles",
	# local apps
	"core",
	"api",
	"chain_stub",
	"storage_stub",
]


MIDDLEWARE = [
	"django.middleware.security.SecurityMiddleware",
	"django.contrib.sessions.middleware.SessionMiddleware",
	"django.middleware.common.CommonMiddleware",
	"django.middleware.csrf.CsrfViewMiddleware",
	"django.contrib.auth.middleware.AuthenticationMiddleware",
	"django.contrib.messages.middleware.MessageMiddleware",
]


ROOT_URLCONF = "oya_node.urls"
TEMPLATES = [
	{
		"BACKEND": "django.template.backends.django.DjangoTemplates",
		"DIRS": [],
		"APP_DIRS": True,
		"OPTIONS": {
			"context_processors": [
				"django.template.context_processors.request",
				"django.contrib.auth.context_processors.auth",
				"django.contrib.messages.context_processors.messages",
			],
		},
	},
]


WSGI_APPLICATION = "oya_node.wsgi.application"


DB_ENGINE = os.getenv("DB_ENGINE", "sqlite")
if DB_ENGINE == "postgres":
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.postgresql",
            "NAME": os.getenv("POSTGRES_DB", "oya"),
            "USER": os.getenv("POSTGRES_USER", "oya"),
            "PASSWORD": os.getenv("POSTGRES_PASSWORD", "oya"),
            "HOST": os.getenv("POSTGRES_HOST", "localhost"),
            "PORT": os.getenv("POSTGRES_PORT", "5432"),
            "CONN_MAX_AGE": env_int("POSTGRES_CONN_MAX_AGE", 60),
        }
    }
else:
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": BASE_DIR / "db.sqlite3",
        }
    }


LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "plain": {"format": "%(asctime)s %(levelname)s [%(name)s] %(message)s"},
    },
    "handlers": {
        "console": {"class": "logging.StreamHandler", "formatter": "plain"},
    },
    "root": {"handlers": ["console"], "level": os.getenv("LOG_LEVEL", "INFO")},
    "loggers": {
        "django.db.backends": {"level": "WARNING"},
    },
}


LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = False
USE_TZ = True


STATIC_URL = "static/"
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"
