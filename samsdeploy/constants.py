"""
SAMS Deploy Constants

Centralized constants for magic values, defaults, and configuration.
"""

# Components, in the order "all" expands to (rules first, API before clients)
COMPONENT_ORDER = ("firebase", "backend", "desktop", "mobile")
ALL_COMPONENTS = "all"

COMPONENT_ALIASES = {
    "firebase-config": "firebase",
    "rules": "firebase",
    "web": "desktop",
    "pwa": "mobile",
    "api": "backend",
}

ENVIRONMENT_ALIASES = {
    "dev": "development",
    "develop": "development",
    "stage": "staging",
    "prod": "production",
}

# Config discovery
CONFIG_ENV_VAR = "SAMS_DEPLOY_CONFIG"
CONFIG_SEARCH_PATHS = (
    "deploy.config.json",
    "sams-deploy.config.json",
    "scripts/sams-deploy/deploy.config.json",
    ".sams/deploy.config.json",
    "deploy.config.yml",
    "~/.sams/deploy.config.json",
)

# Default project layout (relative to the repository root)
DEFAULT_PROJECT_PATHS = {
    "desktop": "frontend/sams-ui",
    "mobile": "frontend/mobile-app",
    "backend": "backend",
    "firebase": ".",
}

# Deployment defaults (seconds)
DEFAULT_BUILD_TIMEOUT = 300
DEFAULT_DEPLOYMENT_TIMEOUT = 600
DEFAULT_VERIFICATION_TIMEOUT = 60
DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_RETRY_DELAY = 5
DEFAULT_MONITOR_INTERVAL = 30
DEFAULT_MONITOR_DURATION = 300
DEFAULT_HEALTH_TIMEOUT = 10

# History store
SAMS_HOME = "~/.sams"
HISTORY_ENV_VAR = "SAMS_HISTORY_FILE"
DEFAULT_HISTORY_FILE = "~/.sams/deployment-history.json"
DEFAULT_MAX_HISTORY_SIZE = 100
DEFAULT_RETENTION_DAYS = 90
DEFAULT_STATISTICS_DAYS = 30

# Logs
LOG_DIR_ENV_VAR = "SAMS_LOG_DIR"
DEFAULT_LOG_DIR = "~/.sams/logs"
LOG_DATE_FORMAT = "%Y-%m-%d"
LOG_TIME_FORMAT = "%H-%M-%S"

# Cache busting
BUILD_ID_FILE = "build-id.json"
CACHE_BUST_MANIFEST_FILE = "cache-bust-manifest.json"
DEFAULT_VERSION_FILE = "shared/version.json"
SERVICE_WORKER_FILES = ("sw.js", "service-worker.js")
CACHE_NAME_PREFIX = "sams"
INVALIDATION_TARGETS = ["service-worker", "browser-cache", "cdn-cache", "local-storage"]
IMMUTABLE_CACHE_CONTROL = "public, max-age=31536000, immutable"
NO_CACHE_CONTROL = "no-cache, no-store, must-revalidate"

# Mobile/PWA artifacts
PWA_ESSENTIAL_FILES = ("index.html", "manifest.json", "sw.js")
PWA_OPTIONAL_FILES = ("icon-192x192.png", "icon-512x512.png")

# Hosting platform
VERCEL_TOKEN_ENV_VAR = "VERCEL_TOKEN"
VERCEL_TEAM_ENV_VAR = "VERCEL_TEAM_ID"
VERCEL_API_URL = "https://api.vercel.com"
VERCEL_URL_PATTERN = r"https://[^\s]+\.vercel\.app"
PURGE_TIMEOUT = 30

# Rules platform
FIREBASE_TOKEN_ENV_VAR = "FIREBASE_TOKEN"
FIREBASE_RULES_FILES = ("firestore.rules", "storage.rules")
FIREBASE_BACKUP_DIR = ".firebase-rules-backup"
FIREBASE_CONSOLE_URL = "https://console.firebase.google.com/project/{project}"

# Verification
SECURITY_HEADERS = (
    "x-frame-options",
    "x-content-type-options",
    "strict-transport-security",
)
DEFAULT_LOAD_TIME_THRESHOLD_MS = 3000
HTTP_CONNECT_RETRIES = 2

# Process execution
PROCESS_KILL_GRACE_PERIOD = 5
