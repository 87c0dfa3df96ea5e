VERSION = "0.4.0"

# Version tag written into every persisted AppState payload.
STATE_SCHEMA_VERSION = 2
