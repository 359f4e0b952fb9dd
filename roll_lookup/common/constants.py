"""Application constants."""

COMMANDS = ("ingest", "lookup", "stats")
EXIT_SUCCESS = 0
EXIT_NO_MATCH = 1
EXIT_PARTIAL = 10
EXIT_HARD_FAIL = 20

# Declaration order of key fields; ambiguity reports follow this order.
KEY_FIELDS = ("citizen_id", "day", "year", "fn", "sn1", "sn2", "post_code")
OPTIONAL_KEY_FIELDS = KEY_FIELDS[1:]
OPAQUE_KEY_COLUMN = "key"
STATION_REF_COLUMN = "station_id"
DUPLICATE_POLICIES = ("replace", "reject")
ENV_PREFIX = "ROLL_"

JSON_LOG_FIELDS = (
    "timestamp",
    "run_id",
    "stage",
    "event",
    "status",
    "rows_read",
    "rows_imported",
    "rows_skipped",
    "row_number",
    "field",
    "error_code",
    "duration_ms",
    "message",
)
