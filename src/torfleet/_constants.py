"""Internal constants shared across the library."""

BASE_URL = "https://torapis.tor-iot.com"
USER_AGENT = "torfleet/1"
LOGIN_ENDPOINT = "/Auth/login"

#: Default provider endpoints for the two datasets joined on every cycle.
META_ENDPOINT = "/Vehicle/GetVehicleDetails"
TELEMETRY_ENDPOINT = "/Vehicle/GetLiveTrackingData"

#: Status codes the provider uses to reject an expired or unknown token.
AUTH_FAILURE_STATUSES: frozenset[int] = frozenset({401, 403})

PAGE_SIZE = 1000
LOGIN_TIMEOUT_S = 10.0
REQUEST_TIMEOUT_S = 30.0

HISTORY_LIMIT = 5000
HISTORY_QUERY_DEFAULT = 500
HISTORY_QUERY_MAX = 1000

OFFLINE_AFTER_MINUTES = 15
NON_COMMUNICATING_AFTER_MINUTES = 1440

#: Display placeholder for metadata fields the provider did not report.
PLACEHOLDER = "---"
