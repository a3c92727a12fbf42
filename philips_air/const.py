"""Constants for the Philips air purifier CoAP client."""

DOMAIN = "philips_air"

# ---------------------------------------------------------------------------
# CoAP endpoints
# ---------------------------------------------------------------------------
DEFAULT_PORT = 5683

SYNC_PATH = "/sys/dev/sync"
CONTROL_PATH = "/sys/dev/control"
STATUS_PATH = "/sys/dev/status"

SYNC_NONCE_BYTES = 4

# ---------------------------------------------------------------------------
# Encryption (AES-128-CBC keyed from MD5(secret + client key))
# ---------------------------------------------------------------------------
ENCRYPTION_SECRET = "JiangPan"
CLIENT_KEY_LENGTH = 8  # hex chars
DIGEST_LENGTH = 64  # hex chars, SHA-256

# ---------------------------------------------------------------------------
# Reported field codes
# ---------------------------------------------------------------------------
FIELD_PM25 = "D03224"
FIELD_MODE = "D0310C"
FIELD_POWER = "D03102"
FIELD_MANUAL_SPEED = "D03-13"
FIELD_FIRMWARE = "D01S12"
FIELD_DEVICE_ID = "DeviceId"
FIELD_DEVICE_ID_ALT = "D01S0D"
FIELD_MODEL_ID = "D01S05"
FIELD_MODEL_ID_ALT = "modelid"
FIELD_PRODUCT_ID = "ProductId"
FIELD_NAME = "name"
FIELD_TYPE = "type"
FIELD_WIFI_VERSION = "WifiVersion"

# ---------------------------------------------------------------------------
# Desired-state parameter keys
# ---------------------------------------------------------------------------
PARAM_POWER = "D03-02"
PARAM_TRIGGER = "D03-03"
PARAM_MODE = "D03-12"
PARAM_MANUAL_SPEED = "D03-13"

COMMAND_TYPE = "app"

MANUAL_SPEED_MIN = 1
MANUAL_SPEED_MAX = 100

RESULT_SUCCESS = "success"

# ---------------------------------------------------------------------------
# Timing (seconds)
# ---------------------------------------------------------------------------
DEFAULT_COMMAND_DELAY = 1.0  # minimum spacing between completed commands
DEFAULT_COMMAND_TIMEOUT = 10.0  # sync + control round trip
DEFAULT_LOCK_TIMEOUT = 15.0  # wait for the per-device command lock
DEFAULT_RECONNECT_DELAY = 5.0  # grows linearly per failed attempt
DEFAULT_MAX_RECONNECT_DELAY = 30.0
DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_COOLDOWN = 60.0  # wait after max attempts, counter resets
DEFAULT_DROP_DELAY = 5.0  # wait after an established stream drops
DEFAULT_STALE_TIMEOUT = 300.0  # no notifications → stream considered dead

# ---------------------------------------------------------------------------
# Configuration keys
# ---------------------------------------------------------------------------
CONF_DEVICES = "devices"
CONF_NAME = "name"
CONF_IP = "ip"
CONF_PORT = "port"
CONF_COMMAND_DELAY = "command_delay"
CONF_COMMAND_TIMEOUT = "command_timeout"
CONF_LOCK_TIMEOUT = "lock_timeout"
CONF_RECONNECT_DELAY = "reconnect_delay"
CONF_MAX_RECONNECT_DELAY = "max_reconnect_delay"
CONF_MAX_ATTEMPTS = "max_attempts"
CONF_COOLDOWN = "cooldown"
CONF_DROP_DELAY = "drop_delay"
CONF_STALE_TIMEOUT = "stale_timeout"

DEFAULT_NAME = "Philips Air Purifier"
