"""Internal constants shared across the library."""

# ------------------------------------------------------------------
# Shared store keys
# ------------------------------------------------------------------

SYS_CONFIG_KEY = "sys:config"
NETWORK_INFO_KEY = "sys:network:info"
DEBUG_KEY = "system:debug"

# Reserved fields of the network-info hash; every other field is an interface.
CONFIG_FIELD = "config"
OPER_FIELD = "oper"
DDNS_FIELD = "ddns"
PUBLIC_IP_FIELD = "publicIp"
RESERVED_NETWORK_FIELDS: frozenset[str] = frozenset({CONFIG_FIELD, OPER_FIELD, DDNS_FIELD, PUBLIC_IP_FIELD})

LANGUAGE_FIELD = "language"
TIMEZONE_FIELD = "timezone"

# ------------------------------------------------------------------
# Pub/sub channels
# ------------------------------------------------------------------

DEBUG_CHANNEL = "System:DebugChange"
LANGUAGE_CHANNEL = "System:LanguageChange"
TIMEZONE_CHANNEL = "System:TimezoneChange"

# ------------------------------------------------------------------
# Classification
# ------------------------------------------------------------------

DEFAULT_DNS_SERVERS: frozenset[str] = frozenset({"75.75.75.75", "75.75.75.76", "8.8.8.8"})
DEFAULT_OPERATOR_DOMAIN = "encipher.io"
DEFAULT_SERVER_HOST = "firewalla.encipher.io"

BROADCAST_IPV4 = "255.255.255.255"
MULTICAST_IPV4_LOW = 0xE0000000  # 224.0.0.0
MULTICAST_IPV4_HIGH = 0xEFFFFFFF  # 239.255.255.255

HASH_DEBUG_COMPONENT = "FW_HASHDEBUG"

#: Server address cache lifetime in seconds (24 hours).
DEFAULT_SERVER_CACHE_TTL: float = 24 * 3600
