"""Constants and default values used across the application."""

# DNS Constants
DEFAULT_DNS_TIMEOUT = 5.0  # DNS query timeout in seconds
DEFAULT_DNS_PUBLIC_SERVERS = ["8.8.8.8", "8.8.4.4", "1.1.1.1"]  # Google and Cloudflare DNS

# SPF Constants (RFC 7208)
SPF_VERSION_TAG = "v=spf1"
SPF_MAX_DNS_LOOKUPS = 10  # Section 4.6.4 limit on lookup-causing terms
SPF_MAX_MX_HOSTS = 10  # Section 4.6.4 limit on MX exchanges per "mx" mechanism
SPF_DEFAULT_IPV4_CIDR = 32
SPF_DEFAULT_IPV6_CIDR = 128

# DKIM Constants (RFC 6376)
DKIM_KEY_CACHE_TTL = 300.0  # Public key cache TTL in seconds
DKIM_MAX_WORKERS = 4  # Concurrent signature verifications
DKIM_DEFAULT_QUERY_METHOD = "dns/txt"
DKIM_DOMAINKEY_LABEL = "_domainkey"
DKIM_REQUIRED_TAGS = ["v", "a", "d", "s", "h", "bh", "b"]

# Output Display Constants
MAX_VALUE_DISPLAY = 100  # Truncate long values (keys, signatures) in CLI output

# Logging Constants
PACKAGE_LOGGER = "sender_auth"
TUNABLE_LOGGERS = ("resolvers", "validators.spf", "validators.dkim")  # [output.log_levels] keys
LOG_LEVEL_NAMES = ("debug", "info", "warning", "error", "critical")
