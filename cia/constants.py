"""Names shared between the service and its clients."""

VERSION = "3.2.5"

# Request headers understood by the backend services.
HTTP_TENANT_HEADER = "X-Vulas-Tenant"
HTTP_SPACE_HEADER = "X-Vulas-Space"

# Configuration keys
SHARED_VERSION = "shared.version"
SERVER_HOST = "server.host"
SERVER_PORT = "server.port"
LOG_LEVEL = "log.level"
