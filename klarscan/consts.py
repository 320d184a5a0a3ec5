from datetime import timedelta

# Environment settings
OPTION_CLAIR_OUTPUT = "CLAIR_OUTPUT"
OPTION_CLAIR_ADDRESS = "CLAIR_ADDR"
OPTION_KLAR_TRACE = "KLAR_TRACE"
OPTION_CLAIR_THRESHOLD = "CLAIR_THRESHOLD"
OPTION_CLAIR_TIMEOUT = "CLAIR_TIMEOUT"  # minutes
OPTION_DOCKER_TIMEOUT = "DOCKER_TIMEOUT"  # minutes
OPTION_JSON_OUTPUT = "JSON_OUTPUT"  # deprecated, use FORMAT_OUTPUT=json
OPTION_FORMAT_OUTPUT = "FORMAT_OUTPUT"
OPTION_DOCKER_USER = "DOCKER_USER"
OPTION_DOCKER_PASSWORD = "DOCKER_PASSWORD"
OPTION_DOCKER_TOKEN = "DOCKER_TOKEN"
OPTION_DOCKER_INSECURE = "DOCKER_INSECURE"
OPTION_DOCKER_PLATFORM_OS = "DOCKER_PLATFORM_OS"
OPTION_DOCKER_PLATFORM_ARCH = "DOCKER_PLATFORM_ARCH"
OPTION_REGISTRY_INSECURE = "REGISTRY_INSECURE"
OPTION_WHITELIST_FILE = "WHITELIST_FILE"
OPTION_IGNORE_UNFIXED = "IGNORE_UNFIXED"
OPTION_K8S_IMAGE_PULL_SECRET = "K8S_IMAGE_PULL_SECRET"

# Defaults
DEFAULT_FORMAT_STYLE = "standard"
MIN_TIMEOUT_MINUTES = 1
TIMEOUT_UNIT = timedelta(minutes=1)

# Registry constants
DOCKER_HUB_DOMAIN = "docker.io"
DOCKER_HUB_REGISTRY_HOST = "registry-1.docker.io"
DOCKER_HUB_OFFICIAL_NAMESPACE = "library"
DOCKER_HUB_ALIASES = (
    "docker.io",
    "index.docker.io",
    "registry-1.docker.io",
)
DEFAULT_TAG = "latest"
DEFAULT_PLATFORM_OS = "linux"
DEFAULT_PLATFORM_ARCH = "amd64"

MEDIA_TYPE_MANIFEST_V1 = "application/vnd.docker.distribution.manifest.v1+prettyjws"
MEDIA_TYPE_MANIFEST_V2 = "application/vnd.docker.distribution.manifest.v2+json"
MEDIA_TYPE_MANIFEST_LIST = "application/vnd.docker.distribution.manifest.list.v2+json"
MEDIA_TYPE_OCI_MANIFEST = "application/vnd.oci.image.manifest.v1+json"
MEDIA_TYPE_OCI_INDEX = "application/vnd.oci.image.index.v1+json"

MANIFEST_ACCEPT_TYPES = [
    MEDIA_TYPE_MANIFEST_LIST,
    MEDIA_TYPE_OCI_INDEX,
    MEDIA_TYPE_MANIFEST_V2,
    MEDIA_TYPE_OCI_MANIFEST,
    MEDIA_TYPE_MANIFEST_V1,
]

# Clair constants
CLAIR_DEFAULT_PORT = 6060
CLAIR_LAYER_FORMAT = "Docker"

# Result forwarding
FORWARDING_TIMEOUT_SECONDS = 30.0
