"""
Shared constants for ComfyUI-Router.
"""
import os

# Timeouts (in seconds)
TRANSPORT_TIMEOUT = float(os.environ.get('COMFYUI_ROUTER_TRANSPORT_TIMEOUT', '300'))  # Hard cap on any single worker call (5 min)
HEALTH_CHECK_TIMEOUT = TRANSPORT_TIMEOUT

# Upload retry policy
UPLOAD_MAX_ATTEMPTS = 3
UPLOAD_BACKOFF_BASE = 2  # delay before attempt i+1 is BASE ** i seconds

# ComfyUI worker API paths
PROMPT_PATH = "/prompt"
QUEUE_PATH = "/queue"
SYSTEM_STATS_PATH = "/system_stats"
UPLOAD_IMAGE_PATH = "/upload/image"
UPLOAD_MASK_PATH = "/upload/mask"
HISTORY_PATH = "/history"

# Network
CONNECTOR_LIMIT = 100
CONNECTOR_LIMIT_PER_HOST = 30
DEFAULT_WORKER_PORT = 8188
DEFAULT_LISTEN_PORT = 8190

# Hosts that are only reachable over https (cloud proxies, tunnels)
HTTPS_HOST_SUFFIXES = (
    ".proxy.runpod.net",
    ".ngrok-free.app",
    ".ngrok-free.dev",
    ".ngrok.io",
)

# File paths
DEFAULT_CONFIG_FILE = os.path.join(os.path.dirname(os.path.dirname(__file__)), "router_config.json")

def get_config_file():
    """Config location, overridable with the COMFYUI_ROUTER_CONFIG env var."""
    return os.environ.get('COMFYUI_ROUTER_CONFIG', DEFAULT_CONFIG_FILE)
