import os
from dotenv import load_dotenv

load_dotenv()

# Directory being served and watched
SERVE_ROOT = os.getenv("GWELD_ROOT", ".")

# Default to 8000, just like Python's http.server
PORT = int(os.getenv("GWELD_PORT", "8000"))
HOST = os.getenv("GWELD_HOST", "::")

INDEX_DOCUMENT = os.getenv("GWELD_INDEX", "index.html")
IMAGE_MAX_AGE = int(os.getenv("GWELD_IMAGE_MAX_AGE", "10"))
LOG_LEVEL = os.getenv("GWELD_LOG_LEVEL", "INFO")

# Endpoint the injected script subscribes to
HAS_UPDATE_PATH = "/_has_update"

# Largest slice returned for a single video range request
RANGE_CHUNK_SIZE = 1_000_000

# How often an idle event stream checks whether its tab is still there
DISCONNECT_POLL_SECONDS = float(os.getenv("GWELD_DISCONNECT_POLL", "1.0"))
