# config.py — City hiking-trail pipeline configuration
# Edit this file to change endpoints, rate limits, search radius, etc.

import os

# ── OpenStreetMap services ───────────────────────────────────────────
# Nominatim free-text place search and the Overpass graph query service.
NOMINATIM_URL = os.environ.get(
    "NOMINATIM_URL", "https://nominatim.openstreetmap.org/search"
)
OVERPASS_URL = os.environ.get(
    "OVERPASS_URL", "https://overpass-api.de/api/interpreter"
)

# Both services reject anonymous clients; identify the tool.
USER_AGENT = os.environ.get(
    "OSM_USER_AGENT", "CharsykaFrance/1.0 (city hiking trails updater)"
)

# Per-request timeouts (seconds)
NOMINATIM_TIMEOUT = 10
OVERPASS_DETAIL_TIMEOUT = 15
OVERPASS_RELATION_TIMEOUT = 30

# ── Rate limiting ────────────────────────────────────────────────────
# Minimum spacing (seconds) between two requests to the same service.
# Nominatim's usage policy asks for at most 1 req/s.
NOMINATIM_DELAY = 2.0
OVERPASS_DELAY = 2.0

# Extra one-off wait after a 403 before moving on to the next request.
NOMINATIM_RATE_LIMIT_DELAY = 5.0
OVERPASS_RATE_LIMIT_DELAY = 10.0

# Pause between cities when updating every city file.
CITY_DELAY = 5.0

# ── Search area ──────────────────────────────────────────────────────
# Results per Nominatim fan-out query
SEARCH_RESULT_LIMIT = 10

# Search radius around the city anchor, in degrees (~30 km)
SEARCH_RADIUS_DEG = 0.3

# Flat degree→distance conversions used by the geofilter and the
# Overpass around: filter.  Not geodesic.
KM_PER_DEGREE = 111
METERS_PER_DEGREE = 111000

# Candidates further than this from the anchor are discarded
MAX_DISTANCE_KM = 30

# ── Trail filtering ──────────────────────────────────────────────────
# Individual trails shorter than this are dropped (relations are exempt)
MIN_TRAIL_LENGTH_KM = 0.5

# ── Files ────────────────────────────────────────────────────────────
# Directory holding one <city>.json document per city
DATA_DIR = os.environ.get("CITY_DATA_DIR", os.path.join("src", "data"))

# Files in DATA_DIR that are not city documents
NON_CITY_FILES = {"schema.json"}

LOG_FILE = "osm_hikes.log"
