"""
Heuristics deciding which OpenStreetMap places count as hiking trails.

All lookup tables live at module level so they can be tuned (and tested)
without touching the control flow below.
"""

# ── Search queries ───────────────────────────────────────────────────
# Nominatim fan-out, formatted with the city name. Order matters only for
# which duplicate survives deduplication.
SEARCH_QUERY_TEMPLATES = [
    "route=hiking {city}",
    "network=gr {city}",
    "network=pr {city}",
    "ref=GR {city}",
    "ref=PR {city}",
    "sentier de randonnée {city}",
    "chemin de randonnée {city}",
    "parc naturel {city}",
    "montagne {city} hiking",
    "trail {city} hiking",
]

# ── Candidate classification ─────────────────────────────────────────
REJECTED_CLASSES = {"shop", "healthcare", "amenity"}

REJECTED_TYPES = {
    # healthcare
    "speech_therapist", "doctor", "dentist", "pharmacy",
    # shops
    "outdoor", "clothes", "sports", "jewelry",
}

# Substrings of display_name that mark a business rather than a trail
COMMERCIAL_KEYWORDS = [
    "fromagerie", "shop", "store", "cabinet", "consultation", "association",
]

PATH_HIGHWAYS = {"path", "footway", "bridleway"}
HIKING_PATH_TAGS = ["hiking", "foot", "trail_visibility", "sac_scale"]
HIKING_NETWORK_MARKERS = ["gr", "pr", "hiking"]
HIKING_REF_MARKERS = ["GR", "PR", "HRP"]

PARK_LEISURE = {"park", "nature_reserve"}
NATURAL_DESTINATIONS = {"peak", "mountain", "cliff", "waterfall"}
TOURISM_DESTINATIONS = {"viewpoint", "information"}

HIKING_NAME_KEYWORDS = [
    "sentier de randonnée", "chemin de randonnée", "gr", "grande randonnée",
    "parc naturel", "nature reserve", "montagne hiking", "trail hiking",
]

# ── Trail names ──────────────────────────────────────────────────────
PLACEHOLDER_NAMES = {
    "unnamed place", "unnamed", "place", "location", "trail", "path", "route",
    "hiking route", "walking path", "footpath", "way", "track",
}
PLACEHOLDER_NAME_FRAGMENTS = [
    "unnamed", "unknown", "hiking route", "walking path", "footpath",
]
MIN_NAME_LENGTH = 3

# ── Difficulty ───────────────────────────────────────────────────────
EASY, MODERATE, HARD = "Easy", "Moderate", "Hard"

# Free-text difficulty / difficulty:grade values
DIFFICULTY_LABELS = {
    "easy": EASY,
    "facile": EASY,
    "beginner": EASY,
    "moderate": MODERATE,
    "medium": MODERATE,
    "intermediate": MODERATE,
    "moyen": MODERATE,
    "moyenne": MODERATE,
    "hard": HARD,
    "difficult": HARD,
    "difficile": HARD,
    "expert": HARD,
    "advanced": HARD,
}

SAC_SCALE = {
    "T1": EASY, "T2": EASY,
    "T3": MODERATE, "T4": MODERATE,
    "T5": HARD, "T6": HARD,
    # OSM stores sac_scale as words
    "hiking": EASY,
    "mountain_hiking": EASY,
    "demanding_mountain_hiking": MODERATE,
    "alpine_hiking": MODERATE,
    "demanding_alpine_hiking": HARD,
    "difficult_alpine_hiking": HARD,
}


def place_tags(place):
    """Tag bag of a Nominatim hit: extratags plus its class=type pair."""
    tags = dict(place.get("extratags") or place.get("tags") or {})
    if place.get("class") and place.get("type"):
        tags.setdefault(place["class"], place["type"])
    return tags


def _contains_any(text, keywords):
    return any(keyword in text for keyword in keywords)


def is_hiking_trail(place):
    """Return True if a Nominatim hit looks like a hiking trail or destination."""
    tags = place_tags(place)
    display_name = (place.get("display_name") or "").lower()
    name = (place.get("name") or "").strip()
    place_class = place.get("class") or ""
    place_type = place.get("type") or ""

    if not name or name == "Unnamed place":
        return False

    if place_class in REJECTED_CLASSES or place_type in REJECTED_TYPES:
        return False
    if "shop" in tags or "healthcare" in tags:
        return False

    # Buildings only pass when they are tagged as a park or reserve
    if place_class == "building" and tags.get("building") == "yes":
        if tags.get("leisure") not in PARK_LEISURE:
            return False

    if _contains_any(display_name, COMMERCIAL_KEYWORDS):
        return False

    if tags.get("route") in ("hiking", "foot"):
        return True

    if tags.get("highway") in PATH_HIGHWAYS:
        if any(tags.get(key) for key in HIKING_PATH_TAGS):
            return True
        if _contains_any(tags.get("network", "").lower(), HIKING_NETWORK_MARKERS):
            return True
        if _contains_any(tags.get("ref", ""), HIKING_REF_MARKERS):
            return True

    if tags.get("leisure") in PARK_LEISURE:
        if tags.get("natural") or tags.get("tourism") == "viewpoint" or tags.get("information"):
            return True
        if _contains_any(tags.get("name", name).lower(), ["parc", "park"]):
            return True

    if tags.get("natural") in NATURAL_DESTINATIONS:
        return True

    if tags.get("tourism") in TOURISM_DESTINATIONS:
        return True

    return _contains_any(name.lower(), HIKING_NAME_KEYWORDS)


def is_valid_trail_name(name):
    if not name or not name.strip():
        return False
    name = name.strip()
    lowered = name.lower()
    if lowered in PLACEHOLDER_NAMES:
        return False
    if _contains_any(lowered, PLACEHOLDER_NAME_FRAGMENTS):
        return False
    return len(name) >= MIN_NAME_LENGTH


def _mtb_difficulty(value):
    try:
        scale = int(str(value).strip().rstrip("+-"))
    except ValueError:
        return None
    if scale <= 2:
        return EASY
    if scale <= 4:
        return MODERATE
    return HARD


def infer_difficulty(tags):
    """Map OSM difficulty-ish tags onto Easy / Moderate / Hard.

    Sources in priority order: difficulty, difficulty:grade, mtb:scale,
    sac_scale. Never guessed from length or name.
    """
    for key in ("difficulty", "difficulty:grade"):
        value = tags.get(key)
        if value is not None:
            label = DIFFICULTY_LABELS.get(str(value).strip().lower())
            if label:
                return label

    if tags.get("mtb:scale") is not None:
        label = _mtb_difficulty(tags["mtb:scale"])
        if label:
            return label

    sac = tags.get("sac_scale")
    if sac is not None:
        sac = str(sac).strip()
        return SAC_SCALE.get(sac.upper()) or SAC_SCALE.get(sac.lower())

    return None
