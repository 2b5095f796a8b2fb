"""
osm_hikes.py — Discover hiking trails around a city from OpenStreetMap and
store them in the city's JSON document.

Usage:
    python3 osm_hikes.py lyon                      # update src/data/lyon.json
    python3 osm_hikes.py lyon --data-dir data      # custom data directory
    python3 osm_hikes.py --all                     # every city file in the data dir

How it works:
  1. Geocode the city with Nominatim; its first hit is the anchor.
  2. Run a fixed list of Nominatim text queries, keep hits within ~30 km of
     the anchor that look like hiking trails, and fetch their geometry from
     Overpass to get a length and a difficulty.
  3. Query Overpass for hiking route relations around the anchor; each one
     becomes a trail placed at the anchor.
  4. Deduplicate, drop short or placeholder-named trails, sum the lengths.
"""

import argparse
import json
import logging
import os
import re
import sys
import time

from config import (
    CITY_DELAY,
    DATA_DIR,
    LOG_FILE,
    MAX_DISTANCE_KM,
    METERS_PER_DEGREE,
    MIN_TRAIL_LENGTH_KM,
    NON_CITY_FILES,
    OVERPASS_RELATION_TIMEOUT,
    SEARCH_RADIUS_DEG,
)
from osm_client import OSMClient, OSMServiceError, UpstreamRateLimited
from trail_geometry import (
    flat_distance_km,
    length_from_tags,
    path_length_km,
    round_one_decimal,
)
from trail_rules import (
    SEARCH_QUERY_TEMPLATES,
    infer_difficulty,
    is_hiking_trail,
    is_valid_trail_name,
    place_tags,
)

logger = logging.getLogger(__name__)

SOURCE = "OpenStreetMap"
OSM_URL = "https://www.openstreetmap.org/{type}/{id}"
HIKING_NETWORK_RE = re.compile(r"^(gr|pr|hiking)")

# Names Nominatim uses when a place has none
GENERIC_PLACE_NAMES = {"Unnamed place", "Unnamed", "Place", "Location"}


class CityNotFound(Exception):
    """Raised when the anchor lookup returns no result."""

    pass


def build_detail_query(osm_type, osm_id):
    """Overpass query returning an element together with its ways and nodes."""
    return f"[out:json][timeout:25];{osm_type}({osm_id});(._;>;);out body;"


def build_relation_query(lat, lon, radius_m):
    around = f"around:{radius_m:g},{lat},{lon}"
    return f"""[out:json][timeout:25];
(
  relation["type"="route"]["route"="hiking"]({around});
  relation["type"="route"]["route"="foot"]({around});
  relation["type"="route"]["network"~"^(gr|pr|hiking)"]({around});
);
out body;
>;
out skel qt;"""


def index_elements(elements):
    """Split an Overpass element list into node coords, ways and relations by id."""
    nodes, ways, relations = {}, {}, {}
    for elem in elements:
        kind = elem.get("type")
        if "id" not in elem:
            continue
        if kind == "node" and "lat" in elem and "lon" in elem:
            try:
                nodes[elem["id"]] = (float(elem["lat"]), float(elem["lon"]))
            except (TypeError, ValueError):
                logger.warning(f"Skipping node {elem['id']} with bad coordinates")
        elif kind == "way":
            ways[elem["id"]] = elem
        elif kind == "relation":
            relations[elem["id"]] = elem
    return nodes, ways, relations


def way_length_km(way, nodes):
    """Haversine length of a way; consecutive pairs with a missing node are skipped."""
    refs = way.get("nodes") or []
    total = 0.0
    for a, b in zip(refs, refs[1:]):
        if a in nodes and b in nodes:
            total += path_length_km([nodes[a], nodes[b]])
    return total


def relation_length_km(relation, ways, nodes):
    return sum(
        way_length_km(ways[m["ref"]], nodes)
        for m in relation.get("members", [])
        if m.get("type") == "way" and m.get("ref") in ways
    )


def is_hiking_relation(tags):
    if tags.get("route") in ("hiking", "foot"):
        return True
    return bool(HIKING_NETWORK_RE.match(tags.get("network", "")))


def dedupe_trails(trails):
    """Keep the first trail for each (name, lat, lon)."""
    seen = set()
    unique = []
    for trail in trails:
        lat, lon = trail["coordinates"]
        key = (trail["name"], lat, lon)
        if key in seen:
            continue
        seen.add(key)
        unique.append(trail)
    return unique


def total_length_km(trails):
    return round_one_decimal(sum(t["length"] or 0 for t in trails))


def make_trail(name, description, coordinates, length, difficulty, osm_type, osm_id):
    return {
        "name": name,
        "description": description,
        "coordinates": list(coordinates),
        "length": round_one_decimal(length),
        "difficulty": difficulty,
        "externalId": osm_id,
        "externalType": osm_type,
        "externalUrl": OSM_URL.format(type=osm_type, id=osm_id),
        "source": SOURCE,
    }


class TrailDiscoveryPipeline:
    """Turns a city name into a deduplicated list of hiking trails."""

    def __init__(self, client=None):
        self.client = client or OSMClient()
        self.max_distance_km = MAX_DISTANCE_KM
        self.min_length_km = MIN_TRAIL_LENGTH_KM
        self.radius_m = SEARCH_RADIUS_DEG * METERS_PER_DEGREE

    def discover_trails(self, city_name):
        """Return {'trails': [...], 'total_length': km} for a city.

        Upstream failures only ever reduce the number of trails found.
        """
        try:
            anchor = self.resolve_anchor(city_name)
        except CityNotFound as e:
            logger.error(str(e))
            return {"trails": [], "total_length": 0}
        except OSMServiceError as e:
            logger.error(f"Could not geocode {city_name}: {e}")
            if isinstance(e, UpstreamRateLimited):
                self.client.pause_after_rate_limit(e.service)
            return {"trails": [], "total_length": 0}

        logger.info(f"Anchor for {city_name}: {anchor[0]}, {anchor[1]}")

        candidate_trails = []
        for place in self.search_candidates(city_name, anchor):
            trail = self.trail_from_place(place)
            if trail is not None:
                candidate_trails.append(trail)
        candidate_trails = [
            t for t in dedupe_trails(candidate_trails)
            if t["length"] is not None and t["length"] >= self.min_length_km
        ]
        logger.info(f"{len(candidate_trails)} individual trails of at least "
                    f"{self.min_length_km} km")

        relation_trails = self.search_relations(anchor)
        logger.info(f"{len(relation_trails)} hiking route relations")

        trails = [
            t for t in dedupe_trails(candidate_trails + relation_trails)
            if is_valid_trail_name(t["name"])
        ]
        return {"trails": trails, "total_length": total_length_km(trails)}

    def resolve_anchor(self, city_name):
        results = self.client.search(city_name, limit=1, extratags=False)
        if not results:
            raise CityNotFound(f"City not found: {city_name}")
        try:
            return float(results[0]["lat"]), float(results[0]["lon"])
        except (KeyError, TypeError, ValueError):
            raise CityNotFound(f"City not found: {city_name} (no usable coordinates)")

    def is_near_anchor(self, place, anchor):
        if not place.get("lat") or not place.get("lon"):
            return False
        try:
            lat, lon = float(place["lat"]), float(place["lon"])
        except (TypeError, ValueError):
            logger.warning(f"Skipping {place.get('display_name')!r}: bad coordinates")
            return False
        return flat_distance_km(lat, lon, anchor[0], anchor[1]) <= self.max_distance_km

    def search_candidates(self, city_name, anchor):
        """Run every fan-out query and return the accepted Nominatim hits."""
        accepted = []
        for template in SEARCH_QUERY_TEMPLATES:
            query = template.format(city=city_name)
            try:
                places = self.client.search(query)
            except UpstreamRateLimited as e:
                logger.warning(f"Rate limited for query \"{query}\", skipping...")
                self.client.pause_after_rate_limit(e.service)
                continue
            except OSMServiceError as e:
                logger.warning(f"Error searching \"{query}\": {e}")
                continue

            kept = [p for p in places
                    if self.is_near_anchor(p, anchor) and is_hiking_trail(p)]
            logger.info(f"  \"{query}\": {len(places)} results, {len(kept)} kept")
            accepted.extend(kept)
        return accepted

    def fetch_details(self, osm_type, osm_id):
        """Fetch an element plus its ways/nodes; None when Overpass fails."""
        try:
            return self.client.overpass(build_detail_query(osm_type, osm_id))
        except UpstreamRateLimited as e:
            self.client.pause_after_rate_limit(e.service)
        except OSMServiceError as e:
            logger.error(f"Error getting details for {osm_type}/{osm_id}: {e}")
        return None

    def trail_from_place(self, place):
        """Build a trail from an accepted Nominatim hit, or None."""
        display_name = place.get("display_name") or ""
        name = display_name.split(",")[0].strip()
        lowered = name.lower()
        if (not name or name in GENERIC_PLACE_NAMES
                or "unnamed" in lowered or "unknown" in lowered):
            return None

        osm_type = place.get("osm_type")
        osm_id = place.get("osm_id")
        tags = place_tags(place)
        length = None

        elements = self.fetch_details(osm_type, osm_id) if osm_type and osm_id else None
        if elements:
            nodes, ways, relations = index_elements(elements)
            element = {"way": ways, "relation": relations}.get(osm_type, {}).get(osm_id)
            if element is None:
                element = next(
                    (e for e in elements if e.get("type") == osm_type and e.get("id") == osm_id),
                    None,
                )
            if element is not None:
                tags = dict(tags, **(element.get("tags") or {}))
                length = length_from_tags(tags)
                if length is None and osm_type == "way":
                    length = way_length_km(element, nodes)
                elif length is None and osm_type == "relation":
                    length = relation_length_km(element, ways, nodes)

        return make_trail(
            name,
            display_name,
            (float(place["lat"]), float(place["lon"])),
            length,
            infer_difficulty(tags),
            osm_type,
            osm_id,
        )

    def search_relations(self, anchor):
        """Query Overpass for hiking route relations around the anchor."""
        query = build_relation_query(anchor[0], anchor[1], self.radius_m)
        try:
            elements = self.client.overpass(query, timeout=OVERPASS_RELATION_TIMEOUT)
        except UpstreamRateLimited as e:
            logger.warning("Rate limited by Overpass for relations")
            self.client.pause_after_rate_limit(e.service)
            return []
        except OSMServiceError as e:
            logger.error(f"Error searching hiking route relations: {e}")
            return []
        return self.trails_from_relations(elements, anchor)

    def trails_from_relations(self, elements, anchor):
        """One trail per hiking relation, placed at the anchor."""
        nodes, ways, relations = index_elements(elements)
        trails = []
        for relation_id, relation in relations.items():
            tags = relation.get("tags") or {}
            if not is_hiking_relation(tags):
                continue
            name = tags.get("name") or f"Hiking Route {relation_id}"
            description = (f"{tags.get('name') or 'Hiking Route'} "
                           f"({tags.get('network') or 'hiking'})")
            trails.append(make_trail(
                name,
                description,
                anchor,
                relation_length_km(relation, ways, nodes),
                infer_difficulty(tags),
                "relation",
                relation_id,
            ))
        return trails


# ── City files ───────────────────────────────────────────────────────

def city_file_path(city_name, data_dir=DATA_DIR):
    return os.path.join(data_dir, f"{city_name}.json")


def update_city_hikes(city_name, data_dir=DATA_DIR, pipeline=None):
    """Replace geography.hikes / hikesTotalLength in the city's JSON file.

    Raises FileNotFoundError before any network call if the file is missing.
    Other sections of the document are left untouched.
    """
    city_file = city_file_path(city_name, data_dir)
    if not os.path.exists(city_file):
        raise FileNotFoundError(f"City file not found: {city_file}")

    with open(city_file, encoding="utf-8") as f:
        city_data = json.load(f)

    pipeline = pipeline or TrailDiscoveryPipeline()
    result = pipeline.discover_trails(city_name)

    geography = city_data.setdefault("geography", {})
    geography["hikes"] = result["trails"]
    geography["hikesTotalLength"] = result["total_length"]

    with open(city_file, "w", encoding="utf-8") as f:
        json.dump(city_data, f, indent=2, ensure_ascii=False)

    logger.info(f"Saved {len(result['trails'])} trails "
                f"({result['total_length']} km) to {city_file}")
    return result


def list_city_names(data_dir=DATA_DIR):
    return sorted(
        name[:-len(".json")]
        for name in os.listdir(data_dir)
        if name.endswith(".json") and name not in NON_CITY_FILES
    )


def update_all_cities(data_dir=DATA_DIR, pipeline=None):
    """Update every city file; a failing city is logged and skipped.

    Returns the names of the cities that were updated.
    """
    pipeline = pipeline or TrailDiscoveryPipeline()
    cities = list_city_names(data_dir)
    logger.info(f"Updating hikes for {len(cities)} cities")

    updated = []
    for i, city_name in enumerate(cities):
        try:
            update_city_hikes(city_name, data_dir, pipeline)
            updated.append(city_name)
        except (OSError, ValueError) as e:
            logger.error(f"Skipping {city_name}: {e}")

        if i < len(cities) - 1:
            time.sleep(CITY_DELAY)
    return updated


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Find hiking trails around a city and store them in its JSON file",
    )
    parser.add_argument("city", nargs="?", help="City name, e.g. lyon (matches <data-dir>/<city>.json)")
    parser.add_argument("--data-dir", default=DATA_DIR, help=f"Directory of city JSON files (default: {DATA_DIR})")
    parser.add_argument("--all", action="store_true", help="Update every city file in the data directory")
    return parser, parser.parse_args(argv)


def main(argv=None):
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(LOG_FILE),
            logging.StreamHandler(sys.stdout),
        ]
    )

    parser, args = parse_args(argv)

    if args.all:
        updated = update_all_cities(args.data_dir)
        logger.info(f"Updated {len(updated)} cities")
        return True

    if not args.city:
        parser.print_usage()
        logger.error("A city name is required (or use --all)")
        return False

    logger.info(f"Updating hiking trails for {args.city}...")
    try:
        result = update_city_hikes(args.city, args.data_dir)
    except FileNotFoundError as e:
        logger.error(str(e))
        return False
    except (OSError, ValueError) as e:
        logger.error(f"Error updating hiking trails: {e}")
        return False

    logger.info(f"Hiking trails update completed: {len(result['trails'])} trails, "
                f"{result['total_length']} km")
    return True


if __name__ == '__main__':
    success = main()
    sys.exit(0 if success else 1)
