"""Look up venue addresses on OpenStreetMap Nominatim and photos on Wikidata."""

import asyncio
import logging
import sys
from typing import Optional
from urllib.parse import quote

import httpx

from storefront.config import configure_logging, settings

logger = logging.getLogger(__name__)

# Nominatim returns a ranked list; we only ever consider the first few.
MAX_CANDIDATES = 5

# Wikidata property for "image"
WIKIDATA_IMAGE_PROPERTY = "P18"


def _nominatim_headers() -> dict:
    return {"User-Agent": settings.geocoder_user_agent}


async def search_places(client: httpx.AsyncClient, query: str) -> list[dict]:
    """Search Nominatim for places matching a free-text address.

    Returns the raw result list (possibly empty). Transport errors and
    non-success statuses propagate as ``httpx.HTTPError``.
    """
    params = {
        "q": query,
        "format": "json",
        "addressdetails": 1,
        "limit": MAX_CANDIDATES,
        "extratags": 1,
        "bounded": 0,
    }
    resp = await client.get(
        settings.nominatim_url, params=params, headers=_nominatim_headers()
    )
    resp.raise_for_status()
    data = resp.json()
    if not isinstance(data, list):
        return []
    return data


def place_score(place: dict) -> float:
    """Importance plus 0.1 for every populated address field."""
    address = place.get("address") or {}
    populated = sum(1 for v in address.values() if v)
    return float(place.get("importance") or 0) + 0.1 * populated


def select_best_place(places: list[dict]) -> Optional[dict]:
    """Pick the highest scoring of the first few candidates.

    On a tie the earlier result wins (``max`` keeps the first maximum).
    """
    candidates = places[:MAX_CANDIDATES]
    if not candidates:
        return None
    return max(candidates, key=place_score)


def place_city(place: dict) -> Optional[str]:
    address = place.get("address") or {}
    return address.get("city") or address.get("town") or address.get("village")


def place_country(place: dict) -> Optional[str]:
    return (place.get("address") or {}).get("country")


def place_amenity(place: dict) -> Optional[str]:
    """Amenity type of a place (e.g. ``theatre``), if it is one."""
    if place.get("class") == "amenity" and place.get("type"):
        return place["type"]
    return (place.get("extratags") or {}).get("amenity")


def place_wikidata_id(place: dict) -> Optional[str]:
    return (place.get("extratags") or {}).get("wikidata")


def commons_file_url(filename: str) -> str:
    return f"{settings.commons_file_url}/{quote(filename.replace(' ', '_'), safe='')}"


async def fetch_wiki_image(client: httpx.AsyncClient, wikidata_id: str) -> Optional[str]:
    """Return a Wikimedia Commons URL for the entity's image claim, if any.

    Lookup failures are logged and reported as "no image"; the caller has a
    placeholder for that case.
    """
    url = f"{settings.wikidata_entity_url}/{wikidata_id}.json"
    try:
        resp = await client.get(url)
        resp.raise_for_status()
        data = resp.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.warning("Wikidata lookup failed for %s: %s", wikidata_id, e)
        return None

    if not isinstance(data, dict):
        return None
    entity = (data.get("entities") or {}).get(wikidata_id) or {}
    claims = (entity.get("claims") or {}).get(WIKIDATA_IMAGE_PROPERTY) or []
    if not claims:
        logger.debug("No image claim on %s", wikidata_id)
        return None

    filename = (
        claims[0].get("mainsnak", {}).get("datavalue", {}).get("value")
    )
    if not isinstance(filename, str) or not filename:
        return None
    return commons_file_url(filename)


async def main() -> None:
    """CLI: geocode an address and print the candidates."""
    if len(sys.argv) < 2:
        print("Usage: python -m storefront.geocoder <address>")
        print('Example: python -m storefront.geocoder "Royal Albert Hall, London"')
        sys.exit(1)

    configure_logging()
    query = " ".join(sys.argv[1:])
    async with httpx.AsyncClient(timeout=settings.http_timeout_seconds) as client:
        places = await search_places(client, query)
        if not places:
            print("No results found.")
            return

        best = select_best_place(places)
        for i, place in enumerate(places[:MAX_CANDIDATES], 1):
            marker = "*" if place is best else " "
            print(f" {marker}{i}. {place.get('display_name')}")
            print(f"     Score:    {place_score(place):.2f}")
            print(f"     City:     {place_city(place) or 'N/A'}")
            print(f"     Amenity:  {place_amenity(place) or 'N/A'}")
            print(f"     Wikidata: {place_wikidata_id(place) or 'N/A'}")

        wikidata_id = place_wikidata_id(best)
        if wikidata_id:
            image = await fetch_wiki_image(client, wikidata_id)
            print(f"\nImage: {image or 'none'}")


if __name__ == "__main__":
    asyncio.run(main())
