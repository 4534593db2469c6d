"""Verify the events backend and the geocoder are reachable."""

import asyncio

import httpx

from storefront.config import settings
from storefront.errors import FetchError
from storefront.events_client import fetch_events_page
from storefront.geocoder import search_places


async def main() -> None:
    async with httpx.AsyncClient(timeout=settings.http_timeout_seconds) as client:
        # One event is enough to prove the listing endpoint answers
        try:
            page = await fetch_events_page(client, 1, 1)
            print(f"Events backend OK: {settings.api_base_url} (total: {page.total})")
        except FetchError as e:
            print(f"Events backend FAILED: {e}")

        try:
            places = await search_places(client, "London")
            print(f"Geocoder OK: {settings.nominatim_url} ({len(places)} results)")
        except httpx.HTTPError as e:
            print(f"Geocoder FAILED: {e}")

    print("Done.")


if __name__ == "__main__":
    asyncio.run(main())
