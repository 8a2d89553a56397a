import argparse
import asyncio
import os
import sys

from dotenv import load_dotenv
load_dotenv()

import httpx


DEFAULT_BASE_URL = os.environ.get("STOREFRONT_SEARCH_URL", "http://localhost:8000")


async def warm(base_url: str, slugs: list[str], action: str) -> int:
    """
    Ask the search service to rebuild (and optionally pre-warm) each
    storefront index. Returns the number of storefronts that failed.
    """
    failures = 0

    async with httpx.AsyncClient(base_url=base_url, timeout=120) as client:
        for i, slug in enumerate(slugs):
            print(f"Warming ({i+1}/{len(slugs)}): {slug}")
            try:
                resp = await client.post(f"/search/{slug}", json={"action": action})
                resp.raise_for_status()
            except httpx.HTTPError as exc:
                print(f"  failed: {type(exc).__name__}: {exc}")
                failures += 1
                continue

            data = resp.json()
            print(
                f"  cached={data['cached']} warmed={data.get('warmedQueries', 0)} "
                f"in {data['loadTime']}"
            )

    return failures


def main() -> None:
    parser = argparse.ArgumentParser(description="Pre-warm storefront search indexes.")
    parser.add_argument("slugs", nargs="+", help="Delivery-app slugs to warm.")
    parser.add_argument("--base-url", default=DEFAULT_BASE_URL)
    parser.add_argument(
        "--action",
        choices=["preload", "warm_cache"],
        default="warm_cache",
    )
    args = parser.parse_args()

    failures = asyncio.run(warm(args.base_url, args.slugs, args.action))
    sys.exit(1 if failures else 0)


if __name__ == "__main__":
    main()
