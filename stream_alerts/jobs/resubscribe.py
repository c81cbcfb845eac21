"""Ask a running server to re-subscribe stored YouTube channels.

The hub's challenge is answered by the server process, so the subscribe
request has to be issued there rather than from this job.
"""

from __future__ import annotations

import argparse
import asyncio
import sys

import httpx


async def resubscribe(
    server: str,
    *,
    alias: str | None = None,
    timeout: float = 30,
    transport: httpx.AsyncBaseTransport | None = None,
) -> int:
    """Return the number of failed resubscriptions."""

    async with httpx.AsyncClient(base_url=server.rstrip("/"), timeout=timeout, transport=transport) as client:
        response = await client.get("/api/streamers")
        response.raise_for_status()
        streamers = [item for item in response.json()["streamers"] if item.get("youtube")]

        if alias:
            wanted = alias.lower()
            streamers = [item for item in streamers if wanted in (item["alias"].lower(), item["id"].lower())]
            if not streamers:
                print(f"Streamer {alias} not found.")
                return 1

        failures = 0
        for item in streamers:
            result = await client.post(f"/api/streamers/{item['id']}/subscribe")
            if result.is_success:
                print(f"Resubscribed {item['alias']} ({item['youtube']['channel_id']}).")
            else:
                failures += 1
                print(f"Failed {item['alias']}: {result.status_code} {result.text}")

    print(f"{len(streamers) - failures} of {len(streamers)} subscriptions renewed.")
    return failures


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="python -m stream_alerts.jobs.resubscribe")
    parser.add_argument("--server", default="http://localhost:8000", help="base URL of the running server")
    parser.add_argument("--alias", help="only resubscribe the streamer with this alias or id")
    parser.add_argument("--timeout", type=float, default=30, help="request timeout in seconds")
    args = parser.parse_args(argv)

    try:
        failures = asyncio.run(resubscribe(args.server, alias=args.alias, timeout=args.timeout))
    except httpx.HTTPError as exc:
        print(f"Unable to reach {args.server}: {exc}")
        return 1
    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
