"""
CLI Client for the Oracle Coordinator Status Endpoint

Queries a running coordinator and prints its status or registered oracles.
"""

import argparse
import json
import sys
import time
from typing import List, Optional

import httpx

# Default status endpoint URL
DEFAULT_API_URL = "http://localhost:3000"


def get_json(path: str, api_url: str = DEFAULT_API_URL) -> dict:
    """
    GET a JSON document from the status service.

    Args:
        path: Endpoint path (e.g. "/status")
        api_url: API base URL

    Returns:
        Decoded JSON body
    """
    url = f"{api_url}{path}"

    try:
        response = httpx.get(url, timeout=10.0)
        response.raise_for_status()
        return response.json()

    except httpx.HTTPError as e:
        print(f"Error querying {url}: {e}")
        sys.exit(1)


def wait_for_bootstrap(
    api_url: str = DEFAULT_API_URL,
    interval: float = 2,
    timeout: float = 300
) -> dict:
    """
    Poll /status until the coordinator has bootstrapped or the timeout passes.

    Returns:
        Last status response dict
    """
    start_time = time.time()
    status = get_json("/status", api_url)

    while not status["bootstrapped"]:
        if time.time() - start_time > timeout:
            print(f"Timeout after {timeout}s")
            break
        time.sleep(interval)
        status = get_json("/status", api_url)

    return status


def format_status(status: dict) -> str:
    lines = [
        "=" * 60,
        "ORACLE COORDINATOR STATUS",
        "=" * 60,
        f"State: {status['state']}",
        f"Bootstrapped: {status['bootstrapped']}",
        f"Registered oracles: {status['registered_count']}",
        f"Last request handled at: {status.get('last_request_handled_at') or 'never'}",
        f"Records handled: {status.get('records_handled', 0)}",
        f"Responses submitted: {status.get('responses_submitted', 0)}",
        f"Responses failed: {status.get('responses_failed', 0)}",
    ]
    return "\n".join(lines)


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point"""
    parser = argparse.ArgumentParser(
        description="CLI client for the flight status oracle coordinator"
    )

    parser.add_argument(
        "command",
        choices=["status", "oracles", "wait"],
        help="status: print coordinator status; oracles: list registered oracles; "
             "wait: block until bootstrapping finished"
    )

    parser.add_argument(
        "--api-url",
        default=DEFAULT_API_URL,
        help=f"Status endpoint base URL (default: {DEFAULT_API_URL})"
    )

    parser.add_argument(
        "--json",
        action="store_true",
        help="Print raw JSON"
    )

    parser.add_argument(
        "--timeout",
        type=int,
        default=300,
        help="Timeout in seconds for wait (default: 300)"
    )

    args = parser.parse_args(argv)

    if args.command == "oracles":
        oracles = get_json("/oracles", args.api_url)
        if args.json:
            print(json.dumps(oracles, indent=2))
        else:
            for oracle in oracles:
                print(f"{oracle['address']}  indexes={oracle['indexes']}")
        return 0

    if args.command == "wait":
        status = wait_for_bootstrap(args.api_url, timeout=args.timeout)
    else:
        status = get_json("/status", args.api_url)

    print(json.dumps(status, indent=2) if args.json else format_status(status))
    return 0 if status["bootstrapped"] else 1


if __name__ == "__main__":
    sys.exit(main())
