"""Expiry reaper runner for the checkout domain.

Runs the reservation sweep on a fixed interval so lapsed intents and stray
locks are released even when nobody reads them.

Usage:
    python src/server.py                # Sweep every 60 seconds
    python src/server.py --interval 15  # Sweep every 15 seconds
    python src/server.py --once         # Run a single sweep and exit
"""

import argparse
import asyncio

import structlog

logger = structlog.get_logger(__name__)


def _get_domain():
    """Import and initialize the checkout domain."""
    from checkout.domain import checkout

    checkout.init()
    return checkout


def run_sweep(domain):
    from checkout.intent.reaper import sweep

    with domain.domain_context():
        return sweep()


async def run(interval: float, once: bool = False):
    domain = _get_domain()
    while True:
        try:
            run_sweep(domain)
        except Exception:
            logger.exception("Reservation sweep failed")
        if once:
            return
        await asyncio.sleep(interval)


def main():
    parser = argparse.ArgumentParser(description="Checkout expiry reaper")
    parser.add_argument(
        "--interval",
        type=float,
        default=60.0,
        help="Seconds between sweeps (default: 60)",
    )
    parser.add_argument("--once", action="store_true", help="Run one sweep and exit")
    args = parser.parse_args()

    asyncio.run(run(args.interval, once=args.once))


if __name__ == "__main__":
    main()
