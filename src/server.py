"""Delayed job worker runner for FreshCart.

Starts worker threads that drain due auto-cancel and auto-confirm jobs. Run it
next to the API with JOB_QUEUE_ADAPTER=redis so both share one queue.

Usage:
    python src/server.py                      # One worker, 1s poll interval
    python src/server.py --workers 4          # Four worker threads
    python src/server.py --poll-interval 0.5  # Poll twice a second
"""

import argparse
import signal
import threading

import structlog
from ordering.domain import ordering
from ordering.utils.logging import configure_logging
from ordering.workers.worker import JobWorker

logger = structlog.get_logger(__name__)


def run(worker_count, poll_interval):
    ordering.init()
    stop_event = threading.Event()

    def _stop(signum, _frame):
        logger.info("Shutdown requested", signal=signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _stop)
    signal.signal(signal.SIGTERM, _stop)

    threads = [
        threading.Thread(
            target=JobWorker(ordering, name=f"worker-{index + 1}").run_forever,
            kwargs={"poll_interval": poll_interval, "stop_event": stop_event},
            name=f"worker-{index + 1}",
        )
        for index in range(worker_count)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()


def main():
    parser = argparse.ArgumentParser(description="FreshCart delayed job workers")
    parser.add_argument("--workers", type=int, default=1, help="Number of worker threads (default: 1)")
    parser.add_argument(
        "--poll-interval",
        type=float,
        default=1.0,
        help="Seconds between queue polls when idle (default: 1.0)",
    )
    args = parser.parse_args()

    configure_logging()
    run(args.workers, args.poll_interval)


if __name__ == "__main__":
    main()
