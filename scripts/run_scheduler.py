"""
Run the DNS verification scheduler in-process (no Celery beat).

    python -m scripts.run_scheduler
"""
import logging
import signal
import threading

from app.db.session import SessionLocal
from app.logging_config import setup_logging
from app.services.scheduler import VerificationScheduler

logger = logging.getLogger("linkbio.domain.scheduler")


def main() -> None:
    setup_logging()
    stop = threading.Event()

    def _stop(signum, frame):
        logger.info("Received signal %s, stopping after the current tick", signum)
        stop.set()

    signal.signal(signal.SIGINT, _stop)
    signal.signal(signal.SIGTERM, _stop)
    VerificationScheduler(SessionLocal).run_forever(stop)


if __name__ == "__main__":
    main()
