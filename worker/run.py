import time
from datetime import datetime, timezone

from loguru import logger

from fightcard_api.app.db import SessionLocal
from fightcard_api.app.services.reconcile import reconcile
from fightcard_api.app.settings import settings


# Retries refunds and commission transfers the request path could not finish.
def tick():
    with SessionLocal() as db:
        counts = reconcile(db)
    logger.debug("[worker] tick {} {}", datetime.now(timezone.utc).isoformat(), counts)


if __name__ == "__main__":
    while True:
        try:
            tick()
        except Exception:
            logger.exception("worker error")
        time.sleep(settings.RECONCILE_INTERVAL_SECONDS)
