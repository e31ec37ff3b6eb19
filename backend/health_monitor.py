"""
Standalone probe for the orders/reservations deployment.

Polls the API, Postgres and redis and logs one line per dependency. Run it
next to the API container: ``python health_monitor.py``.
"""
import logging
import os
import time
from datetime import datetime, timezone
from typing import Callable, Dict, List, Tuple

import psycopg2
import redis
import requests

import config

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger("health_monitor")

API_URL = os.getenv("BACKEND_API_URL", "http://backend-api:8000").rstrip("/")
CHECK_INTERVAL = int(os.getenv("HEALTH_CHECK_INTERVAL", "60"))
STARTUP_DELAY = int(os.getenv("HEALTH_STARTUP_DELAY", "15"))

CheckResult = Tuple[bool, str]


def probe_url(label: str, url: str, timeout: float = 5.0) -> CheckResult:
    try:
        status = requests.get(url, timeout=timeout).status_code
    except requests.RequestException as e:
        return False, f"{label} unreachable: {e}"
    return status < 400, f"{label} answered {status}"


def api_alive() -> CheckResult:
    return probe_url("api", f"{API_URL}/health")


def reservation_lookup_works() -> CheckResult:
    # availability at "now" touches tables and reservations in one request
    now = datetime.now(timezone.utc).replace(tzinfo=None, microsecond=0).isoformat()
    return probe_url("availability", f"{API_URL}/reservations/available-tables?time={now}")


def postgres_alive() -> CheckResult:
    try:
        with psycopg2.connect(config.DATABASE_URL, connect_timeout=5) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT count(*) FROM dining_tables")
                tables = cur.fetchone()[0]
    except psycopg2.Error as e:
        return False, f"postgres failed: {e}"
    return True, f"postgres ok, {tables} dining tables"


def redis_alive() -> CheckResult:
    if not config.REDIS_ENABLED:
        return True, "redis disabled, rate limiting off"
    client = redis.Redis(host=config.REDIS_HOST, port=config.REDIS_PORT, socket_connect_timeout=2)
    try:
        client.ping()
    except redis.RedisError as e:
        # the API fails open without redis, so this only degrades rate limiting
        return False, f"redis failed: {e}"
    return True, "redis ok"


CHECKS: List[Tuple[str, Callable[[], CheckResult]]] = [
    ("api", api_alive),
    ("availability", reservation_lookup_works),
    ("postgres", postgres_alive),
    ("redis", redis_alive),
]


def run_checks() -> Dict[str, bool]:
    results = {}
    for name, check in CHECKS:
        ok, message = check()
        results[name] = ok
        (logger.info if ok else logger.warning)(message)

    failed = [name for name, ok in results.items() if not ok]
    if failed:
        logger.warning(f"Unhealthy: {', '.join(failed)}")
    return results


def run_forever() -> None:
    logger.info(f"Monitoring {API_URL} every {CHECK_INTERVAL}s after a {STARTUP_DELAY}s warm-up")
    time.sleep(STARTUP_DELAY)
    while True:
        run_checks()
        time.sleep(CHECK_INTERVAL)


if __name__ == "__main__":
    run_forever()
