import signal
import threading

from app.main import app
from app.scraper import config
from app.scraper.config_validation import validate_runtime_config
from app.scraper.run import run_scrape
from app.scraper.utils import log_line, setup_logger


def _serve_api() -> None:
    # The API only reads the products table; it never blocks the scrape loop.
    app.run(host=config.API_HOST, port=config.API_PORT, use_reloader=False, threaded=True)


if __name__ == "__main__":
    setup_logger()
    validate_runtime_config("cli")

    stop_event = threading.Event()

    def _request_stop(signum, _frame) -> None:
        log_line(f"Received signal {signum}; stopping after the current attempt.")
        stop_event.set()

    signal.signal(signal.SIGINT, _request_stop)
    signal.signal(signal.SIGTERM, _request_stop)

    threading.Thread(target=_serve_api, name="read-api", daemon=True).start()
    log_line(f"Starting API server on {config.API_HOST}:{config.API_PORT}")

    run_scrape(stop_event=stop_event)
