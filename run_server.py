"""
Entry point for running the relay under uvicorn.

Access log lines for monitoring endpoints are filtered out, see
relay.uvicorn_filters. A failure to bind the listening port is fatal:
uvicorn logs it and exits with a non-zero status.
"""

import copy

import uvicorn
from uvicorn.config import LOGGING_CONFIG

from relay.settings import app_settings


def build_log_config() -> dict:
    """Uvicorn logging config with the monitoring access-log filter."""
    log_config = copy.deepcopy(LOGGING_CONFIG)
    log_config.setdefault("filters", {})["exclude_metrics"] = {
        "()": "relay.uvicorn_filters.ExcludeMetricsFilter"
    }
    log_config["handlers"]["access"]["filters"] = ["exclude_metrics"]
    return log_config


if __name__ == "__main__":
    uvicorn.run(
        "relay:app",
        host=app_settings.HOST,
        port=app_settings.PORT,
        log_config=build_log_config(),
    )
