"""Run the otelview API: ``python -m otelview [--host HOST] [--port PORT]``."""

import argparse

import uvicorn

from otelview.api import create_app
from otelview.core.config import get_settings


def main() -> None:
    parser = argparse.ArgumentParser(description="OTLP Kafka telemetry viewer API")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    args = parser.parse_args()

    settings = get_settings()
    uvicorn.run(create_app(settings), host=args.host, port=args.port, log_config=None)


if __name__ == "__main__":
    main()
