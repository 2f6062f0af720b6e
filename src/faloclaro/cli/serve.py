"""Run the API with uvicorn."""

import argparse
import os
import sys

import uvicorn

from faloclaro.constants import LOG_LEVEL


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Serve the FaloClaro API")
    parser.add_argument("--host", default=os.getenv("HOST", "0.0.0.0"))
    parser.add_argument("--port", type=int, default=int(os.getenv("PORT", "8000")))
    parser.add_argument("--reload", action="store_true", help="Reload on code changes")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    uvicorn.run(
        "faloclaro.api.app:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=LOG_LEVEL.lower(),
        # Logging is configured by the app through loguru
        log_config=None,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
