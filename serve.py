#!/usr/bin/env python3
"""Launch the Landmark Atlas API server."""
import logging
import os

import uvicorn

logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
logger = logging.getLogger("atlas.serve")


def main() -> None:
    production = os.environ.get("ATLAS_ENV") == "production"
    host = os.environ.get("ATLAS_HOST", "0.0.0.0" if production else "127.0.0.1")
    port = int(os.environ.get("ATLAS_PORT", "8080" if production else "8000"))
    logger.info("Serving Landmark Atlas on %s:%d (%s)", host, port, "production" if production else "dev")
    uvicorn.run(
        "atlas_api.app:app",
        host=host,
        port=port,
        reload=not production,
        log_level=os.environ.get("ATLAS_LOG_LEVEL", "info"),
    )


if __name__ == "__main__":
    main()
