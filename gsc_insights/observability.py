from __future__ import annotations

import logging
import sys


def configure_logging(level: str = "INFO") -> None:
    # Logs go to stderr so the JSON report on stdout stays parseable.
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
        stream=sys.stderr,
    )
    # googleapiclient logs every discovery cache miss at WARNING.
    logging.getLogger("googleapiclient.discovery_cache").setLevel(logging.ERROR)
