"""Main entry point for the access controller.

Loads configuration from the environment, sets up structured logging and
validates every declaration in the specs directory. Reconciliation itself
runs through the resource classes with a transport-provided client.
"""

from __future__ import annotations

import json
import logging
import sys
from collections import Counter
from datetime import UTC, datetime

from .config import Config, ConfigurationError
from .spec_loader import SpecLoadError, load_declarations

# Attributes every LogRecord carries; anything else came in through ``extra``
_STANDARD_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}


class JsonFormatter(logging.Formatter):
    """One JSON object per line, with ``extra`` fields at the top level."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, UTC)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(
            (key, value)
            for key, value in vars(record).items()
            if key not in _STANDARD_RECORD_ATTRS
        )
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def setup_logging(json_output: bool = True) -> None:
    """Send INFO and above to stdout, as JSON unless disabled."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        JsonFormatter()
        if json_output
        else logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    )
    logging.basicConfig(level=logging.INFO, handlers=[handler], force=True)


def main() -> int:
    """Validate the configured declarations.

    Returns:
        0 when every declaration is valid, 1 otherwise.
    """
    try:
        config = Config.from_env()
    except ConfigurationError as e:
        setup_logging()
        logging.getLogger(__name__).error("Invalid configuration", extra={"error": str(e)})
        return 1

    setup_logging(config.enable_json_logging)
    logger = logging.getLogger(__name__)
    logger.info(
        "Access controller starting",
        extra={
            "domain": config.domain,
            "base_url": config.base_url,
            "specs_dir": str(config.specs_dir),
        },
    )

    try:
        declarations = load_declarations(config.specs_dir)
    except SpecLoadError as e:
        logger.error(
            "Invalid declarations", extra={"error": str(e), "specs_dir": str(config.specs_dir)}
        )
        return 1

    kinds = Counter(d.kind for d in declarations)
    logger.info("Declarations valid", extra={"kinds": dict(kinds), "count": len(declarations)})
    return 0


def run() -> None:
    """Entry point for the access-controller script."""
    sys.exit(main())
