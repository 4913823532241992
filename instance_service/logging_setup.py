"""
Process-wide logging setup. Called once from the app lifespan.
Context fields passed with extra= (title, model_id, ...) show up in JSON output.
"""
import json
import logging

_CONTEXT_FIELDS = ("middleware", "title", "path", "model_id", "instance_id", "error_kind")

_configured = False


class JSONFormatter(logging.Formatter):
    """One JSON object per record: level, logger, message, the context fields that are set."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "time": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update({k: getattr(record, k) for k in _CONTEXT_FIELDS if hasattr(record, k)})
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def setup_logging(level: str = "INFO", fmt: str = "plain") -> None:
    """Attach one stream handler to the root logger. Repeated calls only adjust the level."""
    global _configured
    logging.root.setLevel(getattr(logging, level.upper(), logging.INFO))
    if _configured:
        return
    handler = logging.StreamHandler()
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    logging.root.addHandler(handler)
    _configured = True
