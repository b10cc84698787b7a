import os
import re
import sys

from loguru import logger

# Messages start with a bracketed component tag: "[SNIPER] Sniping ..."
_TAG_RE = re.compile(r"^\[([A-Z_]+)\]\s*")


def tag_component(record: dict) -> None:
    """Move a leading `[TAG]` into extra["component"] and strip it from the message."""
    match = _TAG_RE.match(record["message"])
    if match is None:
        record["extra"].setdefault("component", "-")
        return
    record["extra"]["component"] = match.group(1)
    record["message"] = record["message"][match.end():]


def setup_logger(*, json_logs: bool = False, level: str = "INFO", log_dir: str = "logs") -> None:
    """Configure loguru for snipebot.

    Console level comes from LOG_LEVEL (falls back to `level`). The main file
    sink always captures DEBUG; a second file keeps WARNING and above so failed
    snipes and exits are easy to find. JSON records carry the component tag as
    extra.component.
    """
    console_level = os.getenv("LOG_LEVEL", level).upper()
    logger.remove()
    logger.configure(patcher=tag_component)

    if json_logs:
        logger.add(sys.stdout, serialize=True, level=console_level)
    else:
        logger.add(
            sys.stdout,
            format=(
                "<green>{time:HH:mm:ss}</green> | "
                "<level>{level: <8}</level> | "
                "<magenta>{extra[component]: <10}</magenta> | "
                "<level>{message}</level>"
            ),
            level=console_level,
            colorize=True,
        )

    logger.add(
        f"{log_dir}/snipebot_{{time:YYYY-MM-DD}}.log",
        format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {extra[component]} | {name}:{function}:{line} - {message}",
        rotation="50 MB",
        retention="3 days",
        compression="gz",
        level="DEBUG",
        serialize=json_logs,
    )
    logger.add(
        f"{log_dir}/snipebot_errors_{{time:YYYY-MM-DD}}.log",
        format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {extra[component]} | {message}",
        rotation="10 MB",
        retention="14 days",
        level="WARNING",
    )
