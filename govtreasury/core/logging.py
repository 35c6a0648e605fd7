"""Central logging configuration helpers for govtreasury."""

from __future__ import annotations

import sys
from collections.abc import Iterable, Mapping
from typing import Any

from loguru import logger

PACKAGE_PREFIX = "govtreasury."

DEFAULT_LOG_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | "
    "{extra[component]: <10} | {name}:{function}:{line} - {message}"
)

logger.configure(extra={"component": "-"})


def component_logger(component: str) -> Any:
    """Return a logger bound to a governance component (governor, treasury...)."""
    return logger.bind(component=component)


def _matches_scope(record_name: str, scopes: tuple[str, ...]) -> bool:
    for scope in scopes:
        if record_name.startswith(scope):
            return True
        if not scope.startswith(PACKAGE_PREFIX) and record_name.startswith(
            f"{PACKAGE_PREFIX}{scope}"
        ):
            return True
    return False


def configure_logging(
    level: str,
    *,
    debug_scopes: Iterable[str] = (),
    colorize: bool = False,
) -> tuple[int, ...]:
    """Configure loguru with module-based debug filtering.

    ``debug_scopes`` enables DEBUG output for selected modules only, e.g.
    ``("datastructures.treasury",)`` while the global level stays at INFO.
    """
    logger.remove()

    handler_ids: list[int] = [
        logger.add(
            sys.stderr,
            level=level,
            format=DEFAULT_LOG_FORMAT,
            colorize=colorize,
        )
    ]

    scopes = tuple(scope.strip() for scope in debug_scopes if scope.strip())
    if scopes and level.upper() != "DEBUG":

        def _debug_filter(record: object) -> bool:
            if not isinstance(record, Mapping):
                return False
            if getattr(record.get("level"), "name", None) != "DEBUG":
                return False
            return _matches_scope(record.get("name", ""), scopes)

        handler_ids.append(
            logger.add(
                sys.stderr,
                level="DEBUG",
                format=DEFAULT_LOG_FORMAT,
                colorize=colorize,
                filter=_debug_filter,
            )
        )

    return tuple(handler_ids)
