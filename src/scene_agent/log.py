# log.py
# Logging setup. Library modules only call logging.getLogger(__name__);
# entry points call configure_logging() once.

import logging

from rich.logging import RichHandler

from scene_agent.display import console


def configure_logging(level: str = "WARNING") -> None:
    root = logging.getLogger("scene_agent")
    root.setLevel(getattr(logging, level.upper(), logging.WARNING))

    if not any(isinstance(handler, RichHandler) for handler in root.handlers):
        handler = RichHandler(console=console, show_path=False, rich_tracebacks=True)
        handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
        root.addHandler(handler)
    root.propagate = False
