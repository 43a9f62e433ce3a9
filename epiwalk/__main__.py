"""Run the walkthrough with settings from the environment / .env."""

import logging
import sys

from .config import settings
from .core.exceptions import PipelineError
from .pipeline import EpigenomeWalkthrough, configure_logging

logger = logging.getLogger("epiwalk")


def main() -> int:
    configure_logging(settings.log_level)
    walkthrough = EpigenomeWalkthrough(settings)
    try:
        saved = walkthrough.run(snapshot=settings.workspace_dir is not None)
    except PipelineError as e:
        logger.error(f"Walkthrough stopped at stage '{e.stage}': {e.cause}")
        return 1

    for name, path in saved.items():
        print(f"{name}: {path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
