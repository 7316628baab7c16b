import functools
import logging
import os
import time
from typing import Any, Callable, TypeVar

# Library logger: silent unless the application configures handlers.
# HIEREPI_LOG_LEVEL lowers the threshold for debugging.
LOG_LEVEL = os.getenv("HIEREPI_LOG_LEVEL", "WARNING").upper()
package_logger = logging.getLogger("hierepi")
package_logger.setLevel(getattr(logging, LOG_LEVEL, logging.WARNING))
package_logger.addHandler(logging.NullHandler())

