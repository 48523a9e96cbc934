"""Cross-cutting utilities (lowest dependency layer).

This package provides shared primitives for:
    - Config validation (validators)
    - Atomic YAML / array I/O (fs)
    - Unified logging (logging_config)
    - Timing (profiler)

No module in utils/ may import from extraction/ or runtime/.

Convenience imports:
    from marching_waves.utils import fs, validators
    from marching_waves.utils.logging_config import setup_logging, get_logger
"""

from . import fs
from . import logging_config
from . import profiler
from . import validators
