"""Common type definitions."""

from typing import Callable, Union
from pathlib import Path

# Type alias for paths
PathLike = Union[str, Path]

# Receives upload progress as a fraction in [0.0, 1.0]
ProgressCallback = Callable[[float], None]
