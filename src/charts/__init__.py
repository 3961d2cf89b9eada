"""Chart model, archive I/O, storage and reconciliation.

Charts are loaded from archives into :class:`Chart` objects, wrapped in
:class:`ChartWrapper` to track modification, reconciled against a package's
configuration and written back through a :class:`ChartStorage`.
"""

from .models import Chart, ChartFile, ChartMetadata, ChartWrapper
from .storage import ChartStorage, FilesystemStorage
from .icons import IconLocalizer, IconStore

__all__ = [
    "Chart",
    "ChartFile",
    "ChartMetadata",
    "ChartWrapper",
    "ChartStorage",
    "FilesystemStorage",
    "IconLocalizer",
    "IconStore",
]
