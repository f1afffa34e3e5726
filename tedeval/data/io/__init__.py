"""
Label volume I/O.

Import patterns:
    from tedeval.data.io import read_label_volume, save_label_volume
    from tedeval.data.io import read_hdf5, write_hdf5
"""

from .io import *  # noqa: F403, F401
from .io import __all__  # noqa: F401
