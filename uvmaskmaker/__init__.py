"""Top-level package for uvmaskmaker."""

from . import uvm as _uvm

__all__ = ["uvm", "__version__", "get_version"]

__version__ = _uvm.__version__
get_version = _uvm.get_version
