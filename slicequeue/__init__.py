"""SliceQueue - background slicing job orchestration for 3D printers."""

__version__ = "0.1.0"
