"""Loading robot models from description files."""

from .urdf_parser import load_urdf

__all__ = ["load_urdf"]
