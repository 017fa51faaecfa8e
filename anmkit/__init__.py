"""List, extract, patch and build ANM sprite archives and their THTX textures."""

__version__ = "0.1.0"