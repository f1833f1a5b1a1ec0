"""pyexploder.

A small self-extracting application bootstrap. An exploding archive carries
this package, a manifest naming the real entry point and a ``lib/`` directory
of nested zip archives. At startup the archive explodes itself into a
temporary workspace, builds an import environment from the nested archives
and hands control to the entry point.
"""

__all__: list[str] = ["__version__"]

__version__: str = "0.1.0"
