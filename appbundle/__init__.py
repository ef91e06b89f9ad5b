"""appbundle - incremental build orchestration for desktop app bundles.

This package assembles a platform-specific application bundle from a web
front-end sub-project, a prebuilt backend executable and a generated icon,
running only the steps whose outputs are missing.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
