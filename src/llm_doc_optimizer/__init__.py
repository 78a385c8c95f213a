"""Resilience and flow-control layer for LLM-backed document optimization."""

from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_package_version

try:
    __version__ = get_package_version("llm-doc-optimizer")
except PackageNotFoundError:
    __version__ = "0.1.0"

__all__ = ["__version__"]
