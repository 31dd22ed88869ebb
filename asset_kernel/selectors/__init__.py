"""Read-only query selectors."""

from asset_kernel.selectors.base import BaseSelector
from asset_kernel.selectors.directory_selector import DirectorySelector

__all__ = ["BaseSelector", "DirectorySelector"]
