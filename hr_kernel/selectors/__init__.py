"""Read-only query selectors."""

from hr_kernel.selectors.base import BaseSelector
from hr_kernel.selectors.reference_selector import ReferenceSelector

__all__ = ["BaseSelector", "ReferenceSelector"]
