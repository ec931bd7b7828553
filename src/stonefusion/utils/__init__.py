"""
Utility modules for stonefusion.

Provides cross-platform device detection for detector input tensors.
"""

from stonefusion.utils.device import device_info, get_device

__all__ = [
    "get_device",
    "device_info",
]
