"""
Cross-platform device utilities.

Detector input tensors are placed on the device named in a detector's
params["device"]: "cpu", "cuda", "mps", or "auto" for the best available
one (CUDA > MPS > CPU).
"""

from __future__ import annotations

import torch

DEVICE_CHOICES = ("auto", "cuda", "mps", "cpu")


def _available(kind: str) -> bool:
    if kind == "cuda":
        return torch.cuda.is_available()
    if kind == "mps":
        return torch.backends.mps.is_available()
    return kind == "cpu"


def get_device(prefer: str = "auto") -> torch.device:
    """
    Resolve a device preference to a torch.device.

    Args:
        prefer: One of DEVICE_CHOICES.

    Returns:
        torch.device: The selected device.

    Raises:
        RuntimeError: If an explicitly requested accelerator is not available.
        ValueError: If the preference is not recognised.
    """
    if prefer not in DEVICE_CHOICES:
        raise ValueError(
            f"Unknown device preference: '{prefer}'. "
            f"Must be one of: {', '.join(repr(c) for c in DEVICE_CHOICES)}"
        )

    if prefer == "auto":
        for kind in ("cuda", "mps"):
            if _available(kind):
                return torch.device(kind)
        return torch.device("cpu")

    if not _available(prefer):
        raise RuntimeError(f"{prefer.upper()} device requested but not available")
    return torch.device(prefer)


def device_info() -> dict:
    """Hardware summary recorded alongside CLI results."""
    info = {
        "device": str(get_device()),
        "cuda_available": _available("cuda"),
        "mps_available": _available("mps"),
        "torch_version": torch.__version__,
    }
    if info["cuda_available"]:
        info["cuda_device_name"] = torch.cuda.get_device_name(0)
    return info
