"""
Image preprocessing for stone detection.

Two stages, both returning new objects and never touching the input image:
- enhance_image: optional whole-image enhancement applied by the engine
  before any detector runs (contrast boost, edge-preserving smoothing,
  unsharp mask)
- image_to_tensor: per-detector conversion into a model-input tensor
"""

from __future__ import annotations

import numpy as np
import torch
import torch.nn.functional as F
from PIL import Image, ImageFilter

# 3x3 binomial approximation of a Gaussian
GAUSSIAN_KERNEL_3X3 = (
    (1.0, 2.0, 1.0),
    (2.0, 4.0, 2.0),
    (1.0, 2.0, 1.0),
)

# Modes whose pixel values do not fit in 8 bits
WIDE_RANGE_MODES = ("I;16", "I;16B", "I;16L", "I;16N", "I", "F")


def _to_8bit(image: Image.Image) -> Image.Image:
    """Min-max rescale a wide-range image into an 8-bit "L" image."""
    array = np.array(image, dtype=np.float32)
    low, high = float(array.min()), float(array.max())
    if high > low:
        array = (array - low) / (high - low) * 255.0
    else:
        array = np.zeros_like(array)
    return Image.fromarray(np.rint(array).astype(np.uint8))


def enhance_image(image: Image.Image, gain: float = 1.2) -> Image.Image:
    """
    Enhance an image before detection.

    RGB channels are scaled by `gain` and clipped to 255, then a median filter
    smooths noise while keeping edges, and an unsharp mask restores detail.
    Alpha (if any) is carried through unchanged.

    Args:
        image: Input image in any PIL mode.
        gain: Multiplicative contrast gain for the color channels.

    Returns:
        A new image with the same size and mode as the input. 16-bit, 32-bit
        and float images are rescaled to their own range and returned as "L".
    """
    if gain <= 0:
        raise ValueError(f"gain must be positive, got {gain}")

    mode = image.mode
    if mode in WIDE_RANGE_MODES:
        image = _to_8bit(image)
    array = np.array(image.convert("RGBA"), dtype=np.float32)
    array[..., :3] = np.clip(np.rint(array[..., :3] * gain), 0, 255)
    boosted = Image.fromarray(array.astype(np.uint8))

    alpha = boosted.getchannel("A")
    rgb = boosted.convert("RGB")
    rgb = rgb.filter(ImageFilter.MedianFilter(size=3))
    rgb = rgb.filter(ImageFilter.UnsharpMask(radius=2, percent=150, threshold=3))
    rgb.putalpha(alpha)

    if mode == "RGBA":
        return rgb
    if mode in WIDE_RANGE_MODES:
        return rgb.convert("L")
    return rgb.convert(mode)


def image_to_tensor(
    image: Image.Image,
    size: int,
    device: torch.device | None = None,
    enhance_contrast: bool = False,
    smooth: bool = False,
) -> torch.Tensor:
    """
    Convert an image into a detector input tensor.

    Args:
        image: Input image in any PIL mode (alpha is dropped). Wide-range
            modes are rescaled from their min..max to 0..255.
        size: Square model input size in pixels.
        device: Target device (defaults to CPU).
        enhance_contrast: Standardize intensities around 0.5.
        smooth: Apply 3x3 Gaussian smoothing per channel.

    Returns:
        Float tensor of shape (1, 3, size, size).
    """
    device = device or torch.device("cpu")

    if image.mode in WIDE_RANGE_MODES:
        image = _to_8bit(image)
    array = np.array(image.convert("RGB"), dtype=np.float32)
    tensor = torch.from_numpy(array).permute(2, 0, 1).unsqueeze(0).to(device)

    tensor = F.interpolate(tensor, size=(size, size), mode="bilinear", align_corners=False)
    tensor = tensor / 255.0

    if enhance_contrast:
        mean = tensor.mean()
        std = (tensor - mean).pow(2).mean().sqrt()
        tensor = (tensor - mean) / (std + 1e-8) * 0.5 + 0.5

    if smooth:
        kernel = torch.tensor(GAUSSIAN_KERNEL_3X3, dtype=tensor.dtype, device=device) / 16.0
        kernel = kernel.expand(3, 1, 3, 3)
        tensor = F.conv2d(tensor, kernel, padding=1, groups=3)

    return tensor
