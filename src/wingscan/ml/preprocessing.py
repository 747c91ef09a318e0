"""Image preprocessing for MobileNet-family classifiers.

Resizes the shorter edge, center-crops to the model's square input and
normalizes RGB values to [-1, 1] in NCHW float32 layout.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np
from PIL import Image

if TYPE_CHECKING:
    from numpy.typing import NDArray

# Shorter edge is resized to input_size / CROP_FRACTION before cropping.
CROP_FRACTION: float = 0.875


def resize_and_crop(image: Image.Image, input_size: int) -> Image.Image:
    """Return an RGB ``input_size`` x ``input_size`` center crop of ``image``."""
    rgb = image.convert("RGB")
    width, height = rgb.size
    short_edge = round(input_size / CROP_FRACTION)
    scale = short_edge / min(width, height)
    resized = rgb.resize(
        (max(input_size, round(width * scale)), max(input_size, round(height * scale))),
        resample=Image.Resampling.BILINEAR,
    )
    left = (resized.width - input_size) // 2
    top = (resized.height - input_size) // 2
    return resized.crop((left, top, left + input_size, top + input_size))


def to_input_tensor(image: Image.Image, input_size: int) -> NDArray[np.float32]:
    """Convert an image into a 1x3xHxW float32 tensor in [-1, 1]."""
    cropped = resize_and_crop(image, input_size)
    pixels = np.asarray(cropped, dtype=np.float32) / 127.5 - 1.0
    return np.expand_dims(np.transpose(pixels, (2, 0, 1)), axis=0).astype(np.float32)


def softmax(logits: NDArray[np.float32]) -> NDArray[np.float32]:
    """Numerically stable softmax over the last axis."""
    shifted = logits - np.max(logits, axis=-1, keepdims=True)
    exp = np.exp(shifted)
    return (exp / np.sum(exp, axis=-1, keepdims=True)).astype(np.float32)
