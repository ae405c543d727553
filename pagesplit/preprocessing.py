"""
Preprocessing utilities for page region detection.
Handles image loading, grayscale conversion, thresholding and cropping.
"""

from typing import Tuple

import cv2
import numpy as np

from pagesplit.region import Rectangle

INK = 0
BACKGROUND = 255


def load_image(image_path: str) -> np.ndarray:
    """
    Load an image from file as RGB.

    Args:
        image_path: Path to the image file

    Returns:
        Image as numpy array (RGB, or grayscale for single-channel files)

    Raises:
        ValueError: If image cannot be loaded
    """
    image = cv2.imread(image_path, cv2.IMREAD_UNCHANGED)

    if image is None:
        raise ValueError(f"Failed to load image from {image_path}")

    if image.ndim == 2:
        return image
    if image.shape[2] == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2RGBA)
    return cv2.cvtColor(image, cv2.COLOR_BGR2RGB)


def to_grayscale(image: np.ndarray) -> np.ndarray:
    """
    Convert an RGB or RGBA image to grayscale.

    Gray is round(0.299R + 0.587G + 0.114B) with halves rounded up;
    the alpha channel is ignored.

    Args:
        image: Input image (RGB, RGBA or already grayscale)

    Returns:
        Grayscale image (uint8)
    """
    # Check if already grayscale
    if image.ndim == 2:
        return image

    if image.shape[2] not in (3, 4):
        raise ValueError(f"Unexpected number of channels: {image.shape[2]}")

    rgb = image[..., :3].astype(np.float64)
    weighted = 0.299 * rgb[..., 0] + 0.587 * rgb[..., 1] + 0.114 * rgb[..., 2]
    gray = np.floor(weighted + 0.5)
    return np.clip(gray, 0, 255).astype(np.uint8)


def binarize(gray_image: np.ndarray, threshold: int = 128) -> np.ndarray:
    """
    Apply a fixed threshold.

    Args:
        gray_image: Grayscale image
        threshold: Pixels darker than this are ink

    Returns:
        Binary image: 0 for ink, 255 for background
    """
    return np.where(gray_image < threshold, INK, BACKGROUND).astype(np.uint8)


def classify(image: np.ndarray, threshold: int = 128) -> np.ndarray:
    """Grayscale conversion followed by thresholding."""
    return binarize(to_grayscale(image), threshold)


def get_content_density(binary_image: np.ndarray, roi: Tuple[int, int, int, int] = None) -> float:
    """
    Calculate content density (ratio of ink pixels) in an image or ROI.

    Args:
        binary_image: Binary image (0=ink, 255=background)
        roi: Optional (x, y, w, h) region of interest

    Returns:
        Content density as float between 0 and 1
    """
    if roi is not None:
        x, y, w, h = roi
        region = binary_image[y:y+h, x:x+w]
    else:
        region = binary_image

    if region.size == 0:
        return 0.0

    dark_pixels = np.sum(region < 128)
    return dark_pixels / region.size


def crop_region(image: np.ndarray, rect: Rectangle) -> np.ndarray:
    """
    Copy a rectangle out of an image.

    Parts of the rectangle outside the image are filled white.

    Args:
        image: Source image (grayscale, RGB or RGBA)
        rect: Region to crop, in image pixel coordinates

    Returns:
        New array of size rect.height x rect.width
    """
    rect = rect.normalized()
    x, y = int(round(rect.x)), int(round(rect.y))
    w, h = int(round(rect.width)), int(round(rect.height))

    out = np.full((h, w) + image.shape[2:], 255, dtype=image.dtype)

    img_h, img_w = image.shape[:2]
    src_x0, src_y0 = max(x, 0), max(y, 0)
    src_x1, src_y1 = min(x + w, img_w), min(y + h, img_h)
    if src_x1 <= src_x0 or src_y1 <= src_y0:
        return out

    out[src_y0 - y:src_y1 - y, src_x0 - x:src_x1 - x] = image[src_y0:src_y1, src_x0:src_x1]
    return out


def save_image(image: np.ndarray, output_path: str) -> None:
    """
    Save an RGB(A) or grayscale image to file.
    """
    if image.ndim == 3 and image.shape[2] == 3:
        image = cv2.cvtColor(image, cv2.COLOR_RGB2BGR)
    elif image.ndim == 3 and image.shape[2] == 4:
        image = cv2.cvtColor(image, cv2.COLOR_RGBA2BGRA)

    success = cv2.imwrite(output_path, image)
    if not success:
        raise ValueError(f"Failed to save image to {output_path}")
