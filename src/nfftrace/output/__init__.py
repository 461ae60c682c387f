"""Image output: PPM and PNG writers."""

from .export import compute_rmse, image_to_uint8, save_image, save_png, save_ppm

__all__ = ["compute_rmse", "image_to_uint8", "save_image", "save_png", "save_ppm"]
