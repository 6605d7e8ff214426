"""
Constants and configuration defaults for Imaging Cache.

This module centralizes all constant values, magic numbers, and
default settings used throughout the library.
"""

# Handle defaults
DEFAULT_FALLBACK_BGCOLOR = "#FFF"
DEFAULT_QUALITY = 70
DEFAULT_WATERMARK_OPACITY = 75

# Backend names
BACKEND_RASTER = "raster"
BACKEND_PILLOW = "pillow"
BACKEND_IMAGEMAGICK = "imagemagick"
DEFAULT_BACKEND = BACKEND_PILLOW

# Scratch directories (created below the configured temp_dir)
STAGING_SUBDIR = "imaging"
IMAGEMAGICK_SUBDIR = "imagemagick"

# ImageMagick executables
IMAGEMAGICK_V7_PROGRAM = "magick"
IMAGEMAGICK_CONVERT = "convert"
IMAGEMAGICK_IDENTIFY = "identify"
IMAGEMAGICK_COMPOSITE = "composite"

# Resize modes
RESIZE_MODE_PAD = "pad"
RESIZE_MODE_STRETCH = "stretch"
RESIZE_MODE_KEEPRATIO = "keepratio"
RESIZE_MODES = (RESIZE_MODE_PAD, RESIZE_MODE_STRETCH, RESIZE_MODE_KEEPRATIO)

# Crop modes
CROP_MODE_IGNORE = "ignore"
CROP_MODE_ADDPADDING = "addpadding"
CROP_MODES = (CROP_MODE_IGNORE, CROP_MODE_ADDPADDING)

# Watermark placement defaults
DEFAULT_WATERMARK_X_POSITION = "right"
DEFAULT_WATERMARK_Y_POSITION = "bottom"

# Decimal places kept when comparing resize ratios
RATIO_PRECISION = 10

# Scratch file names
SCRATCH_NAME_ATTEMPTS = 100
