"""colorwall: camera-driven color and luminance calibration for projector walls."""

__version__ = "0.1.0"
