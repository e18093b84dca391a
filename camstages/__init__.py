"""Post-processing stages, a stage registry, piecewise linear functions and previews for YUV420 frames."""

__version__ = "0.1.0"