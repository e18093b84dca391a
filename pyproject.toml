[build-system]
requires = ["setuptools>=61"]
build-backend = "setuptools.build_meta"

[project]
name = "camstages"
version = "0.1.0"
description = "Post-processing stages and preview helpers for YUV420 camera frames"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "camera",
    "yuv420",
    "motion-detection",
    "object-detection",
    "segmentation",
    "piecewise-linear",
    "post-processing",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Multimedia :: Graphics :: Capture :: Digital Camera",
    "Topic :: Scientific/Engineering :: Image Processing",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.setuptools.packages.find]
include = ["camstages*"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
