[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "assoofs"
version = "0.1.0"
description = "A tiny block-based filesystem kept in an image file: format images and work with files and directories on them"
requires-python = ">=3.10"
dependencies = []
keywords = ["filesystem", "disk image", "block device", "mkfs", "teaching"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Education",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Filesystems",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
mkassoofs = "assoofs.mkfs:main"

[tool.hatch.build.targets.wheel]
packages = ["assoofs"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
