[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "gcsguest"
version = "0.1.0"
description = "Guest-side helpers for Linux utility VMs: network files, storage mounts, container spec setup and client configuration"
requires-python = ">=3.10"
dependencies = []
keywords = ["containers", "utility-vm", "overlayfs", "device-mapper", "resolv.conf", "oci"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Operating System Kernels :: Linux",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["gcsguest"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"
