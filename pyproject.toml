[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "cybergear"
version = "0.1.0"
description = "Build and decode CAN frames for CyberGear micromotors"
requires-python = ">=3.10"
dependencies = []
keywords = ["can", "cybergear", "motor", "robotics", "embedded"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Embedded Systems :: Controller Area Network (CAN)",
    "Topic :: System :: Hardware",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["cybergear"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
