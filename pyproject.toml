[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "k2controller"
version = "0.1.0"
description = "Device controller for CAN motors and RS232 devices with heartbeat monitoring and a terminal menu"
requires-python = ">=3.10"
dependencies = []
keywords = ["can", "socketcan", "motor", "rs232", "controller", "heartbeat"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Embedded Systems :: Controller Area Network (CAN)",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
k2controller = "k2controller.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["k2controller"]

[tool.pytest.ini_options]
addopts = "-ra"
