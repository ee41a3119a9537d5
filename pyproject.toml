[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "raidio"
version = "0.1.0"
description = "Block-device I/O benchmark with hardware RAID setup through storcli"
requires-python = ">=3.10"
dependencies = []
keywords = ["benchmark", "raid", "storcli", "io", "storage", "block-device"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Benchmark",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
rio = "raidio.cli:main"
rio-phases = "raidio.phases:main"

[tool.hatch.build.targets.wheel]
packages = ["raidio"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
