[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "memlite"
version = "0.1.0"
description = "In-memory volatile file system for database and WAL files, tuple wire encoding and replication transaction state"
requires-python = ">=3.10"
dependencies = []
keywords = ["sqlite", "vfs", "wal", "in-memory", "replication", "wire-protocol"]
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
    "Topic :: Database :: Database Engines/Servers",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["memlite"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 88
target-version = "py310"
