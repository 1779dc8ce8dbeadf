[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "profship"
version = "0.1.0"
description = "Building blocks for a profiling client: delta pprof profiles, tag-aware application keys and query parsing"
requires-python = ">=3.10"
dependencies = []
keywords = ["profiling", "pprof", "delta-profiles", "flamegraph", "protobuf"]
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
    "Topic :: Software Development :: Debuggers",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["profship"]

[tool.pytest.ini_options]
addopts = "-ra"
