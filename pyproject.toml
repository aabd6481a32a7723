[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "orbitdb"
version = "0.1.0"
description = "Database manager over content-addressed storage, with addresses, access controllers, local caches and head exchange"
requires-python = ">=3.10"
dependencies = [
    "cbor2",
]
keywords = [
    "orbitdb",
    "ipfs",
    "cid",
    "cbor",
    "peer-to-peer",
    "database",
    "access-control",
    "pubsub",
]
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
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["orbitdb"]

[tool.hatch.build.targets.sdist]
include = [
    "orbitdb",
    "tests",
    "pyproject.toml",
    "README.md",
]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
