[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "sonicstore"
version = "0.1.0"
description = "Storage layer for a schema-less search backend: a key-value index and a per-bucket word graph for suggestions"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "search",
    "index",
    "key-value",
    "word-graph",
    "autocomplete",
    "typo-tolerance",
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
    "Topic :: Text Processing :: Indexing",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["sonicstore"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
