[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "pixelscrape"
version = "0.1.0"
description = "BitTorrent peer wire, extension protocol, metadata exchange and stream encryption building blocks"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "bittorrent",
    "torrent",
    "peer-wire",
    "bencode",
    "magnet",
    "ut_metadata",
    "pex",
    "mse",
    "rc4",
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
    "Topic :: Communications :: File Sharing",
    "Topic :: Internet",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["pixelscrape"]

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
