[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "vincenzo"
version = "0.1.0"
description = "BitTorrent building blocks: peer wire messages, UDP tracker client and torrent progress tracking"
requires-python = ">=3.10"
dependencies = []
keywords = ["bittorrent", "torrent", "p2p", "tracker", "peer-wire", "asyncio"]
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
    "Framework :: AsyncIO",
    "Topic :: Communications :: File Sharing",
]

[project.optional-dependencies]
test = ["pytest", "pytest-asyncio"]

[tool.hatch.build.targets.wheel]
packages = ["vincenzo"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 88
target-version = "py310"
