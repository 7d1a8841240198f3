[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "yuchain"
version = "0.1.0"
description = "Building blocks for modular blockchains: transactions, blocks, receipts, staged Merkle state, a transaction pool and pluggable tripods."
requires-python = ">=3.10"
keywords = ["blockchain", "framework", "txpool", "merkle", "state", "tripod"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Software Development :: Libraries :: Application Frameworks",
]
dependencies = [
    "pycryptodome",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["yuchain"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
