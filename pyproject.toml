[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "powchain"
version = "0.1.0"
description = "A small proof-of-work blockchain node with a TCP peer-to-peer network and a miner"
requires-python = ">=3.10"
keywords = ["blockchain", "proof-of-work", "mining", "peer-to-peer", "p2p"]
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
    "Topic :: System :: Distributed Computing",
]
dependencies = [
    "pyyaml",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
powchain = "powchain.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["powchain"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
