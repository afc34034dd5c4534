[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "looplib"
version = "0.2.2"
description = "Submarine swap primitives: HTLC scripts, swap fees, transactions and a persistent swap store"
requires-python = ">=3.10"
dependencies = [
    "pycryptodome",
]
keywords = ["bitcoin", "lightning", "swap", "htlc", "submarine-swap"]
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
    "Topic :: Office/Business :: Financial",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["looplib"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 88
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
