[build-system]
requires = ["setuptools>=61"]
build-backend = "setuptools.build_meta"

[project]
name = "edgeflow"
version = "0.1.0"
description = "Client-side building blocks for the EdgeDB binary protocol: query flows, transactions, retries and reconnection"
requires-python = ">=3.10"
dependencies = []
keywords = ["edgedb", "database", "client", "transactions", "protocol"]
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
    "Topic :: Database :: Front-Ends",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.setuptools]
packages = ["edgeflow"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
