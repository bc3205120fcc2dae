[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "portdog"
version = "0.1.0"
description = "Asynchronous TCP port scanner with adaptive timing and service fingerprinting"
requires-python = ">=3.10"
dependencies = [
    "rich",
]
keywords = ["port scanner", "network", "fingerprinting", "banner grabbing", "asyncio"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Framework :: AsyncIO",
    "Topic :: System :: Networking :: Monitoring",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[project.scripts]
portdog = "portdog.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["portdog"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
