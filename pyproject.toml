[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "canopus"
version = "0.1.0"
description = "Service supervision building blocks: config validation, health probes, port reservation, process groups, log capture and state snapshots"
requires-python = ">=3.11"
dependencies = []
keywords = [
    "supervisor",
    "process-manager",
    "health-check",
    "services",
    "port-allocation",
    "process-group",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Framework :: AsyncIO",
    "Topic :: System :: Monitoring",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = [
    "pytest>=7.0",
    "pytest-asyncio>=0.21",
]

[tool.hatch.build.targets.wheel]
packages = ["canopus"]

[tool.hatch.build.targets.sdist]
include = ["canopus", "tests"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py311"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.11"
warn_unused_ignores = true
warn_redundant_casts = true
