[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "sdnnet"
version = "0.1.0"
description = "Cluster network parsing and validation, and DNS tracking for egress network policies, for a software-defined network"
requires-python = ">=3.10"
keywords = ["sdn", "networking", "egress", "dns", "cidr", "cluster", "validation"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking",
]
dependencies = [
    "dnspython>=2.3",
    "psutil>=5.9",
]

[project.optional-dependencies]
test = [
    "pytest>=7",
    "dnspython>=2.3",
]

[tool.hatch.build.targets.wheel]
packages = ["sdnnet"]

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
