[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "arckit"
version = "0.1.0"
description = "Reconciliation, scheduling, hashing and release-signing helpers for self-hosted CI runner fleets"
requires-python = ">=3.10"
keywords = [
    "ci",
    "runners",
    "reconciler",
    "schedule",
    "recurrence",
    "labels",
    "release",
    "signing",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Distributed Computing",
    "Topic :: Software Development :: Build Tools",
]
dependencies = [
    "python-dateutil>=2.8",
    "httpx>=0.24",
]

[project.optional-dependencies]
test = [
    "pytest>=7.0",
    "respx>=0.20",
]

[project.scripts]
signrel = "arckit.signrel:main"

[tool.hatch.build.targets.wheel]
packages = ["arckit"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
