[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "streamfish"
version = "0.1.0"
description = "Configuration, decision logic and tooling for streaming adaptive sampling of nanopore reads"
requires-python = ">=3.11"
dependencies = []
keywords = [
    "nanopore",
    "adaptive-sampling",
    "read-until",
    "targeted-sequencing",
    "host-depletion",
    "bioinformatics",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Science/Research",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: Bio-Informatics",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["streamfish"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py311"

[tool.mypy]
python_version = "3.11"
warn_unused_ignores = true
