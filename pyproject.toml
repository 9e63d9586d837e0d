[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "esdumper"
version = "0.1.0"
description = "Back up Elasticsearch indices to JSON files and restore them again"
requires-python = ">=3.11"
keywords = ["elasticsearch", "backup", "restore", "dump", "scroll", "bulk"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Database",
    "Topic :: System :: Archiving :: Backup",
]
dependencies = [
    "requests>=2.28",
    "tomli-w>=1.0",
    "tqdm>=4.64",
]

[project.optional-dependencies]
test = [
    "pytest>=7.0",
    "responses>=0.23",
]

[project.scripts]
esdumper = "esdumper.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["esdumper"]

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
ignore_missing_imports = true
