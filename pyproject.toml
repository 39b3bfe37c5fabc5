[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "mmetl"
version = "0.1.0"
description = "Transform Slack export archives into Mattermost bulk import files."
requires-python = ">=3.10"
keywords = ["slack", "mattermost", "etl", "import", "export", "chat", "migration", "jsonl"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Communications :: Chat",
    "Topic :: Utilities",
]
dependencies = [
    "requests",
]

[project.optional-dependencies]
test = [
    "pytest",
    "responses",
]

[project.scripts]
mmetl = "mmetl.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["mmetl"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
ignore_missing_imports = true
