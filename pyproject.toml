[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "gitsyncagent"
version = "0.1.0"
description = "Keep a self-refreshing mirror of a Git repository, work in throwaway clones, plan cluster syncs and build sync event records."
requires-python = ">=3.10"
dependencies = []
keywords = ["git", "gitops", "mirror", "sync", "notes", "ssh", "deploy-key"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Software Development :: Version Control :: Git",
    "Topic :: System :: Systems Administration",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["gitsyncagent"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
