[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "mirnode"
version = "0.1.0"
description = "Event routing and module workers for a replicated state machine node, with a small chat application"
requires-python = ">=3.10"
dependencies = []
keywords = ["bft", "consensus", "state machine replication", "events", "distributed"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: System :: Distributed Computing",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["mirnode"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
