[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "netdrills"
version = "0.1.0"
description = "Small TCP networking drills: endpoints, buffers, length-prefixed framing, timers and request/response work servers."
requires-python = ">=3.10"
dependencies = []
keywords = [
    "networking",
    "tcp",
    "sockets",
    "tls",
    "framing",
    "client-server",
    "timers",
]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Education",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking",
]

[project.optional-dependencies]
test = [
    "pytest",
    "pytest-asyncio",
]

[project.scripts]
netdrills-basics = "netdrills.basics:main"
netdrills-buffers = "netdrills.buffers:main"
netdrills-fixed-message = "netdrills.fixed_message:main"
netdrills-exchange = "netdrills.person_exchange:main"
netdrills-sessions = "netdrills.sessions:main"
netdrills-timers = "netdrills.timers:main"
netdrills-work-client = "netdrills.work_client:main"
netdrills-work-server = "netdrills.work_server:main"
netdrills-event-client = "netdrills.event_client:main"
netdrills-threaded-server = "netdrills.threaded_server:main"

[tool.hatch.build.targets.wheel]
packages = ["netdrills"]

[tool.hatch.build.targets.sdist]
include = [
    "netdrills",
    "tests",
]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 88
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
