[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "rtmpcore"
version = "0.1.0"
description = "RTMP protocol building blocks: handshake, control messages, sessions, codec detection, FLV recording and relay fan-out"
requires-python = ">=3.10"
dependencies = []
keywords = ["rtmp", "streaming", "flv", "handshake", "relay", "media"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Multimedia :: Video",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["rtmpcore"]

[tool.pytest.ini_options]
addopts = "-ra"
