[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "gtunnel"
version = "0.1.0"
description = "Building blocks for a tunnelling reverse-proxy server: HTTP and SNI host routing, user quotas and a client registry"
requires-python = ">=3.10"
dependencies = []
keywords = ["tunnel", "reverse-proxy", "sni", "http", "port-forwarding"]
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
    "Topic :: Internet :: Proxy Servers",
]

[project.optional-dependencies]
test = ["pytest", "hypothesis"]

[tool.hatch.build.targets.wheel]
packages = ["gtunnel"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
