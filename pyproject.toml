[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "flowlogs2metrics"
version = "0.1.0"
description = "Decoders and encoders for network flow logs, prometheus-style metrics, and a generator of pipeline configuration, docs and grafana dashboards from metric definitions"
requires-python = ">=3.10"
dependencies = [
    "pyyaml",
]
keywords = ["netflow", "flow-logs", "aws", "prometheus", "metrics", "kafka", "grafana", "jsonnet"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Networking :: Monitoring",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
flowlogs2metrics-confgenerator = "flowlogs2metrics.confgenerator:main"
flowlogs2metrics-apitodoc = "flowlogs2metrics.apitodoc:main"

[tool.hatch.build.targets.wheel]
packages = ["flowlogs2metrics"]

[tool.pytest.ini_options]
addopts = "-ra"
