[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "imposm"
version = "0.1.0"
description = "OpenStreetMap element caches, compact binary encodings and tile expiry lists for importing OSM data"
requires-python = ">=3.10"
dependencies = []
keywords = ["openstreetmap", "osm", "gis", "cache", "tiles", "import"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: Science/Research",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering :: GIS",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
imposm-query-cache = "imposm.cache.query:main"

[tool.hatch.build.targets.wheel]
packages = ["imposm"]

[tool.hatch.build.targets.sdist]
include = ["imposm", "tests", "pyproject.toml", "README.md"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]
