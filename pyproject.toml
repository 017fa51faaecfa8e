[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "anmkit"
version = "0.1.0"
description = "List, extract, patch and build ANM sprite/animation archives and their THTX textures"
requires-python = ">=3.10"
dependencies = [
    "pillow",
]
keywords = ["anm", "thtx", "texture", "sprite", "archive", "png"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: Developers",
    "Intended Audience :: End Users/Desktop",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Multimedia :: Graphics :: Graphics Conversion",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
anmkit = "anmkit.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["anmkit"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
