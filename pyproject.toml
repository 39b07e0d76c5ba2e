[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ctxboot"
version = "0.1.0"
description = "A small dependency-injection component context with a registration code generator"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "dependency-injection",
    "di",
    "ioc",
    "container",
    "components",
    "code-generation",
]
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
    "Topic :: Software Development :: Libraries :: Application Frameworks",
    "Topic :: Software Development :: Code Generators",
    "Typing :: Typed",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
ctxboot = "ctxboot.codegen:main"
ctxboot-demo = "ctxboot.demo:main"

[tool.hatch.build.targets.wheel]
packages = ["ctxboot"]

[tool.pytest.ini_options]
addopts = "-ra"
testpaths = ["tests"]

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
