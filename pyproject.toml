[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "trykkeri"
version = "1.0.0"
description = "HTTP service that renders HTML documents and web pages to PDF with wkhtmltopdf"
requires-python = ">=3.10"
dependencies = [
    "werkzeug",
]
keywords = ["pdf", "html", "wkhtmltopdf", "http", "wsgi", "rendering"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Web Environment",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
    "Topic :: Internet :: WWW/HTTP :: WSGI :: Application",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
trykkeri = "trykkeri.server:main"

[tool.hatch.build.targets.wheel]
packages = ["trykkeri"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
