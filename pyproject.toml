[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "zipsign"
version = "1.5.1"
description = "Sign and verify ZIP archives with detached CMS signatures stored in the archive comment."
requires-python = ">=3.10"
dependencies = [
    "cryptography",
]
keywords = ["zip", "signature", "cms", "pkcs7", "x509", "signing", "verification"]
classifiers = [
    "Development Status :: 5 - Production/Stable",
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
    "Topic :: Security :: Cryptography",
    "Topic :: System :: Archiving",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
zipsign = "zipsign.main:main"

[tool.hatch.build.targets.wheel]
packages = ["zipsign"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
