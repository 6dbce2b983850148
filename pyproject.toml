[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "secpcurve"
version = "1.0.0"
description = "Pure-Python secp256k1 arithmetic, self-test vectors and sorted x-coordinate databases"
requires-python = ">=3.10"
dependencies = []
keywords = ["secp256k1", "elliptic-curve", "ecc", "glv", "wnaf", "cryptography"]
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
    "Topic :: Security :: Cryptography",
    "Topic :: Scientific/Engineering :: Mathematics",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
secpcurve-selftest = "secpcurve.selftest:main"

[tool.hatch.build.targets.wheel]
packages = ["secpcurve"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
