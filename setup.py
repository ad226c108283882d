# -*- coding: utf-8 -*-

import os
import re

from setuptools import find_packages, setup

extras_require = {
    "test": [
        "pytest>=7.0",
        "pytest-cov>=4.0",
        "pytest-instafail>=0.4,<1.0",
        "pytest-xdist>=3.0",
        "hypothesis>=6.0",
    ],
    "lint": [
        "black==23.12.0",
        "flake8==6.1.0",
        "flake8-bugbear==23.12.2",
        "flake8-use-fstring==1.4",
        "isort==5.13.2",
        "mypy==1.5",
    ],
    "docs": ["sphinx>=6.0,<7.0", "sphinx_rtd_theme>=1.2,<1.3"],
    "dev": ["ipython", "pre-commit", "twine"],
}

extras_require["dev"] = (
    extras_require["test"] + extras_require["lint"] + extras_require["docs"] + extras_require["dev"]
)

with open("README.md", "r") as f:
    long_description = f.read()


# the version lives in cbit/version.py so that it is available without
# installing the package
def _read_version():
    version_file = os.path.join(os.path.dirname(__file__), "cbit", "version.py")
    with open(version_file) as f:
        match = re.search(r'^version = "([^"]+)"$', f.read(), re.M)
    if match is None:
        raise RuntimeError(f"no version found in {version_file}")
    return match.group(1)


setup(
    name="cbit",
    version=_read_version(),
    description="cbit: labeled loops and callback-driven iteration for Python",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="cbit Team",
    author_email="",
    license="Apache License 2.0",
    keywords="python compiler callback iterator labeled loops",
    include_package_data=True,
    packages=find_packages(exclude=("tests", "tests.*")),
    python_requires=">=3.10,<4",
    install_requires=["packaging>=23.1"],
    tests_require=extras_require["test"],
    extras_require=extras_require,
    entry_points={"console_scripts": ["cbit=cbit.cli.cbit_compile:_parse_cli_args"]},
    classifiers=[
        "Intended Audience :: Developers",
        "License :: OSI Approved :: Apache Software License",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
)
