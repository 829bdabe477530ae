"""Provide the setuptools entry point for groupframe."""

from setuptools import find_packages, setup


setup(
    name="groupframe",
    version="0.1.0",
    description="Split-apply-combine for in-memory tables",
    packages=find_packages(include=["groupframe", "groupframe.*"]),
    python_requires=">=3.9",
    install_requires=[
        "numpy>=1.24",
        "pandas>=2.0",
        "typeguard>=2.10,<3",
        "tabulate",
    ],
    extras_require={
        "test": [
            "pytest>=6.0",
        ],
    },
)
