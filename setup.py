"""
Setup script for neuroplay-engine.

NeuroPlay is the session engine behind the platform's cognitive mini-games
(sequence recall, pattern matching, syllables). It serves three roles:

1. Game Engine - timed rounds with adaptive difficulty
2. Analytics Source - behavioral metrics for every attempt
3. Session Keeper - checkpoints and crash recovery

The 'neuroplay' command is a terminal front end for playing and managing
sessions.
"""

from setuptools import find_packages, setup

setup(
    name="neuroplay-engine",
    version="1.0.0",
    description="Adaptive cognitive game session engine with durable checkpoints",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    author="NeuroPlay",
    packages=find_packages(include=["neuroplay", "neuroplay.*"]),
    py_modules=["config"],
    python_requires=">=3.10",
    install_requires=[
        # CLI
        "typer>=0.9.0",
        "rich>=13.0.0",
        # Database
        "sqlalchemy>=2.0.0",
        "psycopg2-binary>=2.9.0",
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        # HTTP
        "httpx>=0.25.0",
        # Logging
        "loguru>=0.7.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "ruff>=0.1.0",
            "mypy>=1.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "neuroplay=neuroplay.cli.main:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: Developers",
        "Intended Audience :: Education",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Education",
        "Topic :: Games/Entertainment :: Puzzle Games",
    ],
    keywords="cognitive games adaptive difficulty working-memory session",
)
