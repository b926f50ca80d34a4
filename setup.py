"""Setup script for the ruuvitrack package."""

from setuptools import find_packages, setup

setup(
    name="ruuvitrack",
    version="0.1.0",
    description="Track RuuviTag sensors and forward rate-limited readings over HTTP",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.9",
    install_requires=[
        "pyyaml",
        "python-dotenv",
        "bleak",
        "aiohttp",
        "rich",
        "click",
    ],
    extras_require={
        "dev": [
            "pytest",
            "pytest-asyncio",
            "black",
            "isort",
            "mypy",
        ],
    },
    entry_points={
        "console_scripts": [
            "ruuvitrack=ruuvitrack.tracker:main",
        ],
    },
)
