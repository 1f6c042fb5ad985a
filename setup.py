"""Setup script for airdeck package."""

from setuptools import find_packages, setup

setup(
    name="airdeck",
    version="0.1.0",
    description="Terminal UI for browsing and operating Apache Airflow servers",
    author="Your Name",
    author_email="your.email@example.com",
    packages=find_packages(include=["airdeck", "airdeck.*"]),
    python_requires=">=3.11",
    install_requires=[
        "pyyaml>=6.0",
        "requests>=2.28",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "airdeck=airdeck.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Environment :: Console :: Curses",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
)
