"""
MediaJobs: setuptools build script.

Usage:
    # Development (editable install):
    pip install -e .[test]

    # Run the service:
    mediajobs
"""

from setuptools import setup, find_namespace_packages

APP_NAME = "mediajobs"

setup(
    name=APP_NAME,
    version="1.0.0",
    description="Local media job service: download, transcode, transcribe and analyze",
    packages=find_namespace_packages(include=["mediajobs*"]),
    py_modules=["main"],
    install_requires=[
        "requests>=2.28.0",
        "fastapi>=0.100.0",
        "pydantic>=2.0",
        "uvicorn>=0.23.0",
        "python-multipart>=0.0.6",
    ],
    extras_require={
        "test": [
            "httpx>=0.24.0",
        ],
    },
    python_requires=">=3.10",
    entry_points={
        "console_scripts": [
            "mediajobs=main:main",
        ],
    },
)
