"""Setup script for admission-saga package following Cosmic Python pattern."""

from setuptools import setup, find_namespace_packages

setup(
    name="admission-saga",
    version="1.0.0",
    description="Admission Service - coordinated creation of patients with infection events",
    author="Patient Records Team",
    package_dir={"": "src"},
    packages=find_namespace_packages(where="src", include=["admission*", "shared*"]),
    py_modules=["config"],
    python_requires=">=3.11",
    install_requires=[
        "fastapi",
        "uvicorn[standard]",
        "pydantic",
        "sqlalchemy>=2.0",
        "psycopg2-binary",
        "redis",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-cov",
            "httpx",
            "fakeredis",
        ],
        "dev": [
            "black",
            "flake8",
            "mypy",
            "pre-commit",
        ],
    },
    entry_points={
        "console_scripts": [
            "admission-api=admission.entrypoints.admission_api:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Healthcare Industry",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3.11",
        "Topic :: Scientific/Engineering :: Medical Science Apps.",
    ],
)
