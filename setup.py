"""
Setup script for learnloop.

learnloop is the adaptive scheduling engine behind a question-bank study
tool. It decides which questions a learner should see next:

1. Priority ranking - mastery gap, recency, difficulty, repetition, success rate
2. Review scheduling - topic due lists and per-question SM-2 intervals
3. Progress tracking - per-topic mastery with optimistic concurrency
"""

from setuptools import find_packages, setup

setup(
    name="learnloop",
    version="0.1.0",
    description="Adaptive spaced-repetition scheduling engine for question banks",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["config"],
    python_requires=">=3.11",
    install_requires=[
        # Database
        "sqlalchemy[asyncio]>=2.0.0",
        "asyncpg>=0.29.0",
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        # Logging
        "loguru>=0.7.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.0.0",
            "aiosqlite>=0.19.0",
            "ruff>=0.1.0",
            "mypy>=1.0.0",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Intended Audience :: Education",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Education",
        "Topic :: Education :: Computer Aided Instruction (CAI)",
    ],
    keywords="learning spaced-repetition sm2 education scheduling",
)
