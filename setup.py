"""
Setup script for cortex-srs.

cortex-srs is the decision core of a spaced-repetition learning product:

1. Review sessions - Ordered queues of due and new cards (FSRS)
2. Adaptive quizzes - End-of-lesson quizzes that retry missed questions
3. Mastery - Card, lesson, module and overall mastery levels

The 'cortex-srs' command is a read-only inspection CLI.
"""

from setuptools import find_packages, setup

setup(
    name="cortex-srs",
    version="0.1.0",
    description="Spaced-repetition study core: FSRS review queues, adaptive quizzes, mastery",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["config"],
    python_requires=">=3.10",
    install_requires=[
        # CLI
        "typer>=0.9.0",
        "rich>=13.0.0",
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        # Scheduling
        "fsrs>=6.0.0",
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
            "cortex-srs=cortex_srs.cli.main:app",
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
        "Topic :: Education :: Computer Aided Instruction (CAI)",
    ],
    keywords="learning spaced-repetition fsrs education",
)
