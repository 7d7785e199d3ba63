from setuptools import setup, find_packages

setup(
    name="taskorder",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "click>=8.0.0",
        "pyyaml>=6.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.21",
        ],
    },
    entry_points={
        "console_scripts": [
            "taskorder=taskorder.cli:cli",
        ],
    },
    author="Flow Team",
    description="dependency-aware execution ordering for project task lists",
    python_requires=">=3.10",
)
