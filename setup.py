from setuptools import find_packages, setup

setup(
    name="gitjump",
    version="0.1.0",
    description="Local mirror of your GitHub repos, issues and PRs with instant fuzzy search",
    packages=find_packages(include=["gitjump", "gitjump.*"]),
    include_package_data=True,
    python_requires=">=3.11",
    install_requires=[
        "pydantic>=2",
        "PyYAML>=6",
        "fastapi>=0.100",
        "uvicorn>=0.23",
    ],
    extras_require={
        "test": [
            "pytest>=7",
            "httpx>=0.24",
        ],
    },
    entry_points={
        "console_scripts": [
            "gitjump=gitjump.cli:main",
        ],
    },
)
