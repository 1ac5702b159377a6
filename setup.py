from setuptools import setup, find_packages

setup(
    name="baldrick",
    version="1.0.0",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    package_data={"baldrick": ["scripts/*.sh"]},
    install_requires=[
        "click>=8.0.0",
        "requests>=2.25.0",
        "fastapi>=0.100.0",
        "uvicorn>=0.22.0",
        "pydantic>=2.0.0",
        "python-dotenv>=1.0.0",
        "filelock>=3.10.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "httpx>=0.24.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "baldrick=baldrick.cli:cli",
        ],
    },
    author="Baldrick",
    description="Minimal continuous integration server driven by GitHub webhooks",
    python_requires=">=3.10",
)
