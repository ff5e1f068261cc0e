from setuptools import setup, find_namespace_packages

setup(
    name="hypatia",
    version="0.1.0",
    description="Learning material ingestion and relationship graph service",
    author="Goliath Ed-Tech Team",
    author_email="team@goliath-edu.com",
    package_dir={"": "src"},
    packages=find_namespace_packages(where="src"),
    install_requires=[
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        "python-dotenv>=1.0.0",
        "pyyaml>=6.0",
        "fastapi>=0.100.0",
        "uvicorn>=0.21.0",
        "httpx>=0.24.0",
        "motor>=3.1.0",
        "pymongo>=4.0.0",
        "structlog>=23.1.0",
        "click>=8.1.3",
    ],
    extras_require={
        "dev": [
            "pytest>=7.3.1",
            "pytest-cov>=4.1.0",
            "pytest-asyncio>=0.21.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "hypatia=hypatia.cli:main",
        ],
    },
    python_requires=">=3.9",
    include_package_data=True,
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
    ],
)
