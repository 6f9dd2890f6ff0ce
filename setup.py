from setuptools import setup, find_packages

setup(
    name="secaware-backend",
    version="0.1.0",
    packages=find_packages(),
    install_requires=[
        "fastapi>=0.100.0",
        "uvicorn>=0.23.0",
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        "sqlalchemy[asyncio]>=2.0.0",
        "alembic>=1.11.0",
        "python-dotenv>=1.0.0",
        "PyYAML>=6.0",
        "aiosqlite>=0.19.0",
        "asyncpg>=0.28.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.23.0",
            "httpx>=0.24.0",
        ],
    },
    python_requires=">=3.9",
)
