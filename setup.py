from setuptools import setup, find_packages

setup(
    name="edusync-assessments",
    version="0.1.0",
    packages=find_packages(include=["edusync", "edusync.*"]),
    install_requires=[
        "fastapi>=0.100.0",
        "uvicorn>=0.15.0",
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        "sqlalchemy[asyncio]>=1.4.0",
        "alembic>=1.7.0",
        "python-dotenv>=0.19.0",
        "redis>=5.0.1",
    ],
    extras_require={
        "postgres": [
            "asyncpg>=0.27.0",
        ],
        "test": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "httpx>=0.24.0",
            "aiosqlite>=0.19.0",
        ],
    },
    python_requires=">=3.9",
)
