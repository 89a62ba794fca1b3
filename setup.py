from setuptools import setup, find_packages

setup(
    name="assessflow-backend",
    version="0.1.0",
    packages=find_packages(),
    package_data={"assessflow": ["alembic/*.py", "alembic/versions/*.py"]},
    install_requires=[
        "fastapi>=0.68.0,<0.100.0",
        "uvicorn>=0.15.0",
        "pydantic>=1.8.0,<2.0.0",
        "sqlalchemy>=1.4.0,<2.0.0",
        "alembic>=1.7.0",
        "python-dotenv>=0.19.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
            "requests>=2.26.0",
            "httpx>=0.23.0,<0.28.0",
        ],
    },
    python_requires=">=3.8",
)
