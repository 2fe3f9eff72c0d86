"""Setup script for where2meet."""
from setuptools import setup, find_namespace_packages

setup(
    name="where2meet",
    version="1.0.0",
    description="Group meet-up planner that recommends fair meeting locations and runs the vote",
    packages=find_namespace_packages(include=["where2meet*"]),
    python_requires=">=3.11",
    install_requires=[
        "fastapi>=0.110",
        "uvicorn[standard]>=0.27",
        "sqlalchemy>=2.0",
        "pydantic>=2.5",
        "pydantic-settings>=2.1",
        "openai>=1.12",
    ],
    extras_require={
        "vertex": ["google-cloud-aiplatform>=1.38"],
        "test": [
            "pytest>=7.4",
            "pytest-asyncio>=0.23",
            "httpx>=0.26",
        ],
    },
)
