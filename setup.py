"""Setup file for development installation."""

from setuptools import setup, find_namespace_packages

setup(
    name="gemchat",
    version="0.1.0",
    description="Local conversation store and Gemini chat orchestration",
    python_requires=">=3.9",
    packages=find_namespace_packages(where="src", include=["gemchat*"]),
    package_dir={"": "src"},
    install_requires=[
        "aiosqlite>=0.19",
        "fastapi>=0.110,<0.137",
        "google-api-core>=2.11",
        "google-generativeai>=0.8",
        "opentelemetry-instrumentation-fastapi>=0.45b0",
        "prometheus-client>=0.19",
        "pydantic>=2.5",
        "pydantic-settings>=2.1",
        "starlette",
        "structlog>=23.1",
    ],
    extras_require={
        "test": [
            "httpx>=0.27",
            "pytest>=7.4",
            "pytest-asyncio>=0.23",
        ],
    },
)
