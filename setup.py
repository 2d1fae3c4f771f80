from setuptools import setup, find_namespace_packages

setup(
    name="sqlchat",
    version="1.0.0",
    description="SQLChat: natural-language chat over a SQLite database",
    packages=find_namespace_packages(include=["api", "core", "utils"]),
    py_modules=["main", "config", "simple_cli"],
    python_requires=">=3.10",
    install_requires=[
        "fastapi>=0.110.0",
        "uvicorn>=0.29.0",
        "rich>=13.7.0",
        "langchain-core>=0.2.0",
        "langchain-community>=0.2.0",
        "langchain-openai>=0.1.0",
        "python-dotenv>=1.0.0",
        "pydantic>=2.5.0",
        "pydantic-settings>=2.1.0",
        "loguru>=0.7.2",
        "prompt_toolkit>=3.0.43",
        "click>=8.1.7",
    ],
    extras_require={
        "test": [
            "pytest>=8.0.0",
            "pytest-asyncio>=0.23.0",
            "httpx>=0.27.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "sqlchat=main:cli",
        ],
    },
)
