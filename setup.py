"""
EliteHub Referral Ledger - referral bonuses, payouts and Paystack integration
"""

from setuptools import setup, find_packages

setup(
    name="elitehub-referral-ledger",
    version="1.0.0",
    description="Referral ledger service with Paystack webhooks and payout workflow",
    author="EliteHub",
    python_requires=">=3.11",
    packages=find_packages(exclude=["*.tests", "*.tests.*"]),
    install_requires=[
        "fastapi>=0.104.0",
        "uvicorn[standard]>=0.24.0",
        "sqlalchemy[asyncio]>=2.0.0",
        "asyncpg>=0.29.0",
        "redis>=5.0.1",
        "httpx>=0.25.0",
        "python-dotenv>=1.0.0",
        "pydantic>=2.0.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
            "aiosqlite>=0.19.0",
            "httpx>=0.25.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "elitehub-api=referral_api.main:main",
            "elitehub-worker=worker.main:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3.11",
    ],
)
