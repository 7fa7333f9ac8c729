"""Setup configuration for the StaffDesk staff workflow bot."""

from setuptools import setup, find_packages

setup(
    name="staffdesk",
    version="0.0.1",
    description="A Discord bot running rank-gated staff moderation workflows",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.11",
    install_requires=[
        "py-cord",
        "aiosqlite",
        "PyYAML",
        "python-dotenv",
        "prompt_toolkit",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
        ],
    },
    entry_points={
        "console_scripts": [
            "staffdesk=staffdesk.main:main",
        ],
    },
)
