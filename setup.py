from setuptools import setup, find_packages

setup(
    name="storyqa_agent",
    version="0.1.0",
    packages=find_packages(include=["storyqa_agent", "storyqa_agent.*"]),
    include_package_data=True,
    package_data={"storyqa_agent": ["templates/*.j2"]},
    install_requires=[
        "playwright==1.52.0",
        "pydantic>=2",
        "openai",
        "httpx",
        "python-dotenv",
        "PyYAML",
        "html2text",
        "jinja2"
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
        ],
    },
    python_requires='>=3.10',
)
