from setuptools import setup, find_packages

setup(
    name="etcdjoin",
    version="0.1.0",
    description="Bootstrap etcd cluster membership for nodes in an AWS Auto Scaling group",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "aiohttp",
        "boto3",
        "botocore",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "etcdjoin=etcdjoin.cli:main",
        ],
    },
    python_requires=">=3.8",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: System Administrators",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
)
