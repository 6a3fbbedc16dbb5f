from setuptools import setup, find_packages

setup(
    name="skiptrace",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["main", "run_migration"],
    python_requires=">=3.9",
    install_requires=[
        "flask",
        "flask-cors",
        "requests",
        "python-dotenv",
        "supabase",
        "postgrest",
        "httpx",
        "stripe>=8.0",
        "PyJWT",
    ],
    extras_require={
        "test": [
            "pytest",
        ],
    },
)
