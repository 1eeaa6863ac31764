from setuptools import setup, find_packages
setup(
    name="property_weather_search",
    version="1.0.0",
    package_dir={"": "src"},
    packages=find_packages("src"),
    include_package_data=True,
    python_requires=">=3.10",
    install_requires=[
        "fastapi>=0.100,<0.137",
        "pydantic>=2",
        "httpx>=0.24",
        "redis>=5.0.1",
        "uvicorn>=0.23",
    ],
    extras_require={
        "test": ["pytest>=7"],
    },
    entry_points={
        'console_scripts': [
            'property_weather_search=property_weather_search.__main__:_safe_main'
        ]
    }
)
