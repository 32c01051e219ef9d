"""Install the care portal package."""

from setuptools import setup, find_packages

setup(
    name='care-portal',
    version='0.3.0',
    packages=find_packages(include=['care_portal', 'care_portal.*'],
                           exclude=['*.tests', '*.tests.*']),
    install_requires=[
        "flask",
        "werkzeug",
        "wtforms",
        "requests",
        "redis",
        "fakeredis",
        "click"
    ],
    extras_require={
        'test': [
            "pytest",
            "hypothesis",
            "mimesis"
        ]
    },
    entry_points={
        'console_scripts': ['care-portal=care_portal.cli:main']
    },
    python_requires='>=3.8',
    zip_safe=False
)
