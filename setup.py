"""Install checkpoint."""

from setuptools import setup, find_packages

setup(
    name='checkpoint-auth',
    version='0.1.0',
    description='Pluggable request authentication for Flask applications',
    packages=find_packages(exclude=['*test*']),
    python_requires='>=3.8',
    install_requires=[
        "flask",
        "werkzeug",
        "wtforms",
        "pyjwt",
        "redis",
        "retry",
        "python-dateutil",
        "pytz",
    ],
    extras_require={
        'fake': ["fakeredis[lua]"],
        'test': ["pytest", "hypothesis", "fakeredis[lua]"],
    },
    zip_safe=False
)
