from setuptools import setup, find_namespace_packages

setup(
    name='go-build',
    version='0.1.0',
    package_dir={'': 'src'},
    packages=find_namespace_packages(where='src', include=['gobuild*']),
    python_requires='>=3.10.12',
    install_requires=[
        'requests',
        'urllib3',
        'PyYAML',
        'platformdirs',
        'packaging',
        'rich',
    ],
    extras_require={
        'test': [
            'pytest',
            'pytest-mock',
        ],
    },
    entry_points={
        'console_scripts': [
            'go-build=gobuild.cli:main',
        ],
    },
)
