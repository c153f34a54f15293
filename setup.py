from setuptools import setup

setup(
    name='xnft-bridge',
    version='0.1.0',
    description='Cross-ledger NFT transfer protocol with fractional distribution',
    author='Ziver-opensource',
    package_dir={'xnft': 'src/xnft'},
    packages=['xnft'],
    include_package_data=True,
    python_requires='>=3.9',
    install_requires=[
        'click>=7.0',
        'rich>=9.0',
        'pycryptodome>=3.10',
    ],
    extras_require={
        'test': ['pytest>=7.0'],
    },
    entry_points={
        'console_scripts': [
            'xnft = xnft.cli:cli'
        ]
    },
    classifiers=[
        'Programming Language :: Python :: 3',
    ],
)
