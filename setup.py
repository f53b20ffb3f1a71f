# setup.py
from setuptools import setup, find_packages

setup(
    name='ttc_fusion',
    version='0.1.0',
    packages=find_packages(where='src'),
    package_dir={'': 'src'},
    python_requires='>=3.8',
    install_requires=['numpy', 'opencv-python<5', 'PyYAML', 'ultralytics'],
    extras_require={
        'test': ['pytest'],
    },
)
