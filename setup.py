from setuptools import setup, find_packages

package_name = 'player_gateway'

setup(
    name=package_name,
    version='1.0.0',
    packages=find_packages(exclude=['tests']),
    python_requires='>=3.8',
    install_requires=[
        'setuptools',
        'numpy>=1.24.0',
        'opencv-python-headless>=4.8.0',
        'fastapi>=0.104.0',
        'uvicorn>=0.24.0',
        'paho-mqtt>=2.0.0',
    ],
    extras_require={
        'test': ['pytest', 'httpx'],
    },
    zip_safe=True,
    description='Network gateway serving a simulated robot player to a remote controller',
    license='MIT',
    entry_points={
        'console_scripts': [
            'player_gateway = player_gateway.main:main',
        ],
    },
)
