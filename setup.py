"""
Packaging for autoserial. Tests are the *_test.py modules beside the code:

    pip install -e .[test]
    pytest src
"""

from setuptools import setup, find_packages


setup(
    name='autoserial',
    version='0.1.0',
    description='Reads frames from serial devices, parses them and forwards the messages to TCP, MQTT, '
                'the clipboard or the keyboard.',
    url='',
    author='',
    author_email='',
    license='LGPL',
    package_dir={'': 'src'},
    packages=find_packages('src'),
    python_requires='>=3.8',
    install_requires=[
        'pyserial>=3.4',
        'configobj>=5.0.6',
        'paho-mqtt>=2.0',
        'pyperclip>=1.8',
    ],
    extras_require={
        'test': ['pytest', 'PyHamcrest>=2.0', 'timeout-decorator'],
        'typing': ['pynput'],
    },
    entry_points={
        'console_scripts': ['autoserial=autoserial.host:main'],
    },
    zip_safe=False,
)
