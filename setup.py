from setuptools import find_packages, setup

setup(
    name='sshvault',
    version='1.0.0',
    description='Manage the OpenSSH client config, groups and remote configs',
    packages=find_packages(exclude=['tests', 'tests.*']),
    python_requires='>=3.9',
    install_requires=['paramiko'],
    extras_require={'test': ['pytest']},
    entry_points={
        'console_scripts': ['sshvault=sshvault.main:main'],
    },
)
