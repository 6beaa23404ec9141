from setuptools import setup, find_packages

setup(
    name='capi-bootstrap',
    version='0.1.0',
    packages=find_packages(exclude=['capi_bootstrap.tests']),
    include_package_data=True,
    package_data={
        'capi_bootstrap.cloudinit': ['templates/*'],
        'capi_bootstrap.providers.controlplane.k3s': ['templates/*'],
        'capi_bootstrap.providers.controlplane.kubeadm': ['templates/*'],
        'capi_bootstrap.providers.infrastructure.linode': ['templates/*'],
    },
    install_requires=[
        'typer[all]',
        'pydantic>=2',
        'jinja2',
        'pyyaml',
        'kubernetes',
        'boto3',
        'cryptography',
        'rich',
        'python-dotenv',
        'requests'
    ],
    extras_require={
        'test': ['pytest']
    },
    entry_points={
        'console_scripts': [
            'capi-bootstrap=capi_bootstrap.cli:app'
        ]
    },
    description='Bootstrap a self-hosting Cluster-API management cluster from a single cloud-init node',
    classifiers=[
        'Programming Language :: Python :: 3',
        'Operating System :: OS Independent',
    ],
    python_requires='>=3.8',
)
