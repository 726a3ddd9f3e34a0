from setuptools import setup, find_packages

setup(
    name='ckslab',
    version='0.1.0',
    packages=find_packages(include=['ckslab', 'ckslab.*']),
    include_package_data=True,
    package_data={
        'ckslab': ['templates/tools/*.j2'],
    },
    install_requires=[
        'typer',
        'rich',
        'pyyaml',
        'pydantic>=2',
        'jinja2',
        'jsonschema',
        'tenacity',
        'kubernetes',
        'urllib3',
        'python-dotenv',
    ],
    extras_require={
        'test': [
            'pytest',
        ],
    },
    entry_points={
        'console_scripts': [
            'ckslab=ckslab.cli:run'
        ]
    },
    description='Create and destroy a disposable kubeadm cluster on Multipass VMs for CKS exam practice',
    classifiers=[
        'Programming Language :: Python :: 3',
        'Operating System :: OS Independent',
        'Topic :: System :: Clustering',
    ],
    python_requires='>=3.8',
)
