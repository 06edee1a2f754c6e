from setuptools import setup, find_namespace_packages

setup(
    name='image-porter',
    version='0.1',
    package_dir={'': 'src'},
    packages=find_namespace_packages(where='src', include=['image_porter*']),
    python_requires='>=3.9',
    install_requires=[
        'Click',
        'PyYAML',
        'docker',
        'pydantic>=2',
        'Jinja2',
        'httpx',
        'huaweicloudsdkcore',
        'huaweicloudsdkswr',
    ],
    extras_require={
        'test': ['pytest', 'pytest-mock'],
    },
    entry_points='''
        [console_scripts]
        image-porter=image_porter.cli:main
    ''',
)
